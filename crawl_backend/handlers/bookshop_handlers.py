"""
Lambda handlers for public bookshop reads (list, search, get, events, geocode)

Visitors only ever see approved, non-deleted bookshops. Admins may widen a
listing with the approved/includeDeleted query parameters.
"""

from __future__ import annotations

import logging

# Support both Lambda deployment and local development
try:
    # Lambda deployment
    import config
    from store.bookshops import BookshopStore
    from store.errors import StoreError
    from utils.auth import is_admin
    from utils.geocode import GeocodeUnavailable, fetch_coordinates, is_rate_limited
    from utils.response import (
        api_response,
        error_response,
        serialize_bookshop_response,
        store_error_response,
    )
    from utils.validation import (
        DATE_PATTERN,
        ZIP_PATTERN,
        get_path_param,
        get_query_param,
        parse_bool_param,
    )
except ImportError:
    # Local development
    import crawl_backend.config as config
    from crawl_backend.store.bookshops import BookshopStore
    from crawl_backend.store.errors import StoreError
    from crawl_backend.utils.auth import is_admin
    from crawl_backend.utils.geocode import GeocodeUnavailable, fetch_coordinates, is_rate_limited
    from crawl_backend.utils.response import (
        api_response,
        error_response,
        serialize_bookshop_response,
        store_error_response,
    )
    from crawl_backend.utils.validation import (
        DATE_PATTERN,
        ZIP_PATTERN,
        get_path_param,
        get_query_param,
        parse_bool_param,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _store() -> BookshopStore:
    return BookshopStore(config.bookshops_table)


def list_bookshops_handler(event, context):
    """
    Lambda handler to list bookshops.

    Query parameters:
    - category: only bookshops tagged with this category (case-insensitive)
    - q: case-insensitive substring search over name, description, city, categories
    - approved, includeDeleted: admin only; visitors always get approved, non-deleted
    """
    logger.info("list_bookshops_handler invoked")

    try:
        user_is_admin = is_admin(event)

        if user_is_admin:
            approved = parse_bool_param(event, "approved")
            include_deleted = parse_bool_param(event, "includeDeleted") is True
        else:
            approved = True
            include_deleted = False

        category = get_query_param(event, "category")
        query = get_query_param(event, "q")

        try:
            records = _store().list_bookshops(
                approved=approved,
                include_deleted=include_deleted,
                category=category,
                query=query,
            )
        except StoreError as e:
            logger.error(f"Store error listing bookshops: {str(e)}", exc_info=True)
            return store_error_response(e)

        bookshops = [serialize_bookshop_response(r, include_moderation=user_is_admin) for r in records]
        logger.info(f"Returning {len(bookshops)} bookshops")

        return api_response(
            200, {"bookshops": bookshops, "count": len(bookshops), "isAdmin": user_is_admin}
        )

    except Exception as e:
        logger.error(f"Error listing bookshops: {str(e)}", exc_info=True)
        return error_response(500, "Failed to list bookshops", str(e))


def search_bookshops_handler(event, context):
    """
    Lambda handler for free-text search over approved bookshops.
    Expects the search string in query parameter 'q'; a missing or blank
    query returns an empty list.
    """
    logger.info("search_bookshops_handler invoked")

    try:
        query = get_query_param(event, "q")
        if not query:
            return api_response(200, {"bookshops": [], "count": 0})

        try:
            records = _store().search(query)
        except StoreError as e:
            logger.error(f"Store error searching bookshops: {str(e)}", exc_info=True)
            return store_error_response(e)

        bookshops = [serialize_bookshop_response(r) for r in records]
        return api_response(200, {"bookshops": bookshops, "count": len(bookshops)})

    except Exception as e:
        logger.error(f"Error searching bookshops: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def get_bookshop_handler(event, context):
    """
    Lambda handler to fetch one bookshop.
    Expects bookshop ID in path parameter 'id'.
    Pending bookshops are only visible to admins; admins may also pass
    includeDeleted=true to see soft-deleted ones.
    """
    logger.info("get_bookshop_handler invoked")

    try:
        bookshop_id, error = get_path_param(event, "id")
        if error:
            return error

        user_is_admin = is_admin(event)
        include_deleted = user_is_admin and parse_bool_param(event, "includeDeleted") is True

        logger.info(f"Fetching bookshop: {bookshop_id}")

        try:
            record = _store().get(bookshop_id, include_deleted=include_deleted)
        except StoreError as e:
            return store_error_response(e)

        if not record["approved"] and not user_is_admin:
            logger.info(f"Bookshop {bookshop_id} is pending; hidden from visitors")
            return error_response(404, "Not Found", f'Bookshop "{bookshop_id}" not found')

        return api_response(
            200, serialize_bookshop_response(record, include_moderation=user_is_admin)
        )

    except Exception as e:
        logger.error(f"Error fetching bookshop: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def list_events_handler(event, context):
    """
    Lambda handler to list upcoming bookshop events.

    Query parameters:
    - date: only events on this day (YYYY-MM-DD)
    - approved: admin only; visitors only see events of approved bookshops
    """
    logger.info("list_events_handler invoked")

    try:
        date = get_query_param(event, "date")
        if date and not DATE_PATTERN.match(date):
            return error_response(400, "Bad Request", "date must be in YYYY-MM-DD format")

        approved = parse_bool_param(event, "approved") if is_admin(event) else True

        try:
            events = _store().list_events(date=date, approved=approved)
        except StoreError as e:
            logger.error(f"Store error listing events: {str(e)}", exc_info=True)
            return store_error_response(e)

        return api_response(200, {"events": events, "count": len(events)})

    except Exception as e:
        logger.error(f"Error listing events: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def geocode_handler(event, context):
    """
    Lambda handler to resolve a ZIP code to coordinates for the bookshop form.
    Expects 'zipCode' query parameter. Repeated lookups of the same ZIP code
    within the rate-limit window get 429.
    """
    logger.info("geocode_handler invoked")

    try:
        zip_code = get_query_param(event, "zipCode")
        if not zip_code:
            return error_response(400, "Bad Request", "Zip code is required")

        zip_code = zip_code.strip()
        if not ZIP_PATTERN.match(zip_code):
            return error_response(400, "Bad Request", "Zip code must be a US ZIP code")

        if is_rate_limited(zip_code, config.GEOCODE_RATE_LIMIT_SECONDS):
            logger.warning(f"Rate limited geocode lookup for {zip_code}")
            return error_response(
                429, "Too Many Requests", "Too many requests, please try again later"
            )

        try:
            coordinates = fetch_coordinates(
                zip_code,
                config.GEOCODE_URL,
                config.GEOCODE_USER_AGENT,
                timeout=config.GEOCODE_TIMEOUT_SECONDS,
            )
        except GeocodeUnavailable as e:
            return error_response(500, "Geocoding Error", str(e))

        if not coordinates:
            return error_response(404, "Not Found", "Location not found")

        return api_response(200, coordinates)

    except Exception as e:
        logger.error(f"Error geocoding zip code: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def options_handler(event, context):
    """CORS preflight: empty 200 with the shared CORS headers."""
    return api_response(200, None)
