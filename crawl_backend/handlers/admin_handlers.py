"""
Lambda handlers for admin operations (create, patch, approve, delete)

These handlers require the admin role and provide bookshop management operations.
"""

from __future__ import annotations

import logging

# Support both Lambda deployment and local development
try:
    # Lambda deployment
    import config
    from store.bookshops import BookshopStore
    from store.errors import StoreError
    from utils.auth import get_actor, get_user_id, is_admin
    from utils.response import (
        api_response,
        error_response,
        serialize_bookshop_response,
        store_error_response,
    )
    from utils.validation import (
        MODERATION_ONLY_FIELDS,
        get_header,
        get_path_param,
        parse_json_body,
        validate_bookshop_body,
    )
except ImportError:
    # Local development
    import crawl_backend.config as config
    from crawl_backend.store.bookshops import BookshopStore
    from crawl_backend.store.errors import StoreError
    from crawl_backend.utils.auth import get_actor, get_user_id, is_admin
    from crawl_backend.utils.response import (
        api_response,
        error_response,
        serialize_bookshop_response,
        store_error_response,
    )
    from crawl_backend.utils.validation import (
        MODERATION_ONLY_FIELDS,
        get_header,
        get_path_param,
        parse_json_body,
        validate_bookshop_body,
    )

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _store() -> BookshopStore:
    return BookshopStore(config.bookshops_table)


def _require_admin(event: dict, action: str) -> dict | None:
    """
    Check the caller is an authenticated admin.

    Returns:
        dict: 401/403 error response, or None if the caller may proceed
    """
    user_id = get_user_id(event)
    if not user_id:
        return error_response(401, "Unauthorized", "User not authenticated")

    if not is_admin(event):
        logger.warning(f"Non-admin user {user_id} attempted to {action}")
        return error_response(403, "Forbidden", f"Only administrators can {action}")

    return None


def create_bookshop_handler(event, context):
    """
    Lambda handler to create a bookshop (admin only).
    Expects JSON body with at least 'name'; new bookshops start pending approval.
    Returns 201 with the stored bookshop.
    """
    logger.info("create_bookshop_handler invoked")

    try:
        error = _require_admin(event, "create bookshops")
        if error:
            return error

        body, error = parse_json_body(event)
        if error:
            return error

        error = validate_bookshop_body(body, creating=True)
        if error:
            return error

        logger.info(f"Create request from admin user: {get_actor(event)}")

        try:
            record = _store().create(body)
        except StoreError as e:
            logger.warning(f"Could not create bookshop: {str(e)}")
            return store_error_response(e)

        logger.info(f"Created bookshop: {record['id']}")
        return api_response(201, serialize_bookshop_response(record, include_moderation=True))

    except Exception as e:
        logger.error(f"Error creating bookshop: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def patch_bookshop_handler(event, context):
    """
    Lambda handler to partially update a bookshop (admin only).
    Expects bookshop ID in path parameter 'id' and a JSON body containing only
    the fields to change. An 'If-Match' header holding the updatedAt value the
    client last saw makes the update fail with 409 if someone else changed
    the bookshop in the meantime.
    """
    logger.info("patch_bookshop_handler invoked")

    try:
        error = _require_admin(event, "edit bookshops")
        if error:
            return error

        bookshop_id, error = get_path_param(event, "id")
        if error:
            return error

        body, error = parse_json_body(event)
        if error:
            return error

        moderation_fields = [f for f in MODERATION_ONLY_FIELDS if f in body]
        if moderation_fields:
            return error_response(
                400,
                "Bad Request",
                f"Fields {', '.join(moderation_fields)} cannot be patched; use DELETE",
            )

        error = validate_bookshop_body(body, creating=False)
        if error:
            return error

        expected_updated_at = get_header(event, "If-Match")
        if expected_updated_at:
            expected_updated_at = expected_updated_at.strip().strip('"')

        logger.info(f"Patching bookshop {bookshop_id} fields: {sorted(body)}")

        try:
            record = _store().patch(bookshop_id, body, expected_updated_at=expected_updated_at)
        except StoreError as e:
            logger.warning(f"Could not patch bookshop {bookshop_id}: {str(e)}")
            return store_error_response(e)

        return api_response(200, serialize_bookshop_response(record, include_moderation=True))

    except Exception as e:
        logger.error(f"Error patching bookshop: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def approve_bookshop_handler(event, context):
    """
    Lambda handler to approve a pending bookshop (admin only).
    Expects bookshop ID in path parameter 'id'. Approving twice is harmless.
    """
    logger.info("approve_bookshop_handler invoked")

    try:
        error = _require_admin(event, "approve bookshops")
        if error:
            return error

        bookshop_id, error = get_path_param(event, "id")
        if error:
            return error

        try:
            record = _store().approve(bookshop_id)
        except StoreError as e:
            return store_error_response(e)

        logger.info(f"Bookshop {bookshop_id} approved by {get_actor(event)}")
        return api_response(200, serialize_bookshop_response(record, include_moderation=True))

    except Exception as e:
        logger.error(f"Error approving bookshop: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))


def delete_bookshop_handler(event, context):
    """
    Lambda handler to soft-delete a bookshop (admin only).
    Expects bookshop ID in path parameter 'id'.

    The record is kept with deleted=true, deletedAt and deletedBy set; it
    disappears from every public listing. Deleting twice returns the record
    unchanged.
    """
    logger.info("delete_bookshop_handler invoked")

    try:
        error = _require_admin(event, "delete bookshops")
        if error:
            return error

        bookshop_id, error = get_path_param(event, "id")
        if error:
            return error

        actor = get_actor(event)
        logger.info(f"Deleting bookshop {bookshop_id} on behalf of {actor}")

        try:
            record = _store().soft_delete(bookshop_id, actor)
        except StoreError as e:
            return store_error_response(e)

        return api_response(200, serialize_bookshop_response(record, include_moderation=True))

    except Exception as e:
        logger.error(f"Error deleting bookshop: {str(e)}", exc_info=True)
        return error_response(500, "Internal Server Error", str(e))
