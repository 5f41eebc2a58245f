"""
Response building utilities for Indy Book Crawl

Provides functions to create standardized API Gateway responses.
"""

from __future__ import annotations

import json
from typing import Any

from .dynamodb import convert_decimal

# Support both Lambda deployment and local development
try:
    from store.errors import (
        Conflict,
        InvalidField,
        InvalidTransition,
        NotFound,
        StoreError,
        StoreUnavailable,
    )
except ImportError:
    from crawl_backend.store.errors import (
        Conflict,
        InvalidField,
        InvalidTransition,
        NotFound,
        StoreError,
        StoreUnavailable,
    )

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization,If-Match",
    "Access-Control-Allow-Methods": "GET, POST, PATCH, DELETE, OPTIONS",
}

# Internal search fields are not part of the public representation
HIDDEN_FIELDS = ("nameLower", "descriptionLower", "cityLower", "categoriesLower")


def api_response(status_code: int, body: Any) -> dict:
    """
    Helper to format API Gateway response with CORS headers.

    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized); None gives an empty body

    Returns:
        dict: API Gateway response with headers
    """
    return {
        "statusCode": status_code,
        "body": "" if body is None else json.dumps(convert_decimal(body)),
        "headers": {"Content-Type": "application/json", **CORS_HEADERS},
    }


def error_response(status_code: int, error: str, message: str) -> dict:
    """
    Helper to create error response.

    Args:
        status_code: HTTP status code
        error: Error type/category
        message: Error message

    Returns:
        dict: API Gateway error response
    """
    return api_response(status_code, {"error": error, "message": message})


def store_error_response(error: StoreError) -> dict:
    """
    Map a bookshop store error to an API Gateway error response.

    NotFound -> 404, InvalidTransition/Conflict -> 409, InvalidField -> 400,
    StoreUnavailable (and anything else) -> 500.
    """
    if isinstance(error, NotFound):
        return error_response(404, "Not Found", str(error))
    if isinstance(error, (InvalidTransition, Conflict)):
        return error_response(409, "Conflict", str(error))
    if isinstance(error, InvalidField):
        return error_response(400, "Bad Request", str(error))
    if isinstance(error, StoreUnavailable):
        return error_response(500, "Database Error", str(error))
    return error_response(500, "Internal Server Error", str(error))


def serialize_bookshop_response(record: dict, include_moderation: bool = False) -> dict:
    """
    Convert a bookshop record to API response format.

    Args:
        record: In-memory bookshop record from the store
        include_moderation: Include approved/deleted audit fields (admin views)

    Returns:
        dict: Bookshop object for API response
    """
    bookshop = {k: v for k, v in record.items() if k not in HIDDEN_FIELDS}

    bookshop.setdefault("hours", [])
    bookshop.setdefault("events", [])
    bookshop.setdefault("categories", [])

    if not include_moderation:
        for field in ("deleted", "deletedAt", "deletedBy"):
            bookshop.pop(field, None)

    return bookshop
