"""
Request validation utilities for Indy Book Crawl

Provides functions to validate and extract data from API Gateway events.
"""

from __future__ import annotations

import json
import logging
import re
from urllib.parse import unquote

logger = logging.getLogger()

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ZIP_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")

URL_FIELDS = ("website", "instagram", "facebook", "twitter")
ADDRESS_FIELDS = ("address", "city", "state", "zipCode")
MODERATION_ONLY_FIELDS = ("deleted", "deletedAt", "deletedBy")


def get_path_param(event: dict, param: str) -> tuple[str | None, dict | None]:
    """
    Extract and URL-decode a path parameter from API Gateway event.

    Args:
        event: API Gateway event
        param: Parameter name to extract

    Returns:
        tuple: (decoded_value, error_response) - If successful, error_response is None
    """
    from .response import error_response

    path_params = event.get("pathParameters") or {}
    if not path_params.get(param):
        logger.warning(f"Missing {param} in path parameters")
        return None, error_response(
            400, "Bad Request", f"{param.capitalize()} is required in path"
        )
    return unquote(path_params[param]), None


def get_query_param(event: dict, param: str) -> str | None:
    """Return a query string parameter, or None when absent or blank."""
    params = event.get("queryStringParameters") or {}
    value = params.get(param)
    if value is None or not str(value).strip():
        return None
    return unquote(str(value))


def parse_bool_param(event: dict, param: str) -> bool | None:
    """
    Read a "true"/"false" query parameter.

    Returns:
        bool | None: None when absent or not a recognised boolean
    """
    value = get_query_param(event, param)
    if value is None:
        return None
    value = value.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    return None


def get_header(event: dict, name: str) -> str | None:
    """Case-insensitive header lookup."""
    headers = event.get("headers") or {}
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def parse_json_body(event: dict) -> tuple[dict, dict | None]:
    """
    Parse JSON body from API Gateway event.

    Args:
        event: API Gateway event

    Returns:
        tuple: (parsed_body, error_response) - If successful, error_response is None
               If error, parsed_body is empty dict (caller should check error first)
    """
    from .response import error_response

    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError:
        logger.warning("Invalid JSON in request body")
        return {}, error_response(400, "Bad Request", "Invalid JSON in request body")

    if not isinstance(body, dict):
        logger.warning("Request body is not a JSON object")
        return {}, error_response(400, "Bad Request", "Request body must be a JSON object")
    return body, None


def validate_string_field(
    body: dict, field: str, max_length: int = 500, required: bool = False
) -> dict | None:
    """
    Validate a string field in request body.

    Args:
        body: Request body dictionary
        field: Field name to validate
        max_length: Maximum allowed length
        required: Whether the field is required

    Returns:
        dict: Error response if validation fails, None if valid
    """
    from .response import error_response

    if field not in body or (body[field] is None and not required):
        if required:
            return error_response(400, "Bad Request", f'Field "{field}" is required')
        return None

    value = body[field]
    if not isinstance(value, str):
        return error_response(400, "Bad Request", f'Field "{field}" must be a string')

    if len(value) > max_length:
        return error_response(
            400,
            "Bad Request",
            f'Field "{field}" exceeds maximum length of {max_length}',
        )

    if required and not value.strip():
        return error_response(400, "Bad Request", f'Field "{field}" cannot be empty')

    return None


def validate_boolean_field(body: dict, field: str) -> dict | None:
    """
    Validate a boolean field in request body.

    Args:
        body: Request body dictionary
        field: Field name to validate

    Returns:
        dict: Error response if validation fails, None if valid
    """
    from .response import error_response

    if field in body and not isinstance(body[field], bool):
        return error_response(400, "Bad Request", f'Field "{field}" must be a boolean')
    return None


def validate_number_field(
    body: dict, field: str, minimum: float, maximum: float
) -> dict | None:
    """
    Validate an optional numeric field (e.g. latitude) within an inclusive range.

    Returns:
        dict: Error response if validation fails, None if valid
    """
    from .response import error_response

    if field not in body or body[field] is None:
        return None

    value = body[field]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return error_response(400, "Bad Request", f'Field "{field}" must be a number')
    if value < minimum or value > maximum:
        return error_response(
            400, "Bad Request", f'Field "{field}" must be between {minimum} and {maximum}'
        )
    return None


def validate_string_list(
    body: dict, field: str, max_items: int, max_length: int = 500
) -> dict | None:
    """
    Validate an optional list of strings (e.g. categories).

    Returns:
        dict: Error response if validation fails, None if valid
    """
    from .response import error_response

    if field not in body or body[field] is None:
        return None

    value = body[field]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return error_response(400, "Bad Request", f'Field "{field}" must be a list of strings')
    if len(value) > max_items:
        return error_response(
            400, "Bad Request", f'Field "{field}" cannot have more than {max_items} entries'
        )
    if any(len(v) > max_length for v in value):
        return error_response(
            400, "Bad Request", f'Entries in "{field}" exceed maximum length of {max_length}'
        )
    return None


def _validate_entries(
    body: dict,
    field: str,
    max_items: int,
    formats: dict[str, re.Pattern],
    required: tuple[str, ...],
) -> dict | None:
    from .response import error_response

    if field not in body or body[field] is None:
        return None

    entries = body[field]
    if not isinstance(entries, list):
        return error_response(400, "Bad Request", f'Field "{field}" must be a list')
    if len(entries) > max_items:
        return error_response(
            400, "Bad Request", f'Field "{field}" cannot have more than {max_items} entries'
        )

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            return error_response(400, "Bad Request", f'{field}[{index}] must be an object')

        for key in required:
            if not entry.get(key):
                return error_response(
                    400, "Bad Request", f'{field}[{index}].{key} is required'
                )

        for key, value in entry.items():
            if value is None or value == "":
                continue
            if not isinstance(value, str):
                return error_response(
                    400, "Bad Request", f'{field}[{index}].{key} must be a string'
                )
            pattern = formats.get(key)
            if pattern and not pattern.match(value):
                return error_response(
                    400, "Bad Request", f'{field}[{index}].{key} has an invalid format'
                )
    return None


def validate_hours(body: dict, max_items: int) -> dict | None:
    """Validate weekly opening hours: times as HH:MM, dayOfWeek required."""
    return _validate_entries(
        body,
        "hours",
        max_items,
        {"openTime": TIME_PATTERN, "closeTime": TIME_PATTERN},
        required=("dayOfWeek",),
    )


def validate_events(body: dict, max_items: int) -> dict | None:
    """Validate events: date as YYYY-MM-DD, times as HH:MM, title required."""
    return _validate_entries(
        body,
        "events",
        max_items,
        {"date": DATE_PATTERN, "time": TIME_PATTERN, "endTime": TIME_PATTERN},
        required=("title",),
    )


def validate_bookshop_body(body: dict, creating: bool) -> dict | None:
    """
    Validate a bookshop create/patch payload.

    Only shape and format are checked here; unknown fields are left for the
    store to reject.

    Args:
        body: Request body dictionary
        creating: True for create (name required), False for patch

    Returns:
        dict: Error response if validation fails, None if valid
    """
    # Support both Lambda deployment and local development
    try:
        from config import (
            MAX_CATEGORIES,
            MAX_DESCRIPTION_LENGTH,
            MAX_EVENTS,
            MAX_HOURS,
            MAX_STRING_LENGTH,
        )
        from utils.response import error_response
    except ImportError:
        from crawl_backend.config import (
            MAX_CATEGORIES,
            MAX_DESCRIPTION_LENGTH,
            MAX_EVENTS,
            MAX_HOURS,
            MAX_STRING_LENGTH,
        )
        from .response import error_response

    if not creating and "name" in body and (body["name"] is None or not str(body["name"]).strip()):
        return error_response(400, "Bad Request", 'Field "name" cannot be empty')

    checks = [
        validate_string_field(body, "name", max_length=MAX_STRING_LENGTH, required=creating),
        validate_string_field(body, "description", max_length=MAX_DESCRIPTION_LENGTH),
    ]
    checks.extend(
        validate_string_field(body, field, max_length=MAX_STRING_LENGTH)
        for field in ADDRESS_FIELDS + URL_FIELDS
    )
    checks.extend([
        validate_number_field(body, "latitude", -90, 90),
        validate_number_field(body, "longitude", -180, 180),
        validate_string_list(body, "categories", MAX_CATEGORIES, max_length=MAX_STRING_LENGTH),
        validate_hours(body, MAX_HOURS),
        validate_events(body, MAX_EVENTS),
        validate_boolean_field(body, "approved"),
    ])

    for error in checks:
        if error:
            return error

    zip_code = body.get("zipCode")
    if zip_code and not ZIP_PATTERN.match(zip_code.strip()):
        return error_response(400, "Bad Request", 'Field "zipCode" must be a US ZIP code')

    return None
