"""
Bookshop record schema

Defines which fields a bookshop record may carry, how the lowercase search
fields are derived from their sources, and which moderation changes are
allowed. Pure functions only; no DynamoDB access happens here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from ulid import ULID

from .errors import InvalidField, InvalidTransition


class DayOfWeek(str, Enum):
    SUNDAY = "sunday"
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"


# Source field -> lowercase shadow field used for substring search
DERIVED_FIELDS = {
    "name": "nameLower",
    "description": "descriptionLower",
    "city": "cityLower",
    "categories": "categoriesLower",
}

LIST_FIELDS = frozenset({"hours", "events", "categories"})
FLAG_FIELDS = frozenset({"approved", "deleted"})

SOURCE_FIELDS = frozenset({
    "name",
    "description",
    "address",
    "city",
    "state",
    "zipCode",
    "latitude",
    "longitude",
    "hours",
    "events",
    "categories",
    "website",
    "instagram",
    "facebook",
    "twitter",
})
AUDIT_FIELDS = frozenset({"deletedAt", "deletedBy"})
MODERATION_FIELDS = FLAG_FIELDS | AUDIT_FIELDS
SYSTEM_FIELDS = frozenset({"id", "createdAt", "updatedAt"})
UPDATABLE_FIELDS = SOURCE_FIELDS | MODERATION_FIELDS

HOURS_FIELDS = ("dayOfWeek", "openTime", "closeTime")
EVENT_FIELDS = ("title", "description", "date", "time", "endTime")


def new_id() -> str:
    """Generate a lexicographically sortable unique identifier (ULID)."""
    return str(ULID())


def _lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower().strip()
    if isinstance(value, (list, tuple)):
        return [str(item).lower().strip() for item in value]
    return str(value).lower().strip()


def derive_lower_fields(record: dict[str, Any]) -> dict[str, Any]:
    """
    Compute the lowercase shadow fields for whatever sources are present.

    Args:
        record: Full or partial bookshop record

    Returns:
        dict: Derived field name -> lowercase/trimmed value. Sources that are
        absent or None produce no entry.

    Example:
        derive_lower_fields({"name": " Indy Reads ", "categories": ["Used Books"]})
        # {"nameLower": "indy reads", "categoriesLower": ["used books"]}
    """
    derived = {}
    for source, target in DERIVED_FIELDS.items():
        value = record.get(source)
        if value is None:
            continue
        derived[target] = _lower(value)
    return derived


def require_name(value: Any) -> None:
    """
    Reject a missing or blank bookshop name.

    ``nameLower`` sorts the ``byApproval`` index, so every primary item
    needs a non-empty name.

    Raises:
        InvalidField: If value is not a string with visible characters
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidField(["name"], 'Field "name" is required and cannot be blank')


def coerce_flag(field: str, value: Any) -> bool:
    """
    Interpret a boolean-like moderation value.

    Accepts real booleans and the strings "true"/"false" in any case.

    Raises:
        InvalidField: If the value is anything else
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise InvalidField([field], f'Field "{field}" must be true or false')


def _normalize_entries(
    field: str, entries: Any, allowed: tuple[str, ...]
) -> list[dict[str, Any]]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise InvalidField([field], f'Field "{field}" must be a list')

    normalized = []
    seen_ids = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise InvalidField([field], f'Entries in "{field}" must be objects')

        entry_id = entry.get("id") or new_id()
        if entry_id in seen_ids:
            raise InvalidField([field], f'Duplicate id "{entry_id}" in "{field}"')
        seen_ids.add(entry_id)

        item = {"id": entry_id}
        for key in allowed:
            if key in entry and entry[key] is not None:
                item[key] = entry[key]
        normalized.append(item)
    return normalized


def normalize_hours(hours: Any) -> list[dict[str, Any]]:
    """
    Validate weekly opening hours and fill in missing entry ids.

    dayOfWeek is matched case-insensitively and stored lowercase.

    Raises:
        InvalidField: On a non-list value, unknown day, or duplicate entry id
    """
    normalized = _normalize_entries("hours", hours, HOURS_FIELDS)
    for entry in normalized:
        day = str(entry.get("dayOfWeek", "")).strip().lower()
        try:
            entry["dayOfWeek"] = DayOfWeek(day).value
        except ValueError:
            raise InvalidField(
                ["hours"], f'Invalid dayOfWeek "{entry.get("dayOfWeek")}"'
            ) from None
    return normalized


def normalize_events(events: Any) -> list[dict[str, Any]]:
    """Validate event entries and fill in missing ids."""
    return _normalize_entries("events", events, EVENT_FIELDS)


def normalize_categories(categories: Any) -> list[str]:
    if categories is None:
        return []
    if not isinstance(categories, list) or not all(isinstance(c, str) for c in categories):
        raise InvalidField(["categories"], 'Field "categories" must be a list of strings')
    return list(categories)


def normalize_list_field(field: str, value: Any) -> list[Any]:
    if field == "hours":
        return normalize_hours(value)
    if field == "events":
        return normalize_events(value)
    return normalize_categories(value)


def check_transition(
    existing: dict[str, Any], approved: bool | None = None, deleted: bool | None = None
) -> None:
    """
    Enforce the moderation state machine.

    Records enter as (pending, active). The only moves are pending -> approved
    and active -> deleted; re-asserting the current state is always allowed.

    Raises:
        InvalidTransition: On approved -> pending or deleted -> active
    """
    if approved is False and existing.get("approved"):
        raise InvalidTransition(["approved"], "An approved bookshop cannot return to pending")
    if deleted is False and existing.get("deleted"):
        raise InvalidTransition(["deleted"], "A deleted bookshop cannot be restored")
