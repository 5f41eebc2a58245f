"""
Partial-update builder for bookshop records

Turns a sparse ``{field: new_value}`` payload into the attribute assignments
for a single DynamoDB UpdateItem, keeping the derived lowercase fields and
the string-typed moderation flags consistent with their sources.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, NamedTuple

try:
    from utils.dynamodb import to_dynamo_value
except ImportError:
    from crawl_backend.utils.dynamodb import to_dynamo_value

from .errors import InvalidField
from .keys import encode_bookshop_key, flag_to_store, index_rows
from .schema import (
    AUDIT_FIELDS,
    DERIVED_FIELDS,
    FLAG_FIELDS,
    LIST_FIELDS,
    UPDATABLE_FIELDS,
    check_transition,
    coerce_flag,
    derive_lower_fields,
    normalize_list_field,
    require_name,
)


class StagedUpdate(NamedTuple):
    """
    A prepared bookshop mutation.

    key: primary key of the target item
    assignments: attribute -> storage value (None means REMOVE)
    existed: whether the target record was found by the caller
    record: the in-memory record as it will read after the write
    """

    key: dict[str, str]
    assignments: dict[str, Any]
    existed: bool
    record: dict[str, Any]


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with fixed microsecond precision so strings sort chronologically."""
    return moment.astimezone(UTC).isoformat(timespec="microseconds")


def next_timestamp(previous: str | None, now: datetime) -> str:
    """
    Timestamp for updatedAt that is strictly later than ``previous``.

    If the clock has not moved past the stored value the previous value is
    bumped by one microsecond.
    """
    if previous:
        try:
            prior = datetime.fromisoformat(previous)
        except ValueError:
            prior = None
        if prior is not None:
            if prior.tzinfo is None:
                prior = prior.replace(tzinfo=UTC)
            if now <= prior:
                now = prior + timedelta(microseconds=1)
    return format_timestamp(now)


def build_bookshop_update(
    bookshop_id: str,
    existing: dict[str, Any] | None,
    updates: dict[str, Any],
    now: datetime,
) -> StagedUpdate:
    """
    Stage a partial update of a bookshop.

    Args:
        bookshop_id: Target bookshop id
        existing: Current in-memory record, or None if the caller did not find one
        updates: Sparse field -> value payload (may be empty)
        now: Current time, used for updatedAt

    Returns:
        StagedUpdate: key, assignments, existed flag and the resulting record

    Raises:
        InvalidField: If the payload names a field outside the schema, blanks
            the name, sets deletedAt/deletedBy without deleted=true, or a
            flag/list value cannot be interpreted
        InvalidTransition: If a moderation flag would move backwards

    Example:
        staged = build_bookshop_update("01HX", record, {"name": "New Name"}, now)
        # staged.assignments == {"name": "New Name", "nameLower": "new name",
        #                        "updatedAt": "2024-05-01T12:00:00.000000+00:00"}
    """
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidField(unknown)

    if "name" in updates:
        require_name(updates["name"])

    current = existing or {}
    flags = {field: coerce_flag(field, updates[field]) for field in FLAG_FIELDS if field in updates}
    check_transition(current, **flags)

    audit = sorted(AUDIT_FIELDS & updates.keys())
    if audit and flags.get("deleted") is not True:
        raise InvalidField(audit, f"{', '.join(audit)} can only be set together with deleted=true")

    assignments: dict[str, Any] = {}
    changes: dict[str, Any] = {}

    for field, value in updates.items():
        if field in FLAG_FIELDS:
            changes[field] = flags[field]
            assignments[field] = flag_to_store(flags[field])
            continue

        if field in LIST_FIELDS:
            value = normalize_list_field(field, value)

        changes[field] = value
        assignments[field] = to_dynamo_value(value)

        if field in DERIVED_FIELDS:
            target = DERIVED_FIELDS[field]
            derived = derive_lower_fields({field: value}).get(target)
            changes[target] = derived
            assignments[target] = derived

    updated_at = next_timestamp(current.get("updatedAt"), now)
    changes["updatedAt"] = updated_at
    assignments["updatedAt"] = updated_at

    record = {**current, **changes}
    # Mirrors the REMOVE semantics of build_update_expression(allow_remove=True)
    record = {k: v for k, v in record.items() if v is not None and v != ""}

    return StagedUpdate(
        key=encode_bookshop_key(bookshop_id),
        assignments=assignments,
        existed=existing is not None,
        record=record,
    )


def diff_index_rows(
    before: dict[str, Any] | None, after: dict[str, Any]
) -> tuple[list[dict[str, str]], list[dict[str, Any]]]:
    """
    Compare the category/event rows of two versions of a record.

    Returns:
        tuple: (keys of rows to delete, rows to put). A row whose sort key
        survives but whose contents changed is only put, never deleted.
    """
    old_rows = index_rows(before) if before else {}
    new_rows = index_rows(after)

    deletes = [{"PK": row["PK"], "SK": sk} for sk, row in old_rows.items() if sk not in new_rows]
    puts = [row for sk, row in new_rows.items() if old_rows.get(sk) != row]
    return deletes, puts
