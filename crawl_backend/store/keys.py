"""
Key scheme for the bookshop table (version 1)

Single-table layout, every item for a bookshop lives under one partition:

    PK                  SK                    GSI1PK               GSI1SK
    BOOKSHOP#<id>       BOOKSHOP#<id>         -                    -                (primary item)
    BOOKSHOP#<id>       CATEGORY#<category>   CATEGORY#<category>  BOOKSHOP#<id>    (category row)
    BOOKSHOP#<id>       EVENT#<eventId>       DATE#<YYYY-MM-DD>    BOOKSHOP#<id>    (event row)

Primary items also carry ``approved`` ("true"/"false") and ``nameLower``,
which key the sparse ``byApproval`` index. Index rows never carry
``approved`` so they stay out of it.
"""

from __future__ import annotations

from typing import Any

try:
    from utils.dynamodb import convert_decimal, to_dynamo_value
except ImportError:
    from crawl_backend.utils.dynamodb import convert_decimal, to_dynamo_value

from .schema import FLAG_FIELDS

KEY_SCHEME_VERSION = 1

CATEGORY_DATE_INDEX = "GSI1"
APPROVAL_INDEX = "byApproval"

BOOKSHOP_PREFIX = "BOOKSHOP#"
CATEGORY_PREFIX = "CATEGORY#"
EVENT_PREFIX = "EVENT#"
DATE_PREFIX = "DATE#"

KEY_ATTRIBUTES = ("PK", "SK", "GSI1PK", "GSI1SK", "schemaVersion")


def encode_bookshop_key(bookshop_id: str) -> dict[str, str]:
    """Primary key for a bookshop's main item."""
    if not bookshop_id:
        raise ValueError("Bookshop id must not be empty")
    key = f"{BOOKSHOP_PREFIX}{bookshop_id}"
    return {"PK": key, "SK": key}


def decode_bookshop_key(keys: dict[str, Any]) -> str:
    """
    Recover the bookshop id from a primary item key.

    Raises:
        ValueError: If the key is not a v1 bookshop primary key
    """
    pk = keys.get("PK", "")
    sk = keys.get("SK", "")
    if not isinstance(pk, str) or not pk.startswith(BOOKSHOP_PREFIX) or pk != sk:
        raise ValueError(f"Not a bookshop primary key: {keys!r}")
    bookshop_id = pk[len(BOOKSHOP_PREFIX):]
    if not bookshop_id:
        raise ValueError(f"Not a bookshop primary key: {keys!r}")
    return bookshop_id


def category_key(category: str) -> str:
    """GSI1 partition value for a category, matched case-insensitively."""
    return f"{CATEGORY_PREFIX}{category.lower().strip()}"


def date_key(date: str) -> str:
    return f"{DATE_PREFIX}{date.strip()}"


def index_rows(record: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """
    Build the category and event-date rows for a record.

    Returns:
        dict: Sort key -> full item. Duplicate categories collapse to one row;
        events without a date get no row.
    """
    bookshop_id = record["id"]
    pk = f"{BOOKSHOP_PREFIX}{bookshop_id}"
    gsi_sort = f"{BOOKSHOP_PREFIX}{bookshop_id}"

    rows: dict[str, dict[str, Any]] = {}
    for category in record.get("categories") or []:
        normalized = category.lower().strip()
        if not normalized:
            continue
        sk = f"{CATEGORY_PREFIX}{normalized}"
        rows[sk] = {
            "PK": pk,
            "SK": sk,
            "GSI1PK": category_key(normalized),
            "GSI1SK": gsi_sort,
            "bookshopId": bookshop_id,
            "category": normalized,
        }

    for event in record.get("events") or []:
        date = event.get("date")
        if not date:
            continue
        sk = f"{EVENT_PREFIX}{event['id']}"
        rows[sk] = {
            "PK": pk,
            "SK": sk,
            "GSI1PK": date_key(date),
            "GSI1SK": gsi_sort,
            "bookshopId": bookshop_id,
            "eventId": event["id"],
        }

    return rows


def flag_to_store(value: bool) -> str:
    return "true" if value else "false"


def to_item(record: dict[str, Any]) -> dict[str, Any]:
    """
    Convert an in-memory record into its primary DynamoDB item.

    Flags become "true"/"false" strings and floats become Decimal.
    """
    item = {k: to_dynamo_value(v) for k, v in record.items() if v is not None}
    for field in FLAG_FIELDS:
        if field in record:
            item[field] = flag_to_store(bool(record[field]))
    item.update(encode_bookshop_key(record["id"]))
    item["schemaVersion"] = KEY_SCHEME_VERSION
    return item


def from_item(item: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a primary DynamoDB item back into an in-memory record.

    Key attributes are dropped, flags become booleans (a missing ``deleted``
    means not deleted), and Decimals become int/float.
    """
    record = {k: convert_decimal(v) for k, v in item.items() if k not in KEY_ATTRIBUTES}
    if "id" not in record and "PK" in item:
        record["id"] = decode_bookshop_key(item)
    record["approved"] = str(item.get("approved", "false")).lower() == "true"
    record["deleted"] = str(item.get("deleted", "false")).lower() == "true"
    return record


def is_primary_item(item: dict[str, Any]) -> bool:
    sk = item.get("SK", "")
    return isinstance(sk, str) and sk.startswith(BOOKSHOP_PREFIX)
