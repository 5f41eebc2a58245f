"""
Bookshop record store

All reads and writes of bookshop records go through BookshopStore. Each
operation touches one bookshop: its primary item plus the category/event
index rows under the same partition, written together in one transaction
when they change.

Concurrency: patch() is read-modify-write. Without ``expected_updated_at``
two concurrent patches race and the last writer wins; passing it turns the
write into a conditional one that raises Conflict.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError

try:
    from utils.dynamodb import (
        build_transact_update,
        build_update_params,
        deserialize_item,
        serialize_item,
    )
except ImportError:
    from crawl_backend.utils.dynamodb import (
        build_transact_update,
        build_update_params,
        deserialize_item,
        serialize_item,
    )

from .errors import Conflict, InvalidField, NotFound, StoreError, StoreUnavailable
from .keys import (
    APPROVAL_INDEX,
    BOOKSHOP_PREFIX,
    CATEGORY_DATE_INDEX,
    category_key,
    date_key,
    encode_bookshop_key,
    flag_to_store,
    from_item,
    index_rows,
    is_primary_item,
    to_item,
)
from .schema import (
    LIST_FIELDS,
    SOURCE_FIELDS,
    derive_lower_fields,
    new_id,
    normalize_list_field,
    require_name,
)
from .updates import build_bookshop_update, diff_index_rows, format_timestamp

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.service_resource import Table

logger = logging.getLogger(__name__)

BATCH_GET_LIMIT = 100
TRANSACTION_LIMIT = 100
INDEXED_FIELDS = frozenset({"categories", "events"})
NOT_DELETED_FILTER = "(attribute_not_exists(deleted) OR deleted = :notDeleted)"
SEARCH_FIELDS = ("nameLower", "descriptionLower", "cityLower")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")  # type: ignore[return-value]


def _condition_failed(error: ClientError) -> bool:
    code = _error_code(error)
    if code == "ConditionalCheckFailedException":
        return True
    if code == "TransactionCanceledException":
        reasons = error.response.get("CancellationReasons", [])  # type: ignore[typeddict-item]
        return any(reason.get("Code") == "ConditionalCheckFailed" for reason in reasons)
    return False


def _search_text(record: dict[str, Any]) -> list[str]:
    values = [record.get(field) or "" for field in SEARCH_FIELDS]
    values.extend(record.get("categoriesLower") or [])
    return values


def _unique_bookshop_ids(rows: Iterable[dict[str, Any]]) -> list[str]:
    ids: list[str] = []
    for row in rows:
        bookshop_id = row.get("bookshopId")
        if bookshop_id and bookshop_id not in ids:
            ids.append(bookshop_id)
    return ids


class BookshopStore:
    """
    Data access for bookshop records in the single DynamoDB table.

    Args:
        table: boto3 DynamoDB Table resource
        clock: Returns the current time (timezone-aware); defaults to UTC now
        id_factory: Returns new bookshop ids; defaults to ULIDs
    """

    def __init__(
        self,
        table: "Table",
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.table = table
        self._clock = clock or _utcnow
        self._new_id = id_factory or new_id

    @property
    def _client(self):
        # Transactions and batch reads are only on the low-level client
        return self.table.meta.client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load(self, bookshop_id: str, consistent: bool = False) -> dict[str, Any] | None:
        try:
            response = self.table.get_item(
                Key=encode_bookshop_key(bookshop_id), ConsistentRead=consistent
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"Failed to read bookshop {bookshop_id}: {e}") from e
        return response.get("Item")

    def get(self, bookshop_id: str, include_deleted: bool = False) -> dict[str, Any]:
        """
        Fetch one bookshop by id.

        Raises:
            NotFound: If no such bookshop exists, or it is soft-deleted and
                include_deleted is False
            StoreUnavailable: If DynamoDB fails
        """
        item = self._load(bookshop_id)
        if not item:
            raise NotFound(bookshop_id)

        record = from_item(item)
        if record["deleted"] and not include_deleted:
            logger.info(f"Bookshop {bookshop_id} is soft-deleted; hiding it")
            raise NotFound(bookshop_id)
        return record

    def _collect(self, operation: Callable[..., Any], **params: Any) -> list[dict[str, Any]]:
        """Run a query/scan and follow LastEvaluatedKey until exhausted."""
        try:
            response = operation(**params)
            items = list(response.get("Items", []))

            while "LastEvaluatedKey" in response:
                response = operation(ExclusiveStartKey=response["LastEvaluatedKey"], **params)
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"Failed to read bookshops: {e}") from e
        return items

    def _batch_get(self, bookshop_ids: list[str]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        table_name = self.table.name

        for start in range(0, len(bookshop_ids), BATCH_GET_LIMIT):
            chunk = bookshop_ids[start:start + BATCH_GET_LIMIT]
            request = {
                table_name: {"Keys": [serialize_item(encode_bookshop_key(i)) for i in chunk]}
            }
            while request:
                try:
                    response = self._client.batch_get_item(RequestItems=request)
                except (ClientError, BotoCoreError) as e:
                    raise StoreUnavailable(f"Failed to read bookshops: {e}") from e
                for raw in response.get("Responses", {}).get(table_name, []):
                    items.append(deserialize_item(raw))
                request = response.get("UnprocessedKeys") or {}

        return items

    def _query_index(self, partition_value: str) -> list[dict[str, Any]]:
        rows = self._collect(
            self.table.query,
            IndexName=CATEGORY_DATE_INDEX,
            KeyConditionExpression="GSI1PK = :pk",
            ExpressionAttributeValues={":pk": partition_value},
        )
        return self._batch_get(_unique_bookshop_ids(rows))

    def _query_approval(self, approved: bool, include_deleted: bool) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "IndexName": APPROVAL_INDEX,
            "KeyConditionExpression": "approved = :approved",
            "ExpressionAttributeValues": {":approved": flag_to_store(approved)},
        }
        if not include_deleted:
            params["FilterExpression"] = NOT_DELETED_FILTER
            params["ExpressionAttributeValues"][":notDeleted"] = "false"
        return self._collect(self.table.query, **params)

    def _scan_bookshops(self, include_deleted: bool) -> list[dict[str, Any]]:
        # No index covers "everything": full scan, limited to primary items
        filter_expression = "begins_with(SK, :prefix)"
        values = {":prefix": BOOKSHOP_PREFIX}
        if not include_deleted:
            filter_expression += f" AND {NOT_DELETED_FILTER}"
            values[":notDeleted"] = "false"
        return self._collect(
            self.table.scan,
            FilterExpression=filter_expression,
            ExpressionAttributeValues=values,
        )

    @staticmethod
    def _matches(
        record: dict[str, Any], approved: bool | None, include_deleted: bool, needle: str
    ) -> bool:
        if record["deleted"] and not include_deleted:
            return False
        if approved is not None and record["approved"] != approved:
            return False
        if needle and not any(needle in value for value in _search_text(record)):
            return False
        return True

    def list_bookshops(
        self,
        approved: bool | None = None,
        include_deleted: bool = False,
        category: str | None = None,
        query: str | None = None,
        sort_by_name: bool = True,
    ) -> list[dict[str, Any]]:
        """
        List bookshops matching the given filters.

        Access path, first match wins: category -> GSI1 query, approved ->
        byApproval index query, otherwise a full table scan. ``query`` is a
        case-insensitive substring filter applied in memory over the
        lowercase fields, so it costs a pass over every candidate record.

        Args:
            approved: Only approved (True) or only pending (False) bookshops
            include_deleted: Also return soft-deleted bookshops
            category: Category tag, matched case-insensitively
            query: Free-text search string
            sort_by_name: Sort results by nameLower

        Returns:
            list: Matching records
        """
        if category:
            items = self._query_index(category_key(category))
        elif approved is not None:
            items = self._query_approval(approved, include_deleted)
        else:
            items = self._scan_bookshops(include_deleted)

        needle = query.lower().strip() if query else ""
        records = [from_item(item) for item in items if is_primary_item(item)]
        results = [r for r in records if self._matches(r, approved, include_deleted, needle)]

        if sort_by_name:
            results.sort(key=lambda r: (r.get("nameLower", ""), r["id"]))

        logger.info(f"Listed {len(results)} bookshops (of {len(records)} candidates)")
        return results

    def search(self, query: str, include_deleted: bool = False) -> list[dict[str, Any]]:
        """Approved bookshops whose name, description, city or categories contain ``query``."""
        if not query or not query.strip():
            return []
        return self.list_bookshops(approved=True, include_deleted=include_deleted, query=query)

    def list_events(
        self,
        date: str | None = None,
        approved: bool | None = True,
        include_deleted: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Flatten bookshop events into one chronological list.

        Each entry is the event plus ``bookshopId`` and ``bookshopName``.
        With ``date`` the GSI1 date rows narrow the bookshops to read.
        """
        if date:
            items = self._query_index(date_key(date))
            records = [
                r for r in (from_item(item) for item in items)
                if self._matches(r, approved, include_deleted, "")
            ]
        else:
            records = self.list_bookshops(
                approved=approved, include_deleted=include_deleted, sort_by_name=False
            )

        events = []
        for record in records:
            for event in record.get("events") or []:
                if date and event.get("date") != date.strip():
                    continue
                events.append({**event, "bookshopId": record["id"], "bookshopName": record.get("name")})

        events.sort(key=lambda e: (e.get("date", ""), e.get("time", ""), e.get("title", "")))
        return events

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _transact(self, actions: list[dict[str, Any]], on_condition_failed: StoreError) -> None:
        if len(actions) > TRANSACTION_LIMIT:
            raise InvalidField(
                ["categories", "events"],
                f"Write needs {len(actions)} actions; DynamoDB allows {TRANSACTION_LIMIT} per transaction",
            )
        try:
            self._client.transact_write_items(TransactItems=actions)
        except ClientError as e:
            if _condition_failed(e):
                raise on_condition_failed from e
            raise StoreUnavailable(f"Transaction failed: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"Transaction failed: {e}") from e

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Create a new pending bookshop.

        Assigns the id and both timestamps, derives the lowercase fields and
        writes the primary item with its index rows in one transaction.

        Raises:
            InvalidField: If data contains fields outside the editable schema, has
                no name, or carries too many categories/events for one transaction
            StoreUnavailable: If DynamoDB fails
        """
        unknown = set(data) - SOURCE_FIELDS
        if unknown:
            raise InvalidField(unknown)
        require_name(data.get("name"))

        now = format_timestamp(self._clock())
        record = {k: v for k, v in data.items() if v is not None and v != ""}
        for field in LIST_FIELDS:
            record[field] = normalize_list_field(field, data.get(field))

        record.update(
            id=self._new_id(),
            approved=False,
            deleted=False,
            createdAt=now,
            updatedAt=now,
        )
        record.update(derive_lower_fields(record))

        item = to_item(record)
        table_name = self.table.name
        actions = [{
            "Put": {
                "TableName": table_name,
                "Item": serialize_item(item),
                "ConditionExpression": "attribute_not_exists(PK)",
            }
        }]
        for row in index_rows(record).values():
            actions.append({"Put": {"TableName": table_name, "Item": serialize_item(row)}})

        self._transact(actions, Conflict(record["id"]))
        logger.info(f"Created bookshop {record['id']} with {len(actions) - 1} index rows")
        return from_item(item)

    def _apply(
        self,
        bookshop_id: str,
        existing: dict[str, Any],
        updates: dict[str, Any],
        expected_updated_at: str | None = None,
    ) -> dict[str, Any]:
        if expected_updated_at is not None and existing.get("updatedAt") != expected_updated_at:
            raise Conflict(bookshop_id)

        staged = build_bookshop_update(bookshop_id, existing, updates, self._clock())

        condition = f"attribute_exists(PK) AND {NOT_DELETED_FILTER}"
        condition_values = {":notDeleted": "false"}
        if expected_updated_at is not None:
            condition += " AND updatedAt = :expectedUpdatedAt"
            condition_values[":expectedUpdatedAt"] = expected_updated_at
        failure: StoreError = (
            Conflict(bookshop_id) if expected_updated_at is not None else NotFound(bookshop_id)
        )

        params = build_update_params(
            key=staged.key,
            fields=staged.assignments,
            allow_remove=True,
            condition_expression=condition,
            condition_values=condition_values,
        )

        deletes: list[dict[str, str]] = []
        puts: list[dict[str, Any]] = []
        if INDEXED_FIELDS & updates.keys():
            deletes, puts = diff_index_rows(existing, staged.record)

        logger.info(f"Updating bookshop {bookshop_id} fields: {sorted(staged.assignments)}")

        if not deletes and not puts:
            try:
                response = self.table.update_item(**params)
            except ClientError as e:
                if _condition_failed(e):
                    raise failure from e
                raise StoreUnavailable(f"Failed to update bookshop {bookshop_id}: {e}") from e
            except BotoCoreError as e:
                raise StoreUnavailable(f"Failed to update bookshop {bookshop_id}: {e}") from e
            return from_item(response["Attributes"])

        table_name = self.table.name
        actions = [build_transact_update(table_name, params)]
        for key in deletes:
            actions.append({"Delete": {"TableName": table_name, "Key": serialize_item(key)}})
        for row in puts:
            actions.append({"Put": {"TableName": table_name, "Item": serialize_item(row)}})

        self._transact(actions, failure)
        logger.info(
            f"Bookshop {bookshop_id} index rows: {len(deletes)} removed, {len(puts)} written"
        )

        # Transactions cannot return the new item
        item = self._load(bookshop_id, consistent=True)
        if not item:
            raise NotFound(bookshop_id)
        return from_item(item)

    def patch(
        self,
        bookshop_id: str,
        updates: dict[str, Any],
        expected_updated_at: str | None = None,
    ) -> dict[str, Any]:
        """
        Apply a partial update to an existing, non-deleted bookshop.

        Args:
            bookshop_id: Target bookshop id
            updates: Sparse field -> value payload; empty only bumps updatedAt
            expected_updated_at: If given, fail with Conflict unless the stored
                updatedAt still equals it

        Returns:
            dict: The full record after the update

        Raises:
            NotFound: If the bookshop is missing or soft-deleted
            InvalidField: If updates names unknown or read-only fields
            InvalidTransition: If a moderation flag would move backwards
            Conflict: If expected_updated_at no longer matches
            StoreUnavailable: If DynamoDB fails
        """
        existing = self.get(bookshop_id)
        return self._apply(bookshop_id, existing, updates, expected_updated_at)

    def approve(self, bookshop_id: str) -> dict[str, Any]:
        """Move a pending bookshop to approved (no-op if already approved)."""
        return self.patch(bookshop_id, {"approved": True})

    def soft_delete(self, bookshop_id: str, actor: str | None) -> dict[str, Any]:
        """
        Mark a bookshop deleted, recording when and by whom.

        Deleting an already-deleted bookshop changes nothing and returns the
        stored record, so deletedAt/deletedBy keep their first values.

        Raises:
            NotFound: If the bookshop does not exist at all
        """
        existing = self.get(bookshop_id, include_deleted=True)
        if existing["deleted"]:
            logger.info(f"Bookshop {bookshop_id} already deleted; nothing to do")
            return existing

        updates = {
            "deleted": True,
            "deletedAt": format_timestamp(self._clock()),
            "deletedBy": actor or "unknown",
        }
        return self._apply(bookshop_id, existing, updates)
