#!/usr/bin/env python3
"""
Migrate legacy bookshop items to key scheme v1

Earlier versions of the API stored bookshops under several incompatible key
layouts. This script scans a table, recognises each legacy layout, rewrites
the item in the current layout (primary item + category/event index rows,
derived lowercase fields, string flags) and writes it to the target table.

Recognised legacy layouts:
    {"id": ...}                                  flat key
    {"PK": "BOOKSHOP#<id>"}                      partition key only
    {"PK": "BOOKSTORE#<id>", "SK": "METADATA#<id>"}, nested address/socials

Environment Variables (optional):
    AWS_PROFILE: AWS profile name (default: 'default')
    AWS_REGION: AWS region (default: 'us-east-1')
    SOURCE_TABLE: table to read legacy items from
    TARGET_TABLE: table to write v1 items to (default: SOURCE_TABLE)

Usage:
    python scripts/migrate-bookshops.py --source-table OldBookshops --target-table Bookshop --dry-run
"""

import argparse
import os
from datetime import UTC, datetime

import boto3

from crawl_backend.store.keys import KEY_SCHEME_VERSION, index_rows, to_item
from crawl_backend.store.schema import (
    LIST_FIELDS,
    SOURCE_FIELDS,
    derive_lower_fields,
    normalize_list_field,
    require_name,
)
from crawl_backend.store.updates import format_timestamp
from crawl_backend.utils.dynamodb import convert_decimal

PROFILE = os.environ.get("AWS_PROFILE", "default")
REGION = os.environ.get("AWS_REGION", "us-east-1")
SOURCE_TABLE = os.environ.get("SOURCE_TABLE", "")
TARGET_TABLE = os.environ.get("TARGET_TABLE", "")

LEGACY_PREFIXES = ("BOOKSHOP#", "BOOKSTORE#")


def legacy_id(item):
    """Return the bookshop id of a legacy item, or None if it is not one."""
    if item.get("schemaVersion") == KEY_SCHEME_VERSION:
        return None

    pk = item.get("PK")
    if pk is None:
        return item.get("id")

    sk = item.get("SK")
    for prefix in LEGACY_PREFIXES:
        if isinstance(pk, str) and pk.startswith(prefix):
            # Index rows of other layouts share the partition; only the
            # metadata/primary item carries the bookshop itself
            if sk is None or sk.startswith("METADATA#") or sk == pk:
                return item.get("id") or pk[len(prefix):]
    return None


def legacy_to_record(item, bookshop_id):
    """Flatten a legacy item into an in-memory record."""
    data = convert_decimal(dict(item.get("data") or item))

    address = data.get("address")
    if isinstance(address, dict):
        data["address"] = address.get("street", "")
        data.setdefault("city", address.get("city"))
        data.setdefault("state", address.get("state"))
        data.setdefault("zipCode", address.get("zip"))
        coordinates = address.get("coordinates") or address
        data.setdefault("latitude", coordinates.get("lat", coordinates.get("latitude")))
        data.setdefault("longitude", coordinates.get("lng", coordinates.get("longitude")))

    socials = data.get("socials") or {}
    for network in ("instagram", "facebook", "twitter"):
        if socials.get(network):
            data.setdefault(network, socials[network])

    record = {k: v for k, v in data.items() if k in SOURCE_FIELDS and v not in (None, "")}
    require_name(record.get("name"))
    for field in LIST_FIELDS:
        record[field] = normalize_list_field(field, data.get(field))

    now = format_timestamp(datetime.now(UTC))
    record["id"] = bookshop_id
    record["approved"] = str(item.get("approved", "false")).lower() == "true"
    record["deleted"] = str(item.get("deleted", "false")).lower() == "true"
    for field in ("deletedAt", "deletedBy"):
        if item.get(field):
            record[field] = item[field]
    record["createdAt"] = item.get("createdAt") or now
    record["updatedAt"] = item.get("updatedAt") or record["createdAt"]
    record.update(derive_lower_fields(record))
    return record


def main():
    parser = argparse.ArgumentParser(description="Migrate legacy bookshop items to key scheme v1")
    parser.add_argument("--source-table", default=SOURCE_TABLE, help="Table holding legacy items")
    parser.add_argument("--target-table", default=TARGET_TABLE, help="Table to write v1 items to")
    parser.add_argument("--profile", default=PROFILE, help="AWS profile name")
    parser.add_argument("--region", default=REGION, help="AWS region")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be written")
    args = parser.parse_args()

    if not args.source_table:
        parser.error("--source-table (or SOURCE_TABLE) is required")
    target_name = args.target_table or args.source_table

    session = boto3.Session(profile_name=args.profile, region_name=args.region)
    dynamodb = session.resource("dynamodb")
    source = dynamodb.Table(args.source_table)
    target = dynamodb.Table(target_name)

    print(f"🔍 Scanning legacy table: {args.source_table}")
    print(f"📊 Target table: {target_name}")
    print(f"🌍 Using AWS Profile: {args.profile}")
    if args.dry_run:
        print("🧪 Dry run: nothing will be written")
    print()

    found = 0
    migrated = 0
    skipped = 0
    failed = 0

    response = source.scan()
    items = response.get("Items", [])
    while "LastEvaluatedKey" in response:
        response = source.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
        items.extend(response.get("Items", []))

    for item in items:
        bookshop_id = legacy_id(item)
        if not bookshop_id:
            skipped += 1
            continue

        found += 1
        try:
            record = legacy_to_record(item, bookshop_id)
        except Exception as e:
            print(f"❌ Could not convert {bookshop_id}: {e}")
            failed += 1
            continue

        rows = index_rows(record)
        if args.dry_run:
            print(f"📝 Would migrate: {record.get('name', bookshop_id)} ({bookshop_id}), {len(rows)} index rows")
            migrated += 1
            continue

        try:
            with target.batch_writer() as batch:
                batch.put_item(Item=to_item(record))
                for row in rows.values():
                    batch.put_item(Item=row)
            print(f"✅ Migrated: {record.get('name', bookshop_id)} ({bookshop_id})")
            migrated += 1
        except Exception as e:
            print(f"❌ Failed to migrate {bookshop_id}: {e}")
            failed += 1

    print()
    print("=" * 60)
    print("📊 Migration Summary:")
    print(f"   Legacy bookshops found: {found}")
    print(f"   Bookshops migrated: {migrated}")
    print(f"   Items skipped (not legacy bookshops): {skipped}")
    print(f"   Failures: {failed}")
    print("=" * 60)

    if failed:
        print()
        print("⚠️  Some bookshops could not be migrated. Check errors above.")
    elif found and args.source_table == target_name and not args.dry_run:
        print()
        print("ℹ️  Legacy items were left in place; delete them once the new layout is verified.")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n⚠️  Migration interrupted by user")
    except Exception as e:
        print(f"\n❌ Migration failed: {e}")
        raise
