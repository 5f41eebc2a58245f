"""
Configuration and AWS client initialization for Indy Book Crawl Lambda handlers

This module provides:
- AWS service clients (DynamoDB)
- Environment variable configuration
- Constants used across handlers and the bookshop store
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config

if TYPE_CHECKING:
    from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

# Constants
MAX_STRING_LENGTH = 500  # Maximum length for short string fields
MAX_DESCRIPTION_LENGTH = 5000
# Each category and event gets its own index row; a patch touching both must
# stay under DynamoDB's 100-action transaction limit (old + new rows + 1).
MAX_CATEGORIES = 20
MAX_EVENTS = 25
MAX_HOURS = 21
GEOCODE_RATE_LIMIT_SECONDS = 1.0
GEOCODE_TIMEOUT_SECONDS = 3

# Environment configuration
AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
BOOKSHOP_TABLE_NAME = os.environ.get("BOOKSHOP_TABLE")
ADMIN_GROUP = os.environ.get("ADMIN_GROUP", "admins")
GEOCODE_URL = os.environ.get("GEOCODE_URL", "https://nominatim.openstreetmap.org/search")
GEOCODE_USER_AGENT = os.environ.get("GEOCODE_USER_AGENT", "indy-book-crawl/1.0")

# Initialize AWS clients with type hints
dynamodb: "DynamoDBServiceResource" = boto3.resource(
    "dynamodb",
    region_name=AWS_REGION,
    config=Config(retries={"max_attempts": 3, "mode": "standard"}),
)

# Initialize DynamoDB table
# For type checking: treat as non-None (tests will mock this)
# For production: Lambda environment must have BOOKSHOP_TABLE set
if BOOKSHOP_TABLE_NAME:
    bookshops_table: "Table" = dynamodb.Table(BOOKSHOP_TABLE_NAME)
else:
    bookshops_table = None  # type: ignore[assignment]
