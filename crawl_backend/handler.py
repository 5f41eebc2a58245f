"""
Lambda handlers for the Indy Book Crawl API

This module serves as the entry point for all Lambda functions.
It re-exports handlers from their respective modules for Lambda function configuration.

Architecture:
- API Gateway -> Lambda -> DynamoDB (single bookshop table, see store/keys.py)
- API Gateway -> Lambda -> Nominatim (ZIP code geocoding for the admin form)
- Cognito user pool authorizer; the "admins" group gates all writes

Handlers:
1. list_bookshops_handler: GET /bookshops (category, q, admin-only approved/includeDeleted)
2. search_bookshops_handler: GET /bookshops/search?q=
3. get_bookshop_handler: GET /bookshops/{id}
4. list_events_handler: GET /events?date=
5. geocode_handler: GET /geocode?zipCode=
6. create_bookshop_handler: POST /bookshops (admin only)
7. patch_bookshop_handler: PATCH /bookshops/{id} (admin only)
8. approve_bookshop_handler: POST /bookshops/{id}/approve (admin only)
9. delete_bookshop_handler: DELETE /bookshops/{id}, soft delete (admin only)
10. options_handler: CORS preflight for every route
"""

# Re-export handlers for Lambda function configuration
# Support both local development (crawl_backend.X) and Lambda deployment (X)
try:
    # Lambda deployment (files are in root, not in crawl_backend/)
    from handlers.admin_handlers import (
        approve_bookshop_handler,
        create_bookshop_handler,
        delete_bookshop_handler,
        patch_bookshop_handler,
    )
    from handlers.bookshop_handlers import (
        geocode_handler,
        get_bookshop_handler,
        list_bookshops_handler,
        list_events_handler,
        options_handler,
        search_bookshops_handler,
    )
    from config import bookshops_table
except ImportError:
    # Local development / testing (with crawl_backend package structure)
    from crawl_backend.handlers.admin_handlers import (
        approve_bookshop_handler,
        create_bookshop_handler,
        delete_bookshop_handler,
        patch_bookshop_handler,
    )
    from crawl_backend.handlers.bookshop_handlers import (
        geocode_handler,
        get_bookshop_handler,
        list_bookshops_handler,
        list_events_handler,
        options_handler,
        search_bookshops_handler,
    )
    from crawl_backend.config import bookshops_table

# Make handlers available at module level for Lambda
__all__ = [
    "list_bookshops_handler",
    "search_bookshops_handler",
    "get_bookshop_handler",
    "list_events_handler",
    "geocode_handler",
    "create_bookshop_handler",
    "patch_bookshop_handler",
    "approve_bookshop_handler",
    "delete_bookshop_handler",
    "options_handler",
    # Also export config for tests
    "bookshops_table",
]
