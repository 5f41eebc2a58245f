"""
Unit tests for utility modules
"""

import json
import urllib.error
import urllib.request
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from crawl_backend.store.errors import (
    Conflict,
    InvalidField,
    InvalidTransition,
    NotFound,
    StoreUnavailable,
)
from crawl_backend.utils import geocode
from crawl_backend.utils.auth import get_actor, get_user_groups, get_user_id, is_admin
from crawl_backend.utils.dynamodb import (
    build_transact_update,
    build_update_expression,
    build_update_params,
    convert_decimal,
    deserialize_item,
    serialize_item,
    to_dynamo_value,
)
from crawl_backend.utils.response import (
    api_response,
    serialize_bookshop_response,
    store_error_response,
)
from crawl_backend.utils.validation import (
    get_header,
    get_path_param,
    get_query_param,
    parse_bool_param,
    parse_json_body,
    validate_bookshop_body,
)


def mock_urlopen_response(data):
    mock_response = Mock()
    mock_response.read.return_value = json.dumps(data).encode()
    mock_response.__enter__ = Mock(return_value=mock_response)
    mock_response.__exit__ = Mock(return_value=False)
    return mock_response


# ============================================================================
# DynamoDB Utility Tests
# ============================================================================


def test_build_update_expression_basic():
    """Test build_update_expression with basic fields"""

    fields = {"name": "Indy Reads", "city": "Indianapolis"}

    expr, values, names = build_update_expression(fields)

    assert "SET" in expr
    assert "#name = :name" in expr
    assert "#city = :city" in expr
    assert values[":name"] == "Indy Reads"
    assert values[":city"] == "Indianapolis"
    assert names["#name"] == "name"
    assert names["#city"] == "city"


def test_build_update_expression_with_remove():
    """Test build_update_expression removes None values when allow_remove=True"""

    fields = {"name": "Indy Reads", "website": None}

    expr, values, names = build_update_expression(fields, allow_remove=True)

    assert expr == "SET #name = :name REMOVE #website"
    assert ":name" in values
    assert ":website" not in values
    assert names["#website"] == "website"


def test_build_update_expression_removes_empty_string():
    """Test build_update_expression removes empty strings when allow_remove=True"""

    expr, values, names = build_update_expression({"website": ""}, allow_remove=True)

    assert expr == "REMOVE #website"
    assert len(values) == 0


def test_build_update_expression_without_allow_remove():
    """Test build_update_expression keeps None values when allow_remove=False"""

    expr, values, names = build_update_expression({"website": None}, allow_remove=False)

    assert "SET" in expr
    assert "REMOVE" not in expr
    assert values[":website"] is None


def test_build_update_params_basic():
    """Test build_update_params creates correct DynamoDB params"""

    params = build_update_params(
        key={"PK": "BOOKSHOP#1", "SK": "BOOKSHOP#1"},
        fields={"name": "Indy Reads"},
        condition_expression="attribute_exists(PK)",
    )

    assert params["Key"] == {"PK": "BOOKSHOP#1", "SK": "BOOKSHOP#1"}
    assert params["UpdateExpression"] == "SET #name = :name"
    assert params["ConditionExpression"] == "attribute_exists(PK)"
    assert params["ReturnValues"] == "ALL_NEW"


def test_build_update_params_with_remove_only():
    """Test build_update_params handles REMOVE-only operations"""

    params = build_update_params(key={"PK": "BOOKSHOP#1"}, fields={"website": ""}, allow_remove=True)

    assert "REMOVE" in params["UpdateExpression"]
    # ExpressionAttributeValues should not be present when empty
    assert "ExpressionAttributeValues" not in params


def test_build_update_params_merges_condition_values():
    params = build_update_params(
        key={"PK": "BOOKSHOP#1"},
        fields={"website": None},
        allow_remove=True,
        condition_expression="deleted = :notDeleted",
        condition_values={":notDeleted": "false"},
    )

    assert params["ExpressionAttributeValues"] == {":notDeleted": "false"}


def test_build_update_params_without_return_values():
    params = build_update_params(key={"PK": "BOOKSHOP#1"}, fields={"name": "X"}, return_values=None)

    assert "ReturnValues" not in params


def test_to_dynamo_value_converts_nested_floats():
    value = to_dynamo_value({"lat": 39.77, "tags": [1.5, "x"], "open": True, "n": 3})

    assert value == {"lat": Decimal("39.77"), "tags": [Decimal("1.5"), "x"], "open": True, "n": 3}


def test_convert_decimal_nested():
    value = convert_decimal({"a": Decimal("3"), "b": [Decimal("1.25")], "c": "x"})

    assert value == {"a": 3, "b": [1.25], "c": "x"}
    assert isinstance(value["a"], int)


def test_serialize_item_uses_attribute_values():
    serialized = serialize_item({"PK": "BOOKSHOP#1", "latitude": 39.5, "tags": ["a"]})

    assert serialized["PK"] == {"S": "BOOKSHOP#1"}
    assert serialized["latitude"] == {"N": "39.5"}
    assert serialized["tags"] == {"L": [{"S": "a"}]}
    assert deserialize_item(serialized)["latitude"] == Decimal("39.5")


def test_build_transact_update_drops_return_values():
    params = build_update_params(
        key={"PK": "BOOKSHOP#1", "SK": "BOOKSHOP#1"},
        fields={"name": "Indy Reads"},
        condition_expression="attribute_exists(PK)",
    )

    action = build_transact_update("Bookshop", params)

    update = action["Update"]
    assert update["TableName"] == "Bookshop"
    assert update["Key"] == {"PK": {"S": "BOOKSHOP#1"}, "SK": {"S": "BOOKSHOP#1"}}
    assert update["ExpressionAttributeValues"] == {":name": {"S": "Indy Reads"}}
    assert update["ConditionExpression"] == "attribute_exists(PK)"
    assert "ReturnValues" not in update


# ============================================================================
# Auth Utility Tests
# ============================================================================


def test_auth_reads_rest_api_claims():
    event = {
        "requestContext": {
            "authorizer": {
                "claims": {"sub": "u1", "email": "admin@example.com", "cognito:groups": "admins,editors"}
            }
        }
    }

    assert get_user_id(event) == "u1"
    assert get_user_groups(event) == ["admins", "editors"]
    assert is_admin(event) is True
    assert get_actor(event) == "admin@example.com"


def test_auth_reads_http_api_jwt_claims():
    event = {"requestContext": {"authorizer": {"jwt": {"claims": {"sub": "u2", "cognito:groups": "[admins]"}}}}}

    assert get_user_id(event) == "u2"
    assert is_admin(event) is True
    assert get_actor(event) == "u2"


def test_auth_anonymous_event():
    event = {"requestContext": {}}

    assert get_user_id(event) is None
    assert get_user_groups(event) == []
    assert is_admin(event) is False
    assert get_actor(event) == "unknown"


def test_auth_groups_as_list():
    event = {"requestContext": {"authorizer": {"claims": {"sub": "u3", "cognito:groups": ["readers"]}}}}

    assert get_user_groups(event) == ["readers"]
    assert is_admin(event) is False


# ============================================================================
# Validation Utility Tests
# ============================================================================


def test_get_path_param_decodes_value():
    value, error = get_path_param({"pathParameters": {"id": "shop%20one"}}, "id")

    assert value == "shop one"
    assert error is None


def test_get_path_param_missing():
    value, error = get_path_param({"pathParameters": None}, "id")

    assert value is None
    assert error["statusCode"] == 400


def test_query_params_and_booleans():
    event = {"queryStringParameters": {"q": "indy", "blank": "  ", "approved": "TRUE", "bad": "sure"}}

    assert get_query_param(event, "q") == "indy"
    assert get_query_param(event, "blank") is None
    assert get_query_param(event, "missing") is None
    assert parse_bool_param(event, "approved") is True
    assert parse_bool_param(event, "bad") is None
    assert parse_bool_param({"queryStringParameters": None}, "approved") is None


def test_get_header_is_case_insensitive():
    event = {"headers": {"if-match": '"2024-05-01"'}}

    assert get_header(event, "If-Match") == '"2024-05-01"'
    assert get_header({"headers": None}, "If-Match") is None


def test_parse_json_body_variants():
    assert parse_json_body({"body": '{"name": "X"}'}) == ({"name": "X"}, None)
    assert parse_json_body({"body": None}) == ({}, None)

    body, error = parse_json_body({"body": "not json"})
    assert body == {}
    assert error["statusCode"] == 400

    body, error = parse_json_body({"body": "[1, 2]"})
    assert error["statusCode"] == 400


def test_validate_bookshop_body_create_requires_name():
    error = validate_bookshop_body({"city": "Carmel"}, creating=True)

    assert error["statusCode"] == 400
    assert "name" in json.loads(error["body"])["message"]


def test_validate_bookshop_body_accepts_full_payload():
    body = {
        "name": "Indy Reads",
        "description": "Used books",
        "zipCode": "46204",
        "latitude": 39.77,
        "longitude": -86.15,
        "categories": ["Used Books"],
        "hours": [{"dayOfWeek": "monday", "openTime": "10:00", "closeTime": "18:00"}],
        "events": [{"title": "Author Talk", "date": "2024-05-01", "time": "19:00"}],
        "website": "https://indyreads.org",
    }

    assert validate_bookshop_body(body, creating=True) is None


@pytest.mark.parametrize(
    "body",
    [
        {"name": ""},
        {"name": None},
        {"latitude": 95},
        {"longitude": "west"},
        {"zipCode": "ABCDE"},
        {"categories": "Used Books"},
        {"hours": [{"dayOfWeek": "monday", "openTime": "25:00"}]},
        {"hours": [{"openTime": "10:00"}]},
        {"events": [{"title": "Talk", "date": "May 1"}]},
        {"events": [{"date": "2024-05-01"}]},
        {"approved": "yes"},
        {"description": "x" * 5001},
    ],
)
def test_validate_bookshop_body_patch_rejects(body):
    error = validate_bookshop_body(body, creating=False)

    assert error is not None
    assert error["statusCode"] == 400


def test_validate_bookshop_body_patch_allows_clearing_optional_fields():
    assert validate_bookshop_body({"website": None, "categories": None}, creating=False) is None


# ============================================================================
# Response Utility Tests
# ============================================================================


def test_api_response_converts_decimals_and_sets_cors():
    resp = api_response(200, {"latitude": Decimal("39.5"), "count": Decimal("2")})

    assert json.loads(resp["body"]) == {"latitude": 39.5, "count": 2}
    assert resp["headers"]["Access-Control-Allow-Origin"] == "*"
    assert "If-Match" in resp["headers"]["Access-Control-Allow-Headers"]


def test_api_response_empty_body():
    assert api_response(200, None)["body"] == ""


@pytest.mark.parametrize(
    "error, status, label",
    [
        (NotFound("x"), 404, "Not Found"),
        (InvalidField(["foo"]), 400, "Bad Request"),
        (InvalidTransition(["approved"], "nope"), 409, "Conflict"),
        (Conflict("x"), 409, "Conflict"),
        (StoreUnavailable("down"), 500, "Database Error"),
    ],
)
def test_store_error_response_status_codes(error, status, label):
    resp = store_error_response(error)

    assert resp["statusCode"] == status
    assert json.loads(resp["body"])["error"] == label


def test_serialize_bookshop_response_hides_internal_fields():
    record = {
        "id": "1",
        "name": "Indy Reads",
        "nameLower": "indy reads",
        "categoriesLower": [],
        "approved": True,
        "deleted": True,
        "deletedAt": "2024-05-01",
        "deletedBy": "admin",
    }

    public = serialize_bookshop_response(record)
    admin = serialize_bookshop_response(record, include_moderation=True)

    assert "nameLower" not in public
    assert "deleted" not in public
    assert public["hours"] == [] and public["events"] == [] and public["categories"] == []
    assert admin["deletedBy"] == "admin"
    assert "categoriesLower" not in admin


# ============================================================================
# Geocode Utility Tests
# ============================================================================


def test_fetch_coordinates_success():
    """Test successful lookup from the Nominatim search API"""

    mock_response = mock_urlopen_response([{"lat": "39.7684", "lon": "-86.1581"}])

    with patch.object(urllib.request, "urlopen", return_value=mock_response) as mock_urlopen:
        coordinates = geocode.fetch_coordinates("46204", "https://geo.example/search", "test-agent")

    assert coordinates == {"latitude": 39.7684, "longitude": -86.1581}
    request = mock_urlopen.call_args.args[0]
    assert "postalcode=46204" in request.full_url
    assert request.get_header("User-agent") == "test-agent"


def test_fetch_coordinates_not_found():
    with patch.object(urllib.request, "urlopen", return_value=mock_urlopen_response([])):
        assert geocode.fetch_coordinates("00000", "https://geo.example/search", "ua") is None


def test_fetch_coordinates_network_error():
    with patch.object(urllib.request, "urlopen", side_effect=urllib.error.URLError("down")):
        with pytest.raises(geocode.GeocodeUnavailable):
            geocode.fetch_coordinates("46204", "https://geo.example/search", "ua")


def test_fetch_coordinates_unexpected_payload():
    with patch.object(urllib.request, "urlopen", return_value=mock_urlopen_response([{"lat": "x"}])):
        with pytest.raises(geocode.GeocodeUnavailable):
            geocode.fetch_coordinates("46204", "https://geo.example/search", "ua")


def test_is_rate_limited_window():
    geocode._last_request.clear()

    assert geocode.is_rate_limited("46204", 1.0, now=100.0) is False
    assert geocode.is_rate_limited("46204", 1.0, now=100.5) is True
    assert geocode.is_rate_limited("46205", 1.0, now=100.5) is False
    assert geocode.is_rate_limited("46204", 1.0, now=101.2) is False
