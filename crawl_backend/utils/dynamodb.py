"""
DynamoDB utilities for Indy Book Crawl

Provides functions for building DynamoDB update expressions and for moving
values between Python types and what boto3 accepts.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def build_update_expression(
    fields: dict[str, Any], allow_remove: bool = False
) -> tuple[str, dict[str, Any], dict[str, str]]:
    """
    Build DynamoDB update expression from a dictionary of fields.

    Args:
        fields: Dictionary of field names to values
        allow_remove: If True, None values will REMOVE the attribute

    Returns:
        tuple: (update_expression, expression_attribute_values, expression_attribute_names)

    Example:
        fields = {"name": "Indy Reads", "website": None}
        expr, values, names = build_update_expression(fields, allow_remove=True)
        # expr = "SET #name = :name REMOVE #website"
        # values = {":name": "Indy Reads"}
        # names = {"#name": "name", "#website": "website"}
    """
    update_expr_parts = []
    remove_expr_parts = []
    expr_attr_values: dict[str, Any] = {}
    expr_attr_names: dict[str, str] = {}

    for field, value in fields.items():
        # Use attribute name placeholders to avoid reserved word conflicts
        name_placeholder = f"#{field}"
        value_placeholder = f":{field}"

        expr_attr_names[name_placeholder] = field

        if allow_remove and (value is None or value == ""):
            remove_expr_parts.append(name_placeholder)
        else:
            update_expr_parts.append(f"{name_placeholder} = {value_placeholder}")
            expr_attr_values[value_placeholder] = value

    update_expression_parts = []
    if update_expr_parts:
        update_expression_parts.append("SET " + ", ".join(update_expr_parts))
    if remove_expr_parts:
        update_expression_parts.append("REMOVE " + ", ".join(remove_expr_parts))

    update_expression = " ".join(update_expression_parts)

    return update_expression, expr_attr_values, expr_attr_names


def build_update_params(
    key: Dict[str, Any],
    fields: Dict[str, Any],
    allow_remove: bool = False,
    condition_expression: str | None = None,
    condition_values: Dict[str, Any] | None = None,
    return_values: str | None = "ALL_NEW"
) -> Dict[str, Any]:
    """
    Build complete DynamoDB update_item parameters.

    Handles the common pattern of building update expressions and
    conditionally including ExpressionAttributeValues when not empty.

    Args:
        key: Primary key for the item to update
        fields: Dictionary of field names to values
        allow_remove: If True, None/empty values will REMOVE the attribute
        condition_expression: Optional condition expression
        condition_values: Placeholder values referenced by the condition expression
        return_values: Return values option (default: ALL_NEW, None to omit)

    Returns:
        dict: Complete parameters for table.update_item()

    Example:
        params = build_update_params(
            key={"PK": "BOOKSHOP#01HX", "SK": "BOOKSHOP#01HX"},
            fields={"name": "Indy Reads", "website": None},
            allow_remove=True,
            condition_expression="attribute_exists(PK)"
        )
        response = table.update_item(**params)
    """
    update_expression, expr_values, expr_names = build_update_expression(
        fields, allow_remove=allow_remove
    )

    if condition_values:
        expr_values.update(condition_values)

    params: Dict[str, Any] = {
        "Key": key,
        "UpdateExpression": update_expression,
        "ExpressionAttributeNames": expr_names,
    }

    if return_values:
        params["ReturnValues"] = return_values

    # REMOVE-only operations have no values
    if expr_values:
        params["ExpressionAttributeValues"] = expr_values

    if condition_expression:
        params["ConditionExpression"] = condition_expression

    return params


def to_dynamo_value(value: Any) -> Any:
    """
    Convert a Python value into something the boto3 resource layer accepts.

    boto3 rejects float, so floats become Decimal (via str to keep the
    printed precision). Lists and dicts are converted recursively.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo_value(v) for v in value]
    return value


def convert_decimal(value: Any) -> Any:
    """
    Convert Decimal types (from DynamoDB) to int or float for JSON serialization.

    Args:
        value: Value that might be a Decimal, or a list/dict containing them

    Returns:
        Converted value (int if whole number, float otherwise)
    """
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    if isinstance(value, dict):
        return {k: convert_decimal(v) for k, v in value.items()}
    if isinstance(value, list):
        return [convert_decimal(v) for v in value]
    return value


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a resource-style item into low-level client AttributeValue format."""
    return {k: _serializer.serialize(to_dynamo_value(v)) for k, v in item.items()}


def deserialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a low-level client item back into plain Python values (numbers stay Decimal)."""
    return {k: _deserializer.deserialize(v) for k, v in item.items()}


def build_transact_update(table_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Wrap update_item parameters as a TransactWriteItems "Update" action.

    Transactions go through the low-level client, so keys and values are
    serialized and ReturnValues (unsupported in transactions) is dropped.
    """
    update: Dict[str, Any] = {
        "TableName": table_name,
        "Key": serialize_item(params["Key"]),
        "UpdateExpression": params["UpdateExpression"],
        "ExpressionAttributeNames": params["ExpressionAttributeNames"],
    }
    if "ExpressionAttributeValues" in params:
        update["ExpressionAttributeValues"] = serialize_item(params["ExpressionAttributeValues"])
    if "ConditionExpression" in params:
        update["ConditionExpression"] = params["ConditionExpression"]
    return {"Update": update}
