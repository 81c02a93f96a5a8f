"""
Storage Utilities

Marshalling and expression helpers shared by the gateway, the entity
repository and the event store.

Key Features:
- Item serialization/deserialization (Python values <-> DynamoDB attribute values)
- Placeholder binding for opaque filter expressions
- Key condition building for table and index queries
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from uuid import UUID

from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import Binary
from pydantic import BaseModel

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

VALUE_PLACEHOLDER = '?'
NAME_PLACEHOLDER = '$'


# =============================================================================
# Data Serialization
# =============================================================================

def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC; naive datetimes are assumed to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_dynamo_value(obj: Any) -> Any:
    """Convert a Python value into something boto3 can serialize.

    - pydantic models are dumped; ``None`` is kept and stored as NULL
    - datetimes become UTC ISO-8601 strings
    - floats become ``Decimal`` (boto3 rejects floats)
    - tuples and sets become lists, enums their value, UUIDs strings
    """
    if isinstance(obj, BaseModel):
        return to_dynamo_value(obj.model_dump())
    elif isinstance(obj, dict):
        return {str(k): to_dynamo_value(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple, set, frozenset)):
        return [to_dynamo_value(v) for v in obj]
    elif isinstance(obj, datetime):
        return to_utc(obj).isoformat()
    elif isinstance(obj, Enum):
        return to_dynamo_value(obj.value)
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, float):
        return Decimal(str(obj))
    return obj


def from_dynamo_value(obj: Any) -> Any:
    """Convert a deserialized DynamoDB value back into plain Python values.

    Whole-number ``Decimal`` values become ``int``, the rest ``float``.
    """
    if isinstance(obj, dict):
        return {k: from_dynamo_value(v) for k, v in obj.items()}
    elif isinstance(obj, (list, set)):
        return [from_dynamo_value(v) for v in obj]
    elif isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    elif isinstance(obj, Binary):
        return obj.value
    return obj


def model_to_item(model: BaseModel) -> Dict[str, Any]:
    """Convert a pydantic model to a DynamoDB item."""
    return to_dynamo_value(model)


def item_to_entity(item: Dict[str, Any], factory: Callable[..., Any]) -> Any:
    """Materialize a DynamoDB item through an entity factory.

    Args:
        item: DynamoDB item dictionary
        factory: Callable accepting the item attributes as keyword arguments

    Raises:
        ValidationError: If the factory rejects the item
    """
    try:
        return factory(**from_dynamo_value(item))
    except Exception as e:
        logger.error(f"Failed to convert item to entity: {e}")
        raise ValidationError(f"Failed to convert item to entity: {e}", original_error=e) from e


# =============================================================================
# Expression Building
# =============================================================================

def bind_placeholders(
    expression: str,
    args: Sequence[Any],
    prefix: str = "f",
) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """Bind positional placeholders in an opaque expression.

    ``?`` takes the next argument as a value, ``$`` takes the next argument as
    an attribute name. Everything else in the expression is left untouched.

    Args:
        expression: Expression such as ``"$ = ? AND category_code > ?"``
        args: Arguments in placeholder order
        prefix: Placeholder prefix, lets several expressions share one request

    Returns:
        Tuple of (expression, ExpressionAttributeNames, ExpressionAttributeValues)

    Raises:
        ValidationError: If placeholder and argument counts differ

    Example:
        >>> bind_placeholders("$ = ?", ["status", "open"])
        ('#f0 = :f1', {'#f0': 'status'}, {':f1': 'open'})
    """
    parts = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    position = 0

    for char in expression:
        if char not in (VALUE_PLACEHOLDER, NAME_PLACEHOLDER):
            parts.append(char)
            continue
        if position >= len(args):
            raise ValidationError(
                f"Expression '{expression}' has more placeholders than arguments ({len(args)})"
            )
        arg = args[position]
        if char == NAME_PLACEHOLDER:
            placeholder = f"#{prefix}{position}"
            names[placeholder] = str(arg)
        else:
            placeholder = f":{prefix}{position}"
            values[placeholder] = to_dynamo_value(arg)
        parts.append(placeholder)
        position += 1

    if position != len(args):
        raise ValidationError(
            f"Expression '{expression}' has {position} placeholders but {len(args)} arguments were given"
        )

    return ''.join(parts), names, values


def build_projection_expression(fields: Optional[Sequence[str]]) -> Tuple[Optional[str], Optional[Dict[str, str]]]:
    """Build ProjectionExpression with ExpressionAttributeNames for DynamoDB operations.

    Expression attribute names keep reserved words such as ``data`` or
    ``timestamp`` safe.

    Example:
        >>> build_projection_expression(['aggregate_id', 'version'])
        ('#p0, #p1', {'#p0': 'aggregate_id', '#p1': 'version'})
    """
    if not fields:
        return None, None

    expression_names = {}
    projection_parts = []
    for i, field in enumerate(fields):
        attr_name = f"#p{i}"
        expression_names[attr_name] = field
        projection_parts.append(attr_name)

    return ', '.join(projection_parts), expression_names


def build_key_condition(
    partition_key: str,
    partition_value: Any,
    sort_key: Optional[str] = None,
    sort_value: Optional[Any] = None,
):
    """Build an equality KeyConditionExpression for a table or index query.

    Example:
        >>> build_key_condition('partition_num', 123, 'sort_label', 'test')
    """
    condition = Key(partition_key).eq(to_dynamo_value(partition_value))
    if sort_key and sort_value is not None:
        condition = condition & Key(sort_key).eq(to_dynamo_value(sort_value))
    return condition


__all__ = [
    "to_utc",
    "to_dynamo_value",
    "from_dynamo_value",
    "model_to_item",
    "item_to_entity",
    "bind_placeholders",
    "build_projection_expression",
    "build_key_condition",
]
