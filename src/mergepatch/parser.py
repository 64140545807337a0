"""
Merge patch parser module.

Parsing a JSON Merge Patch object produces a patch document containing a base model, the
object deserialized as the model type, and an ordered list of operations. Object values are
recursed into; scalar, array and null values each produce one replace operation. Arrays are
never merged; an array value replaces the member value as a whole.
"""

import json
import logging
import math

from collections.abc import Iterator
from mergepatch.codec import DEFAULT_SERIALIZER, DecodeError, Serializer
from mergepatch.document import Operation, OperationType, PatchDocument, describe, escape
from mergepatch.error import DeserializationError, ShapeError
from typing import Any, TypeVar


_logger = logging.getLogger(__name__)


T = TypeVar("T")


def _json_type(value: Any) -> str:
    match value:
        case None:
            return "null"
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case str():
            return "string"
        case list():
            return "array"
        case dict():
            return "object"
    return type(value).__name__


def _walk(value: dict[str, Any], prefix: str) -> Iterator[Operation]:
    for key, item in value.items():
        if not isinstance(key, str):
            raise DeserializationError(f"{prefix}: object key must be string: {key!r}")
        path = prefix + escape(key)
        match item:
            case dict():
                yield from _walk(item, path + "/")
            case None | bool() | int() | float() | str() | list():
                yield Operation(OperationType.REPLACE, path, item)
            case _:
                raise DeserializationError(f"{path}: not a JSON value: {_json_type(item)}")


def operations(value: dict[str, Any]) -> list[Operation]:
    """
    Return the operations of a merge patch object, depth-first in key order. An empty object,
    whether the patch itself or nested, produces no operations.
    """
    return list(_walk(value, "/"))


def parse(
    value: Any, model_type: type[T], *, serializer: Serializer | None = None
) -> PatchDocument[T]:
    """
    Parse a merge patch object into a patch document.

    Parameters:
    • value: merge patch; a parsed JSON object
    • model_type: the type of model the patch applies to
    • serializer: serializer to deserialize model and resolve members  [default]

    Every member in the object must be declared by the model type, including members used
    only to identify the target, such as an id; undeclared members are rejected here rather
    than when the document is applied.

    Raises ShapeError if the value is not a JSON object. Raises DeserializationError if the
    object cannot be deserialized as the model type, or contains an undeclared member.
    """
    serializer = serializer or DEFAULT_SERIALIZER
    if not isinstance(value, dict):
        raise ShapeError(f"expected object, received {_json_type(value)}")
    try:
        model = serializer.decode(model_type, value, partial=True)
    except DecodeError as de:
        raise DeserializationError(describe(de)) from de
    document = PatchDocument[model_type](
        model, operations(value), model_type=model_type, serializer=serializer
    )
    _logger.debug(f"parsed {len(document)} merge patch operations for {model_type}")
    return document


def parse_many(
    values: Any, model_type: type[T], *, serializer: Serializer | None = None
) -> list[PatchDocument[T]]:
    """
    Parse an array of merge patch objects into a list of patch documents, in array order.

    Raises ShapeError if the value is not a JSON array, or if any of its items is not a JSON
    object. Raises DeserializationError if any object cannot be deserialized as the model type.
    As with parse, every member of each object must be declared by the model type.
    """
    if not isinstance(values, list):
        raise ShapeError(f"expected array, received {_json_type(values)}")
    result = []
    for index, value in enumerate(values):
        if not isinstance(value, dict):
            raise ShapeError(f"expected object at index {index}, received {_json_type(value)}")
        try:
            result.append(parse(value, model_type, serializer=serializer))
        except DeserializationError as de:
            raise DeserializationError(f"[{index}] {de}") from de
    return result


def _object_pairs(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result = {}
    for key, value in pairs:
        if key in result:
            raise DeserializationError(f"duplicate object key: {key!r}")
        result[key] = value
    return result


def _constant(name: str) -> Any:
    raise DeserializationError(f"invalid JSON number: {name}")


def _float(text: str) -> float:
    result = float(text)
    if not math.isfinite(result):
        raise DeserializationError(f"JSON number out of range: {text}")
    return result


def loads(text: str | bytes | bytearray) -> Any:
    """
    Parse JSON text. Objects with duplicate keys are rejected, as are the non-standard
    constants NaN, Infinity and -Infinity, and numbers too large to be represented as finite
    floating point numbers.

    Raises DeserializationError if the text is not valid JSON.
    """
    try:
        return json.loads(
            text,
            object_pairs_hook=_object_pairs,
            parse_constant=_constant,
            parse_float=_float,
        )
    except ValueError as ve:  # includes JSONDecodeError, integer digit limit
        raise DeserializationError(f"malformed JSON: {ve}") from ve
