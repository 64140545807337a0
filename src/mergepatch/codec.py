"""Module to support encoding and decoding of values to and from JSON representations."""

import base64
import contextvars
import dataclasses
import enum
import iso8601
import typing

from collections import namedtuple
from collections.abc import Iterable, Mapping, Set
from contextlib import contextmanager, suppress
from datetime import date, datetime, timezone
from decimal import Decimal
from mergepatch.member import dataclass_members
from mergepatch.naming import IDENTITY, NamingPolicy
from mergepatch.types import (
    is_mapping,
    is_optional,
    is_subclass,
    is_typeddict,
    literal_values,
    strip_annotations,
)
from types import NoneType, UnionType
from typing import Any, Generic, Literal, TypeVar, Union, get_args, get_origin
from uuid import UUID


# ----- type aliases -----


JSONType = Any


# ----- utilities -----


@contextmanager
def _wrap(exception):
    try:
        yield
    except Exception as e:
        if isinstance(e, exception):
            raise
        raise exception(str(e) or None) from e


# ----- errors -----


class CodecError(ValueError):
    """
    Error raised in the event that a value cannot be encoded or decoded.
    """

    __slots__ = {"message", "path"}

    def __init__(self, message: str | None = None, path: list[str | int] | None = None):
        self.message = message
        self.path = path

    def __repr__(self):
        return f"{self.__class__.__name__}({self.message!r}, {self.path!r})"

    def __str__(self):
        return " ".join(str(s) for s in (self.message, self.path) if s is not None)

    @staticmethod
    @contextmanager
    def path_on_error(path: list[str | int] | str | int) -> None:
        """Context manager to add to error path in the event that a CodecError is raised."""
        try:
            yield
        except CodecError as ce:
            if ce.path is None:
                ce.path = []
            match path:
                case str() | int():
                    ce.path.insert(0, path)
                case list():
                    ce.path = path + ce.path
            raise


class EncodeError(CodecError):
    """Error raised in the event that a value cannot be encoded."""


class DecodeError(CodecError):
    """Error raised in the event that a value cannot be decoded."""


# ----- serializer -----


_serializer = contextvars.ContextVar("_mergepatch_serializer")
_partial = contextvars.ContextVar("_mergepatch_partial", default=False)


@contextmanager
def _decoding(partial: bool):
    token = _partial.set(partial)
    try:
        yield
    finally:
        _partial.reset(token)


class Serializer:
    """
    JSON serialization configuration, shared by the host application for ordinary JSON bodies
    and by merge patch parsing and application.

    Parameters and attributes:
    • naming: policy to derive JSON member names from dataclass field names
    • converters: custom codec classes, consulted before built-in codecs

    Codecs are selected and cached per serializer. Codecs resolve nested codecs through the
    serializer in effect; use the encode and decode methods, or the activate context manager,
    to put a serializer into effect.
    """

    def __init__(
        self,
        *,
        naming: NamingPolicy = IDENTITY,
        converters: Iterable[type["JSONCodec"]] = (),
    ):
        self.naming = naming
        self.converters = tuple(converters)
        self._cache = {}

    def __repr__(self):
        return f"Serializer(naming={self.naming!r}, converters={self.converters!r})"

    @staticmethod
    def current() -> "Serializer":
        """Return the serializer in effect."""
        return _serializer.get(DEFAULT_SERIALIZER)

    @contextmanager
    def activate(self):
        """Return a context manager that puts this serializer into effect."""
        token = _serializer.set(self)
        try:
            yield self
        finally:
            _serializer.reset(token)

    def codec(self, python_type: Any) -> "JSONCodec":
        """Return a codec that handles the specified Python type."""
        with self.activate():
            return JSONCodec.get(python_type)

    def encode(self, python_type: Any, value: Any) -> JSONType:
        """Encode a value of the specified Python type to its JSON representation."""
        with self.activate():
            return JSONCodec.get(python_type).encode(value)

    def decode(self, python_type: Any, value: JSONType, *, partial: bool = False) -> Any:
        """
        Decode a JSON representation to a value of the specified Python type.

        Parameters:
        • python_type: type of value to decode
        • value: JSON representation to decode
        • partial: absent dataclass members assume default values or None

        In partial decoding, members of mappings with null values are omitted. Items of arrays
        are always decoded completely.
        """
        with self.activate():
            with _decoding(partial):
                return JSONCodec.get(python_type).decode(value)


# ----- base -----


PT = TypeVar("PT")  # Python type hint


class JSONCodec(Generic[PT]):
    """
    Base class for codecs that encode Python types to/from JSON representations.

    Subclasses are discovered in the order they are defined; a subclass is selected for a
    Python type if its handles method returns True.
    """

    def __init__(self, python_type: Any):
        self.python_type = python_type

    @staticmethod
    def handles(python_type: Any) -> bool:
        """Return True if the codec handles the specified Python type."""
        raise NotImplementedError

    @classmethod
    def get(cls, python_type: Any) -> "JSONCodec[PT]":
        """
        Return a codec that handles the specified Python type, using the converters and cache
        of the serializer in effect.

        If the codec class contains a `_cache` attribute set to False, codecs it creates are
        not cached.
        """
        serializer = Serializer.current()
        with suppress(KeyError, TypeError):
            return serializer._cache[python_type]
        for codec_class in (*serializer.converters, *JSONCodec.__subclasses__()):
            if codec_class.handles(python_type):
                codec = codec_class(python_type)
                if getattr(codec, "_cache", True):
                    with suppress(TypeError):  # unhashable type hint
                        serializer._cache[python_type] = codec
                return codec
        raise TypeError(f"no codec for {python_type}")

    def encode(self, value: PT) -> JSONType:
        """Encode value from Python type to JSON type."""
        raise NotImplementedError

    def decode(self, value: JSONType) -> PT:
        """Decode value from JSON type to Python type."""
        raise NotImplementedError


# ----- Enum -----


class EnumJSONCodec(JSONCodec[enum.Enum]):
    """JSON codec for enumerations. An enumeration member is represented by its value."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, enum.Enum)

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        self.raw_type = strip_annotations(python_type)

    def encode(self, value: enum.Enum) -> JSONType:
        if not isinstance(value, self.raw_type):
            raise EncodeError
        return value.value

    def decode(self, value: JSONType) -> enum.Enum:
        with _wrap(DecodeError):
            return self.raw_type(value)


# ----- str -----


class StrJSONCodec(JSONCodec[str]):
    """JSON codec for Unicode character strings."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, str)

    def encode(self, value: str) -> JSONType:
        if not isinstance(value, str):
            raise EncodeError
        return value

    def decode(self, value: JSONType) -> str:
        if not isinstance(value, str):
            raise DecodeError
        return value


# ----- bytes/bytearray -----


class BytesJSONCodec(JSONCodec[bytes | bytearray]):
    """
    JSON codec for byte sequences. A byte sequence is represented in JSON values as a
    base64-encoded string. Example: "bWVyZ2VwYXRjaA==" for b"mergepatch".
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, bytes | bytearray)

    def encode(self, value: bytes | bytearray) -> JSONType:
        if not isinstance(value, bytes | bytearray):
            raise EncodeError
        return base64.b64encode(value).decode()

    def decode(self, value: JSONType) -> bytes:
        if not isinstance(value, str):
            raise DecodeError
        with _wrap(DecodeError):
            return base64.b64decode(value, validate=True)


# ----- int -----


class IntJSONCodec(JSONCodec[int]):
    """JSON codec for integers."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, int) and not is_subclass(python_type, bool)

    def encode(self, value: int) -> JSONType:
        if not isinstance(value, int) or isinstance(value, bool):
            raise EncodeError
        return value

    def decode(self, value: JSONType) -> int:
        if not isinstance(value, int | float) or isinstance(value, bool):
            raise DecodeError
        result = value
        if isinstance(result, float):
            with _wrap(DecodeError):  # infinity, NaN
                result = int(result)
            if result != value:  # 1.0 == 1
                raise DecodeError
        return result


# ----- float -----


class FloatJSONCodec(JSONCodec[float]):
    """JSON codec for floating point numbers."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, float)

    def encode(self, value: float) -> JSONType:
        if not isinstance(value, float):
            raise EncodeError
        return value

    def decode(self, value: JSONType) -> float:
        if not isinstance(value, int | float) or isinstance(value, bool):
            raise DecodeError
        with _wrap(DecodeError):  # int too large
            return float(value)


# ----- bool -----


class BoolJSONCodec(JSONCodec[bool]):
    """JSON codec for boolean values."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, bool)

    def encode(self, value: bool) -> JSONType:
        if not isinstance(value, bool):
            raise EncodeError
        return value

    def decode(self, value: JSONType) -> bool:
        if not isinstance(value, bool):
            raise DecodeError
        return value


# ----- NoneType -----


class NoneTypeJSONCodec(JSONCodec[NoneType]):
    """JSON codec for None value."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return python_type is NoneType or python_type is None

    def encode(self, value: NoneType) -> JSONType:
        if value is not None:
            raise EncodeError
        return None

    def decode(self, value: JSONType) -> NoneType:
        if value is not None:
            raise DecodeError
        return None


# ----- Decimal -----


class DecimalJSONCodec(JSONCodec[Decimal]):
    """
    JSON codec for Decimal numbers. Decimal numbers are represented in JSON as strings, due to
    the imprecision of floating point numbers.
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, Decimal)

    def encode(self, value: Decimal) -> JSONType:
        if not isinstance(value, Decimal):
            raise EncodeError
        return str(value)

    def decode(self, value: JSONType) -> Decimal:
        if not isinstance(value, str):
            raise DecodeError
        with _wrap(DecodeError):
            return Decimal(value)


# ----- date -----


class DateJSONCodec(JSONCodec[date]):
    """
    JSON codec for dates. A date is represented in JSON as an RFC 3339 formatted string.
    Example: "2018-06-16".
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, date) and not is_subclass(python_type, datetime)

    def encode(self, value: date) -> JSONType:
        if not isinstance(value, date):
            raise EncodeError
        return value.isoformat()

    def decode(self, value: JSONType) -> date:
        if not isinstance(value, str):
            raise DecodeError
        with _wrap(DecodeError):
            return date.fromisoformat(value)


# ----- datetime -----


def _to_utc(value):
    if value.tzinfo is None:  # naive value interpreted as UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DatetimeJSONCodec(JSONCodec[datetime]):
    """
    JSON codec for datetime.

    It will decode a datetime represented in an ISO 8601 formatted string. It will encode a
    datetime to an RFC 3339 (subset of ISO 8601) formatted string.

    Datetimes always encode and decode to UTC timezone offset.

    Example: "2020-04-07T12:34:56.789012Z".
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, datetime)

    def encode(self, value: datetime) -> JSONType:
        if not isinstance(value, datetime):
            raise EncodeError
        result = _to_utc(value).isoformat()
        if result.endswith("+00:00"):
            result = result[0:-6]
        if "+" not in result and not result.endswith("Z"):
            result = f"{result}Z"
        return result

    def decode(self, value: JSONType) -> datetime:
        if not isinstance(value, str):
            raise DecodeError
        with _wrap(DecodeError):
            return _to_utc(iso8601.parse_date(value))


# ----- UUID -----


class UUIDJSONCodec(JSONCodec[UUID]):
    """JSON codec for UUID."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, UUID)

    def encode(self, value: UUID) -> JSONType:
        if not isinstance(value, UUID):
            raise EncodeError
        return str(value)

    def decode(self, value: JSONType) -> UUID:
        if not isinstance(value, str):
            raise DecodeError
        with _wrap(DecodeError):
            return UUID(value)


# ----- TypedDict -----


class TypedDictJSONCodec(JSONCodec[PT]):
    """
    JSON codec for TypedDict. Keys are represented verbatim; the naming policy does not apply.
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        return is_typeddict(python_type)

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        python_type = strip_annotations(python_type)
        self.hints = typing.get_type_hints(python_type, include_extras=True)
        if {type(k) for k in self.hints.keys()} - {str}:
            raise TypeError("codec only supports TypedDict with str keys")

    def encode(self, value: PT) -> JSONType:
        if not isinstance(value, dict):
            raise EncodeError
        result = {}
        for key, hint in self.hints.items():
            if key in value:
                with CodecError.path_on_error(key):
                    result[key] = JSONCodec.get(hint).encode(value[key])
        return result

    def decode(self, value: JSONType) -> PT:
        if not isinstance(value, dict):
            raise DecodeError
        partial = _partial.get()
        result = {}
        for key, hint in self.hints.items():
            if key not in value or (partial and value[key] is None):
                continue
            with CodecError.path_on_error(key):
                result[key] = JSONCodec.get(hint).decode(value[key])
        return result


# ----- tuple -----


class TupleJSONCodec(JSONCodec[PT]):
    """JSON codec for tuples. A tuple is represented in JSON as an array."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return is_subclass(python_type, tuple) or is_subclass(get_origin(python_type), tuple)

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        python_type = strip_annotations(python_type)
        args = get_args(python_type) or (Any, ...)
        if len(args) != 2 and Ellipsis in args or args[0] is Ellipsis:
            raise TypeError(f"unexpected ellipsis in {python_type}")
        self.varg = args[0] if len(args) == 2 and args[1] is Ellipsis else None
        self.args = () if self.varg else args

    def _hints(self, length):
        return (self.varg,) * length if self.varg else self.args

    def encode(self, value: PT) -> JSONType:
        if not isinstance(value, tuple) or (self.args and len(value) != len(self.args)):
            raise EncodeError
        result = []
        for index, (hint, item) in enumerate(zip(self._hints(len(value)), value)):
            with CodecError.path_on_error(index):
                result.append(JSONCodec.get(hint).encode(item))
        return result

    def decode(self, value: JSONType) -> PT:
        if not isinstance(value, list) or (self.args and len(value) != len(self.args)):
            raise DecodeError
        result = []
        with _decoding(False):
            for index, (hint, item) in enumerate(zip(self._hints(len(value)), value)):
                with CodecError.path_on_error(index):
                    result.append(JSONCodec.get(hint).decode(item))
        return tuple(result)


# ----- Mapping -----


class MappingJSONCodec(JSONCodec[PT]):
    """JSON codec for mappings with string keys. A mapping is represented as a JSON object."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        return is_mapping(python_type)

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        python_type = strip_annotations(python_type)
        args = get_args(python_type) or (Any, Any)
        if len(args) != 2:
            raise TypeError("expecting Mapping[KT, VT]")
        if strip_annotations(args[0]) not in {str, Any}:
            raise TypeError("codec only supports Mapping with str keys")
        self.value_codec = JSONCodec.get(args[1])

    def encode(self, value: PT) -> JSONType:
        if not isinstance(value, Mapping):
            raise EncodeError
        result = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise EncodeError("mapping key must be str", [repr(k)])
            with CodecError.path_on_error(k):
                result[k] = self.value_codec.encode(v)
        return result

    def decode(self, value: JSONType) -> PT:
        if not isinstance(value, Mapping):
            raise DecodeError
        partial = _partial.get()
        result = {}
        for k, v in value.items():
            if partial and v is None:
                continue
            with CodecError.path_on_error(k):
                result[k] = self.value_codec.decode(v)
        return result


# ----- Iterable -----


class IterableJSONCodec(JSONCodec[PT]):
    """
    JSON codec for iterables such as lists and sets. An iterable is represented as a JSON
    array; sets are sorted when encoded.
    """

    _AVOID = str | bytes | bytearray | Mapping | tuple

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        origin = get_origin(python_type) or python_type
        return is_subclass(origin, Iterable) and not is_subclass(
            origin, IterableJSONCodec._AVOID
        )

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        python_type = strip_annotations(python_type)
        origin = get_origin(python_type) or python_type
        args = get_args(python_type) or (Any,)
        if len(args) != 1:
            raise TypeError("expecting Iterable[T]")
        concrete = isinstance(origin, type) and not _abstract(origin)
        self.decode_type = origin if concrete else list
        self.is_set = is_subclass(origin, Set)
        if self.is_set and self.decode_type is list:
            self.decode_type = set
        self.codec = JSONCodec.get(args[0])

    def encode(self, value: PT) -> JSONType:
        if not isinstance(value, Iterable) or isinstance(value, IterableJSONCodec._AVOID):
            raise EncodeError
        if self.is_set:
            value = sorted(value)
        result = []
        for index, item in enumerate(value):
            with CodecError.path_on_error(index):
                result.append(self.codec.encode(item))
        return result

    def decode(self, value: JSONType) -> PT:
        if not isinstance(value, list):
            raise DecodeError
        result = []
        with _decoding(False):
            for index, item in enumerate(value):
                with CodecError.path_on_error(index):
                    result.append(self.codec.decode(item))
        with _wrap(DecodeError):
            return self.decode_type(result)


def _abstract(cls: type) -> bool:
    return bool(getattr(cls, "__abstractmethods__", None))


# ----- dataclass -----


class DataclassJSONCodec(JSONCodec[PT]):
    """
    JSON codec for dataclasses. A dataclass is represented as a JSON object; member names are
    derived from field names by the naming policy of the serializer in effect, unless a field
    is annotated with an alias. Fields annotated with Ignore are not represented. Members with
    None values are not encoded.
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return dataclasses.is_dataclass(python_type)

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        self.raw_type = strip_annotations(python_type)
        self.fields = {f.name: f for f in dataclasses.fields(self.raw_type) if f.init}

    @property
    def _members(self):
        return dataclass_members(self.raw_type, Serializer.current().naming)

    def encode(self, value: PT) -> JSONType:
        if not isinstance(value, self.raw_type):
            raise EncodeError
        result = {}
        for key, member in self._members.items():
            v = getattr(value, member.name, None)
            if v is not None:
                with CodecError.path_on_error(key):
                    result[key] = JSONCodec.get(member.hint).encode(v)
        return result

    def decode(self, value: JSONType) -> PT:
        if not isinstance(value, dict):
            raise DecodeError
        partial = _partial.get()
        members = self._members
        kwargs = {}
        for key, member in members.items():
            if key in value:
                with CodecError.path_on_error(key):
                    kwargs[member.name] = JSONCodec.get(member.hint).decode(value[key])
            elif _has_default(self.fields[member.name]):
                continue
            elif partial or is_optional(member.hint):
                kwargs[member.name] = None
            else:
                raise DecodeError("required member", [key])
        ignored = self.fields.keys() - {m.name for m in members.values()}
        for name in ignored:
            if not _has_default(self.fields[name]):
                kwargs[name] = None
        with _wrap(DecodeError):
            return self.raw_type(**kwargs)


def _has_default(field: dataclasses.Field) -> bool:
    return (
        field.default is not dataclasses.MISSING
        or field.default_factory is not dataclasses.MISSING
    )


# ----- UnionType/Union -----


class UnionJSONCodec(JSONCodec[PT]):
    """
    JSON codec for unions. Member types are attempted in declaration order; the first codec
    to successfully encode or decode a value prevails.
    """

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return get_origin(python_type) in {UnionType, Union}

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        python_type = strip_annotations(python_type)
        self.codecs = tuple(JSONCodec.get(arg) for arg in get_args(python_type))

    def encode(self, value: PT) -> JSONType:
        for codec in self.codecs:
            with suppress(EncodeError):
                return codec.encode(value)
        raise EncodeError

    def decode(self, value: JSONType) -> PT:
        for codec in self.codecs:
            with suppress(DecodeError):
                return codec.decode(value)
        raise DecodeError


# ----- Literal -----


_VT = namedtuple("VT", "value,type")


class LiteralJSONCodec(JSONCodec[PT]):
    """JSON codec for literal values."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return get_origin(python_type) is Literal

    def __init__(self, python_type: Any):
        super().__init__(python_type)
        python_type = strip_annotations(python_type)
        self.vts = {_VT(v, type(v)) for v in literal_values(python_type)}
        self.codecs = {vt: JSONCodec.get(vt.type) for vt in self.vts}

    def encode(self, value: PT) -> JSONType:
        with _wrap(EncodeError):
            return self.codecs[_VT(value, type(value))].encode(value)

    def decode(self, value: JSONType) -> PT:
        for codec in self.codecs.values():
            with suppress(DecodeError):
                decoded = codec.decode(value)
                if _VT(decoded, type(decoded)) in self.vts:
                    return decoded
        raise DecodeError


# ----- Any -----


class AnyJSONCodec(JSONCodec[Any]):
    """JSON codec for Any. Decoded values are raw JSON values."""

    @staticmethod
    def handles(python_type: Any) -> bool:
        python_type = strip_annotations(python_type)
        return python_type is Any

    def encode(self, value: Any) -> JSONType:
        return JSONCodec.get(type(value)).encode(value)

    def decode(self, value: JSONType) -> Any:
        return value


DEFAULT_SERIALIZER = Serializer()
