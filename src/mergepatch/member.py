"""
Module to resolve JSON member names to the members of Python data types.

Dataclass fields are addressed through the naming policy of a serializer, unless the field is
annotated with an alias; fields annotated with Ignore cannot be addressed. TypedDict and
mapping members are addressed by key.
"""

import dataclasses
import functools
import typing

from collections.abc import Iterable, Mapping, MutableMapping
from mergepatch.annotation import get_alias, is_ignored
from mergepatch.error import PathResolutionError
from mergepatch.naming import NamingPolicy
from mergepatch.types import (
    is_mapping,
    is_subclass,
    is_typeddict,
    split_annotated,
    strip_annotations,
    strip_optional,
)
from typing import Any


class Member:
    """
    A member of a Python data type, addressed by its JSON member name.

    Parameters and attributes:
    • key: JSON member name
    • name: dataclass field name, or mapping key
    • hint: type hint of the member value
    • item: member is accessed as a mapping item rather than an attribute
    """

    __slots__ = {"key", "name", "hint", "item"}

    def __init__(self, key: str, name: str, hint: Any, item: bool = False):
        self.key = key
        self.name = name
        self.hint = hint
        self.item = item

    def __repr__(self):
        return f"Member({self.key!r}, {self.name!r}, {self.hint!r}, item={self.item})"

    def __eq__(self, other: Any):
        return isinstance(other, Member) and (
            self.key,
            self.name,
            self.hint,
            self.item,
        ) == (other.key, other.name, other.hint, other.item)

    def get(self, obj: Any) -> Any:
        """Return the value of the member in an object; None if mapping key is absent."""
        if self.item:
            if not isinstance(obj, Mapping):
                raise PathResolutionError("expecting mapping", self.key)
            return obj.get(self.name)
        try:
            return getattr(obj, self.name)
        except AttributeError as ae:
            raise PathResolutionError("no such attribute", self.key) from ae

    def set(self, obj: Any, value: Any) -> None:
        """Set the value of the member in an object."""
        if self.item:
            if not isinstance(obj, MutableMapping):
                raise PathResolutionError("expecting mutable mapping", self.key)
            obj[self.name] = value
            return
        if not hasattr(obj, self.name):
            raise PathResolutionError("no such attribute", self.key)
        try:
            setattr(obj, self.name, value)
        except AttributeError as ae:  # includes dataclasses.FrozenInstanceError
            raise PathResolutionError("read-only attribute", self.key) from ae

    def delete(self, obj: Any) -> None:
        """Remove the member from a mapping object."""
        if not isinstance(obj, MutableMapping):
            raise PathResolutionError("expecting mutable mapping", self.key)
        obj.pop(self.name, None)


def _annotations(hint: Any) -> tuple[Any, ...]:
    return split_annotated(strip_optional(hint))[1]


@functools.cache
def dataclass_members(python_type: type, naming: NamingPolicy) -> dict[str, Member]:
    """
    Return the addressable members of a dataclass, keyed by JSON member name, in field
    declaration order.
    """
    hints = typing.get_type_hints(python_type, include_extras=True)
    result = {}
    for field in dataclasses.fields(python_type):
        if not field.init:
            continue
        hint = hints[field.name]
        annotations = _annotations(hint)
        if is_ignored(annotations):
            continue
        key = get_alias(annotations) or naming.name(field.name)
        if key in result:
            raise TypeError(f"duplicate JSON member name {key!r} in {python_type}")
        result[key] = Member(key, field.name, hint)
    return result


def resolve(type_hint: Any, key: str, naming: NamingPolicy) -> Member:
    """
    Resolve a JSON member name to a member of a data type.

    Parameters:
    • type_hint: type of object containing the member
    • key: JSON member name
    • naming: naming policy to resolve dataclass field names

    Raises PathResolutionError if the member cannot be resolved.
    """
    python_type = strip_annotations(strip_optional(type_hint))
    if dataclasses.is_dataclass(python_type):
        try:
            return dataclass_members(python_type, naming)[key]
        except KeyError:
            raise PathResolutionError("unknown member", key) from None
    if is_typeddict(python_type):
        hints = typing.get_type_hints(python_type, include_extras=True)
        if key not in hints:
            raise PathResolutionError("unknown member", key)
        return Member(key, key, hints[key], item=True)
    if is_mapping(python_type):
        key_type, value_type = typing.get_args(python_type) or (Any, Any)
        if strip_annotations(key_type) not in {str, Any}:
            raise PathResolutionError("mapping keys must be strings", key)
        return Member(key, key, value_type, item=True)
    if python_type is Any:
        return Member(key, key, Any, item=True)
    origin = typing.get_origin(python_type) or python_type
    if is_subclass(origin, Iterable) and not is_subclass(origin, str | bytes | bytearray):
        raise PathResolutionError("indexed path segments are not supported", key)
    raise PathResolutionError("member is not an object", key)


def resolve_path(type_hint: Any, keys: Iterable[str], naming: NamingPolicy) -> tuple[Member]:
    """Resolve a sequence of JSON member names, descending through nested members."""
    result = []
    for key in keys:
        member = resolve(type_hint, key, naming)
        result.append(member)
        type_hint = member.hint
    return tuple(result)
