"""
Merge patch document module.

A patch document records the operations derived from a JSON Merge Patch (RFC 7396) object:
one replace operation for each scalar, array or null value in the object, addressed by a JSON
Pointer (RFC 6901) path. The same document can be applied to any number of target instances.
"""

import copy
import dataclasses
import enum

from collections.abc import Iterable
from mergepatch.codec import DEFAULT_SERIALIZER, DecodeError, Serializer
from mergepatch.error import DeserializationError, PathResolutionError
from mergepatch.http import APPLICATION_MERGE_PATCH_JSON
from mergepatch.member import Member, resolve_path
from mergepatch.types import strip_annotations, strip_optional
from mergepatch.validation import ValidationError, validate
from typing import Any, Generic, TypeVar


T = TypeVar("T")


def escape(key: str) -> str:
    """Escape an object key as a JSON Pointer path segment."""
    return key.replace("~", "~0").replace("/", "~1")


def unescape(segment: str) -> str:
    """Unescape a JSON Pointer path segment to an object key."""
    return segment.replace("~1", "/").replace("~0", "~")


def pointer(keys: Iterable[str | int]) -> str:
    """Return a JSON Pointer path composed of object keys or array indexes."""
    return "/" + "/".join(escape(str(key)) for key in keys)


def describe(error: DecodeError | ValidationError, path: str = "") -> str:
    """Return a message describing a decode or validation error at a path."""
    if error.path:
        path = path.rstrip("/") + pointer(error.path)
    return f"{path or '/'}: {error.message or 'invalid value'}"


class OperationType(enum.Enum):
    """Type of patch operation."""

    REPLACE = "replace"


@dataclasses.dataclass(frozen=True)
class Operation:
    """
    A patch operation.

    Attributes:
    • op: type of operation
    • path: JSON Pointer to the member that the operation applies to
    • value: raw JSON value: scalar, array or None
    """

    op: OperationType
    path: str
    value: Any

    @property
    def segments(self) -> list[str]:
        """Unescaped object keys that compose the operation path."""
        return [unescape(segment) for segment in self.path[1:].split("/")]


class PatchDocument(Generic[T]):
    """
    A merge patch document for a model type.

    Parameters and attributes:
    • model: base model; the patch deserialized as the model type, absent members at defaults
    • operations: operations in the order their values appear in the patch
    • model_type: the type of model the patch applies to
    • serializer: serializer to resolve member names and convert values  [default]

    Each operation path is resolved against the model type when the document is created, and
    each value is converted and validated. DeserializationError is raised if a path does not
    resolve to a member, or a value is not valid for its member.
    """

    content_type = APPLICATION_MERGE_PATCH_JSON

    def __init__(
        self,
        model: T,
        operations: Iterable[Operation],
        *,
        model_type: type[T],
        serializer: Serializer | None = None,
    ):
        self._model = model
        self._model_type = model_type
        self._operations = tuple(operations)
        self._serializer = serializer or DEFAULT_SERIALIZER
        self._plan = tuple((op, self._resolve(op)) for op in self._operations)

    def __repr__(self):
        return (
            f"PatchDocument(model={self._model!r}, operations={self._operations!r}, "
            f"model_type={self._model_type!r})"
        )

    def __contains__(self, path: str) -> bool:
        return path in self.paths

    def __len__(self) -> int:
        return len(self._operations)

    @property
    def model(self) -> T:
        return self._model

    @property
    def model_type(self) -> type[T]:
        return self._model_type

    @property
    def operations(self) -> tuple[Operation, ...]:
        return self._operations

    @property
    def serializer(self) -> Serializer:
        return self._serializer

    @property
    def paths(self) -> set[str]:
        """Paths of members present in the patch."""
        return {op.path for op in self._operations}

    def _resolve(self, op: Operation) -> tuple[Member, ...]:
        try:
            members = resolve_path(self._model_type, op.segments, self._serializer.naming)
        except PathResolutionError as pre:
            raise DeserializationError(f"{op.path}: {pre}") from pre
        if not (op.value is None and members[-1].item):
            self._convert(op, members[-1])
        return members

    def _convert(self, op: Operation, member: Member) -> Any:
        try:
            value = self._serializer.decode(member.hint, copy.deepcopy(op.value))
            validate(value, member.hint)
        except (DecodeError, ValidationError) as e:
            raise DeserializationError(describe(e, op.path)) from e
        return value

    def _create(self, member: Member) -> Any:
        python_type = strip_annotations(strip_optional(member.hint))
        if dataclasses.is_dataclass(python_type):
            return self._serializer.decode(python_type, {}, partial=True)
        return {}

    def apply(self, target: T) -> T:
        """
        Apply the patch operations to a target model instance, in order. Returns the target.

        Intermediate members that are None on the target are created. A null value removes the
        key from a mapping member, and sets other members to None.

        Raises PathResolutionError if an operation path cannot be resolved on the target. The
        target is modified in place; operations applied before an error are not reverted.
        """
        for op, members in self._plan:
            obj = target
            for member in members[:-1]:
                child = member.get(obj)
                if child is None:
                    child = self._create(member)
                    member.set(obj, child)
                obj = child
            leaf = members[-1]
            if op.value is None and leaf.item:
                leaf.delete(obj)
            else:
                leaf.set(obj, self._convert(op, leaf))
        return target
