"""Module for type hint annotations."""

from mergepatch.validation import validate_arguments
from typing import Any


class Annotation:
    """Base class for annotations."""

    __slots__ = {"value"}

    def __repr__(self):
        return f"{type(self).__name__}({self.value!r})"

    def __str__(self):
        return str(self.value)

    def __eq__(self, other: Any):
        return type(self) == type(other) and self.value == other.value

    def __hash__(self):
        return hash((self.__class__, self.value))


class Alias(Annotation):
    """
    Type annotation to provide the JSON member name of a dataclass field. An alias takes
    precedence over the naming policy of the serializer.

    Example: `renamed_value: Annotated[str, Alias("renamed")]`
    """

    @validate_arguments
    def __init__(self, value: str):
        self.value = value


class Ignore(Annotation):
    """
    Type annotation to exclude a dataclass field from JSON representations. An ignored field is
    never encoded, decoded or patched.

    The Ignore class can be used as the annotation instead of an Ignore() instance.
    """

    def __init__(self, value: bool = True):
        self.value = value


def get_alias(annotations: tuple[Any, ...]) -> str | None:
    """Return the alias expressed in type hint annotations, or None if no alias."""
    for annotation in annotations:
        if isinstance(annotation, Alias):
            return annotation.value
    return None


def is_ignored(annotations: tuple[Any, ...]) -> bool:
    """Return if type hint annotations express that a field is to be ignored."""
    for annotation in annotations:
        if annotation is Ignore or (isinstance(annotation, Ignore) and annotation.value):
            return True
    return False
