"""Module for JSON member naming policies."""

import keyword
import re


class NamingPolicy:
    """
    Base class for naming policies. A naming policy converts the name of a dataclass field to
    the name of the corresponding member in JSON representations.
    """

    def name(self, field_name: str) -> str:
        """Return the JSON member name for a dataclass field name."""
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class Identity(NamingPolicy):
    """
    Naming policy that uses field names as JSON member names. Python keywords have an _ suffix
    in dataclass fields (e.g. "in_", "for_"); the suffix is removed in JSON member names.
    """

    # keywords have _ suffix in dataclass fields (e.g. "in_", "for_", ...)
    _dc_kw = {k + "_": k for k in keyword.kwlist}

    def name(self, field_name: str) -> str:
        return Identity._dc_kw.get(field_name, field_name)


class CamelCase(Identity):
    """Naming policy that converts snake_case field names to camelCase JSON member names."""

    def name(self, field_name: str) -> str:
        head, *tail = super().name(field_name).split("_")
        return head + "".join(word[:1].upper() + word[1:] for word in tail)


class PascalCase(Identity):
    """Naming policy that converts snake_case field names to PascalCase JSON member names."""

    def name(self, field_name: str) -> str:
        words = super().name(field_name).split("_")
        return "".join(word[:1].upper() + word[1:] for word in words)


class KebabCase(Identity):
    """Naming policy that converts snake_case field names to kebab-case JSON member names."""

    _underscore = re.compile(r"(?<=[^_])_(?=[^_])")

    def name(self, field_name: str) -> str:
        return KebabCase._underscore.sub("-", super().name(field_name))


IDENTITY = Identity()
CAMEL_CASE = CamelCase()
PASCAL_CASE = PascalCase()
KEBAB_CASE = KebabCase()
