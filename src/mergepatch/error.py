"""Merge patch error module."""

import http

from collections.abc import Iterator


class Error(Exception):
    """
    Base class for merge patch errors.

    All error classes must include the following attributes:
    • status: HTTP status code (int)
    • phrase: HTTP reason phrase
    """


class ClientError(Error):
    """
    Base class for client errors.
    """


class ServerError(Error):
    """
    Base class for server errors.
    """


class _Errors:
    """
    Encapsulates error exception classes. Errors are dynamically generated from errors in the
    http.HTTPStatus enum.

    Errors can be accessed by HTTP status or name.
    Example: mergepatch.error.errors[404] == mergepatch.error.errors.NotFoundError
    """

    def __init__(self):
        self._names = {}
        self._codes = {}
        for status in (s for s in http.HTTPStatus if 400 <= s.value <= 599):
            name = "".join(
                w.title() if w not in {"HTTP", "URI"} else w for w in status.name.split("_")
            )
            if not name.endswith("Error"):
                name += "Error"
            error = type(
                name,
                (ClientError if 400 <= status.value <= 499 else ServerError,),
                {
                    "status": status.value,
                    "phrase": status.phrase,
                    "__doc__": f"{status.description or status.phrase.capitalize()}.",
                },
            )
            self._names[name] = error
            self._codes[status.value] = error

    def get(self, code: int, default=None) -> Error:
        """Return error for code."""
        return self._codes.get(code, default)

    def __getitem__(self, code: int) -> Error:
        return self._codes[code]

    def __getattr__(self, name: str) -> Error:
        if error := self._names.get(name):
            return error
        raise AttributeError(name)

    def __iter__(self) -> Iterator[Error]:
        return iter(self._codes.values())


errors = _Errors()


# commonly used errors
BadRequestError: ClientError = errors[400]
ConflictError: ClientError = errors[409]
InternalServerError: ServerError = errors[500]
UnsupportedMediaTypeError: ClientError = errors[415]


class ShapeError(BadRequestError):
    """The top-level JSON shape does not match the declared document shape."""


class DeserializationError(BadRequestError):
    """A JSON value cannot be converted to the type of its target member."""


class PathResolutionError(ConflictError):
    """
    A patch path segment cannot be resolved on a type or target instance.

    Parameters and attributes:
    • message: description of the resolution failure
    • segment: the path segment that could not be resolved
    """

    def __init__(self, message: str, segment: str | None = None):
        super().__init__(message if segment is None else f"{message}: {segment}")
        self.message = message
        self.segment = segment


class UnsupportedMediaError(UnsupportedMediaTypeError):
    """The request cannot be read as a merge patch document."""
