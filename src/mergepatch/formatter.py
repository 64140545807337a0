"""
Module to read merge patch documents from HTTP request bodies.

The input formatter reads requests that declare the merge patch media type, and binds them to
a declared model type of PatchDocument[T], or an iterable of PatchDocument[T]. A JSON object
body is parsed as a single document; a JSON array of objects is parsed as a sequence of
documents. Errors are reported in the binding context; they are not raised.
"""

import logging
import multidict
import typing

from asyncio import LimitOverrunError
from collections import namedtuple
from collections.abc import Iterable, Mapping
from mergepatch.codec import DEFAULT_SERIALIZER, Serializer
from mergepatch.document import PatchDocument
from mergepatch.error import ClientError, ShapeError, UnsupportedMediaError
from mergepatch.http import APPLICATION_MERGE_PATCH_JSON, Request, parse_media_type
from mergepatch.parser import loads, parse, parse_many
from mergepatch.stream import Reader
from mergepatch.types import is_subclass, strip_annotations
from typing import Any


_logger = logging.getLogger(__name__)


InputResult = namedtuple("InputResult", ("model", "failed"))

_FAILURE = InputResult(None, True)


class InputFormatterContext:
    """
    Context in which a request body is bound to a model.

    Parameters and attributes:
    • request: request containing the body to be read
    • model_type: the declared type of the model to bind the body to
    • model_name: the name under which errors are reported
    • errors: multi-value dictionary collecting error messages by name
    """

    def __init__(
        self,
        *,
        request: Request,
        model_type: Any,
        model_name: str = "",
        errors: multidict.MultiDict | None = None,
    ):
        self.request = request
        self.model_type = model_type
        self.model_name = model_name
        self.errors = errors if errors is not None else multidict.MultiDict()

    def __repr__(self):
        return (
            f"InputFormatterContext(request={self.request}, model_type={self.model_type}, "
            f"model_name={self.model_name!r}, errors={self.errors})"
        )


def _document_model_type(type_hint: Any) -> Any:
    python_type = strip_annotations(type_hint)
    if typing.get_origin(python_type) is PatchDocument:
        return typing.get_args(python_type)[0]
    return None


def document_shape(type_hint: Any) -> tuple[Any, bool] | None:
    """
    Return the model type of a declared patch document type, and whether the declared type is
    a sequence of documents; None if the declared type is not PatchDocument[T] or an iterable
    of PatchDocument[T].

    Example: list[PatchDocument[Model]] → (Model, True)
    """
    if (model_type := _document_model_type(type_hint)) is not None:
        return model_type, False
    python_type = strip_annotations(type_hint)
    origin = typing.get_origin(python_type)
    if not is_subclass(origin, Iterable) or is_subclass(origin, str | bytes | Mapping):
        return None
    args = typing.get_args(python_type)
    if is_subclass(origin, tuple):
        if len(args) != 2 or args[1] is not Ellipsis:
            return None
        args = args[:1]
    if len(args) != 1:
        return None
    if (model_type := _document_model_type(args[0])) is not None:
        return model_type, True
    return None


class MergePatchInputFormatter:
    """
    Input formatter for JSON Merge Patch request bodies.

    Parameters:
    • serializer: serializer shared with ordinary JSON bodies  [default]
    • limit: maximum request body size in bytes  [unlimited]
    """

    supported_media_types = (APPLICATION_MERGE_PATCH_JSON,)

    def __init__(self, *, serializer: Serializer | None = None, limit: int | None = None):
        self.serializer = serializer or DEFAULT_SERIALIZER
        self.limit = limit

    def can_read(self, context: InputFormatterContext) -> bool:
        """Return if the formatter can read the request body as the context model type."""
        if context is None:
            raise TypeError("context is required")
        if document_shape(context.model_type) is None:
            return False
        media_type, _ = parse_media_type(context.request.content_type)
        return media_type in self.supported_media_types

    async def read(self, context: InputFormatterContext) -> InputResult:
        """
        Read the request body, and return the result of binding it to the context model type.

        If the body cannot be parsed, or its shape does not match the model type, an error is
        added to the context under the model name, and a failed result is returned.

        Raises UnsupportedMediaError if the formatter cannot read the request.
        """
        if not self.can_read(context):
            raise UnsupportedMediaError(
                f"cannot read {context.request.content_type} as {context.model_type}"
            )
        model_type, sequence = document_shape(context.model_type)
        _, parameters = parse_media_type(context.request.content_type)
        try:
            content = await self._read_body(context.request)
            value = loads(content.decode(parameters.get("charset", "utf-8")))
            if sequence:
                if isinstance(value, dict):
                    raise ShapeError("Received object when array was expected")
                model = parse_many(value, model_type, serializer=self.serializer)
            else:
                if isinstance(value, list):
                    raise ShapeError("Received array when object was expected")
                model = parse(value, model_type, serializer=self.serializer)
        except ClientError as ce:
            return self._failure(context, str(ce))
        except LimitOverrunError:
            return self._failure(context, f"request body exceeds {self.limit} bytes")
        except (UnicodeDecodeError, LookupError) as e:
            return self._failure(context, f"cannot decode request body: {e}")
        except Exception:
            _logger.exception("unexpected error reading merge patch document")
            return self._failure(context, "cannot read merge patch document")
        return InputResult(model, False)

    async def _read_body(self, request: Request) -> bytes:
        if request.body is None:
            return b""
        async with Reader(request.body, self.limit) as reader:
            return await reader.read()

    def _failure(self, context: InputFormatterContext, message: str) -> InputResult:
        _logger.debug(f"merge patch request body rejected: {message}")
        context.errors.add(context.model_name, message)
        return _FAILURE
