import asyncio
import json
import pytest

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from mergepatch.codec import Serializer
from mergepatch.document import PatchDocument
from mergepatch.error import UnsupportedMediaError
from mergepatch.formatter import (
    InputFormatterContext,
    InputResult,
    MergePatchInputFormatter,
    document_shape,
)
from mergepatch.http import APPLICATION_MERGE_PATCH_JSON, Request
from mergepatch.naming import CAMEL_CASE
from mergepatch.stream import BytesStream, Stream
from typing import Annotated


pytestmark = pytest.mark.asyncio


@dataclass
class SubModel:
    value1: str | None = None


@dataclass
class Model:
    id: int = 0
    integer: int = 0
    string: str | None = None
    sub_model: SubModel | None = None


class CancelledStream(Stream):
    def __init__(self):
        super().__init__(APPLICATION_MERGE_PATCH_JSON)
        self.closed = False

    async def __anext__(self):
        raise asyncio.CancelledError

    async def close(self):
        self.closed = True


def _context(body, model_type=PatchDocument[Model], content_type=APPLICATION_MERGE_PATCH_JSON):
    if isinstance(body, str):
        body = body.encode()
    elif not isinstance(body, bytes):
        body = json.dumps(body).encode()
    request = Request(headers={"Content-Type": content_type}, body=BytesStream(body))
    return InputFormatterContext(request=request, model_type=model_type, model_name="patch")


async def test_document_shape():
    assert document_shape(PatchDocument[Model]) == (Model, False)
    assert document_shape(Annotated[PatchDocument[Model], "a"]) == (Model, False)
    assert document_shape(list[PatchDocument[Model]]) == (Model, True)
    assert document_shape(Sequence[PatchDocument[Model]]) == (Model, True)
    assert document_shape(Iterable[PatchDocument[Model]]) == (Model, True)
    assert document_shape(tuple[PatchDocument[Model], ...]) == (Model, True)
    assert document_shape(Model) is None
    assert document_shape(list[Model]) is None
    assert document_shape(dict[str, PatchDocument[Model]]) is None
    assert document_shape(tuple[PatchDocument[Model], PatchDocument[Model]]) is None


async def test_can_read():
    formatter = MergePatchInputFormatter()
    assert formatter.can_read(_context({}))
    assert formatter.can_read(_context([], list[PatchDocument[Model]]))
    assert formatter.can_read(
        _context({}, content_type="Application/Merge-Patch+JSON; charset=utf-8")
    )
    assert not formatter.can_read(_context({}, content_type="application/json"))
    assert not formatter.can_read(_context({}, model_type=Model))


async def test_can_read_body_content_type():
    request = Request(body=BytesStream(b"{}", "application/json"))
    context = InputFormatterContext(request=request, model_type=PatchDocument[Model])
    assert not MergePatchInputFormatter().can_read(context)


async def test_can_read_no_context():
    with pytest.raises(TypeError):
        MergePatchInputFormatter().can_read(None)


async def test_read_single():
    context = _context({"integer": 7, "subModel": {"value1": "a"}})
    result = await MergePatchInputFormatter(serializer=Serializer(naming=CAMEL_CASE)).read(
        context
    )
    assert isinstance(result, InputResult)
    assert not result.failed
    document = result.model
    assert isinstance(document, PatchDocument)
    assert document.paths == {"/integer", "/subModel/value1"}
    target = Model(id=1, integer=5)
    document.apply(target)
    assert target == Model(id=1, integer=7, sub_model=SubModel(value1="a"))
    assert len(context.errors) == 0


async def test_read_sequence():
    context = _context(
        [{"id": 1, "integer": 7}, {"id": 2, "integer": 9}], list[PatchDocument[Model]]
    )
    result = await MergePatchInputFormatter().read(context)
    assert not result.failed
    assert [d.model.id for d in result.model] == [1, 2]
    assert [d.paths for d in result.model] == [{"/id", "/integer"}, {"/id", "/integer"}]


async def test_read_empty_sequence():
    result = await MergePatchInputFormatter().read(_context([], list[PatchDocument[Model]]))
    assert result == InputResult([], False)


async def test_read_array_for_single():
    context = _context([{"integer": 7}])
    result = await MergePatchInputFormatter().read(context)
    assert result.failed
    assert result.model is None
    assert context.errors.getall("patch") == ["Received array when object was expected"]


async def test_read_object_for_sequence():
    context = _context({"integer": 7}, list[PatchDocument[Model]])
    result = await MergePatchInputFormatter().read(context)
    assert result.failed
    assert context.errors.getall("patch") == ["Received object when array was expected"]


async def test_read_scalar():
    context = _context("1")
    assert (await MergePatchInputFormatter().read(context)).failed
    assert len(context.errors.getall("patch")) == 1


async def test_read_sequence_item_not_object():
    context = _context([{"integer": 7}, 1], list[PatchDocument[Model]])
    assert (await MergePatchInputFormatter().read(context)).failed
    assert "index 1" in context.errors["patch"]


async def test_read_invalid_value():
    context = _context({"integer": "seven"})
    assert (await MergePatchInputFormatter().read(context)).failed
    assert context.errors["patch"].startswith("/integer")


async def test_read_unknown_member():
    context = _context({"nope": 1})
    assert (await MergePatchInputFormatter().read(context)).failed
    assert "nope" in context.errors["patch"]


async def test_read_malformed():
    context = _context('{"integer": ')
    assert (await MergePatchInputFormatter().read(context)).failed
    assert context.errors["patch"].startswith("malformed JSON")


async def test_read_duplicate_key():
    context = _context('{"integer": 1, "integer": 2}')
    assert (await MergePatchInputFormatter().read(context)).failed


async def test_read_number_out_of_range():
    context = _context('{"integer": 1e400}')
    assert (await MergePatchInputFormatter().read(context)).failed
    assert context.errors.getall("patch") == ["JSON number out of range: 1e400"]


async def test_read_empty_body():
    context = _context(b"")
    assert (await MergePatchInputFormatter().read(context)).failed


async def test_read_no_body():
    request = Request(headers={"Content-Type": APPLICATION_MERGE_PATCH_JSON})
    context = InputFormatterContext(request=request, model_type=PatchDocument[Model])
    assert (await MergePatchInputFormatter().read(context)).failed
    assert len(context.errors.getall("")) == 1


async def test_read_limit():
    context = _context({"string": "x" * 100})
    result = await MergePatchInputFormatter(limit=10).read(context)
    assert result.failed
    assert context.errors["patch"] == "request body exceeds 10 bytes"


async def test_read_charset():
    body = '{"string": "café"}'.encode("iso-8859-1")
    context = _context(body, content_type=f"{APPLICATION_MERGE_PATCH_JSON}; charset=ISO-8859-1")
    result = await MergePatchInputFormatter().read(context)
    assert not result.failed
    assert result.model.model.string == "café"


async def test_read_invalid_encoding():
    body = '{"string": "café"}'.encode("iso-8859-1")
    context = _context(body)
    assert (await MergePatchInputFormatter().read(context)).failed
    assert context.errors["patch"].startswith("cannot decode request body")


async def test_read_unknown_charset():
    context = _context({}, content_type=f"{APPLICATION_MERGE_PATCH_JSON}; charset=nope")
    assert (await MergePatchInputFormatter().read(context)).failed


async def test_read_unsupported():
    context = _context({}, content_type="application/json")
    with pytest.raises(UnsupportedMediaError):
        await MergePatchInputFormatter().read(context)


async def test_read_errors_accumulate():
    context = _context([{"integer": 7}])
    context.errors.add("other", "previous error")
    await MergePatchInputFormatter().read(context)
    assert len(context.errors) == 2


async def test_read_cancelled():
    stream = CancelledStream()
    request = Request(body=stream)
    context = InputFormatterContext(request=request, model_type=PatchDocument[Model])
    with pytest.raises(asyncio.CancelledError):
        await MergePatchInputFormatter().read(context)
    assert stream.closed
    assert len(context.errors) == 0
