import pytest

from dataclasses import dataclass, field
from mergepatch.annotation import Alias
from mergepatch.codec import JSONCodec, Serializer
from mergepatch.document import (
    Operation,
    OperationType,
    PatchDocument,
    describe,
    escape,
    pointer,
    unescape,
)
from mergepatch.error import DeserializationError, PathResolutionError
from mergepatch.naming import CAMEL_CASE
from mergepatch.parser import parse
from mergepatch.validation import MaxLen, MinValue, ValidationError
from types import SimpleNamespace
from typing import Annotated, Any, TypedDict


@dataclass
class SubModel:
    value1: str | None = None
    value2: str | None = None
    numbers: list[int] = field(default_factory=list)


@dataclass
class Model:
    id: int = 0
    integer: int = 0
    string: str | None = None
    sub_model: SubModel | None = None
    tags: dict[str, str] = field(default_factory=dict)
    renamed: Annotated[str | None, Alias("renamedValue")] = None


@dataclass(frozen=True)
class Frozen:
    value: int = 0


class Counts(TypedDict, total=False):
    name: str
    count: int


camel = Serializer(naming=CAMEL_CASE)


def replace(path, value):
    return Operation(OperationType.REPLACE, path, value)


def test_escape():
    assert escape("a/b~c") == "a~1b~0c"
    assert unescape("a~1b~0c") == "a/b~c"
    assert unescape("~01") == "~1"
    assert pointer(["a/b", 1]) == "/a~1b/1"


def test_describe():
    assert describe(ValidationError("maximum length: 3")) == "/: maximum length: 3"
    assert describe(ValidationError(None, ["a", 0]), "/x/") == "/x/a/0: invalid value"
    assert describe(ValidationError("bad"), "/x") == "/x: bad"


def test_operation_segments():
    assert replace("/subModel/value1", 1).segments == ["subModel", "value1"]
    assert replace("/a~1b", 1).segments == ["a/b"]
    assert replace("/", 1).segments == [""]


def test_apply_scalar():
    document = parse({"integer": 7}, Model)
    target = Model(id=1, integer=5, string="s")
    assert document.apply(target) is target
    assert target == Model(id=1, integer=7, string="s")


def test_apply_leaves_model_unchanged():
    document = parse({"integer": 7}, Model)
    model = document.model
    document.apply(Model(integer=1))
    assert document.model is model
    assert document.model == Model(integer=7)


def test_apply_idempotent():
    document = parse({"integer": 7, "subModel": {"numbers": [4, 5]}}, Model, serializer=camel)
    target1 = Model(sub_model=SubModel(value1="a", numbers=[1]))
    target2 = Model(sub_model=SubModel(value1="a", numbers=[1]))
    document.apply(target1)
    document.apply(target2)
    assert target1 == target2
    document.apply(target1)
    assert target1 == target2


def test_apply_empty_is_noop():
    target = Model(id=1, integer=2, string="s", sub_model=SubModel(value1="a"))
    parse({}, Model).apply(target)
    assert target == Model(id=1, integer=2, string="s", sub_model=SubModel(value1="a"))


def test_apply_nested_preserves_siblings():
    document = parse({"subModel": {"numbers": [4, 5]}}, Model, serializer=camel)
    target = Model(integer=5, sub_model=SubModel(value1="v1", value2="v2", numbers=[1, 2, 3]))
    document.apply(target)
    assert target == Model(
        integer=5, sub_model=SubModel(value1="v1", value2="v2", numbers=[4, 5])
    )


def test_apply_creates_intermediate():
    document = parse({"subModel": {"value1": "a"}}, Model, serializer=camel)
    target = Model()
    document.apply(target)
    assert target.sub_model == SubModel(value1="a")


def test_apply_creates_intermediate_mapping():
    document = parse({"a": {"b": 1}}, dict[str, dict[str, int]])
    target = {"c": {"d": 2}}
    document.apply(target)
    assert target == {"a": {"b": 1}, "c": {"d": 2}}


def test_apply_null_dataclass_member():
    document = parse({"string": None, "subModel": None}, Model, serializer=camel)
    target = Model(string="s", sub_model=SubModel(value1="a"))
    document.apply(target)
    assert target.string is None
    assert target.sub_model is None


def test_apply_null_removes_mapping_key():
    document = parse({"tags": {"a": None, "c": "3"}}, Model)
    target = Model(tags={"a": "1", "b": "2"})
    document.apply(target)
    assert target.tags == {"b": "2", "c": "3"}


def test_apply_null_absent_mapping_key():
    document = parse({"a": None}, dict[str, int])
    target = {"b": 1}
    document.apply(target)
    assert target == {"b": 1}


def test_apply_typeddict():
    document = parse({"name": None, "count": 2}, Counts)
    target = {"name": "a", "count": 1}
    document.apply(target)
    assert target == {"count": 2}


def test_typeddict_unknown_key():
    with pytest.raises(DeserializationError):
        parse({"other": 1}, Counts)


def test_apply_any_mapping():
    document = parse({"a": {"b": [1, 2]}, "c": None}, dict[str, Any])
    target = {"a": {"x": 1}, "c": 3}
    document.apply(target)
    assert target == {"a": {"x": 1, "b": [1, 2]}}


def test_apply_alias():
    document = parse({"renamedValue": "x"}, Model)
    target = Model(renamed="a")
    document.apply(target)
    assert target.renamed == "x"


def test_apply_no_shared_lists():
    document = parse({"subModel": {"numbers": [1, 2]}}, Model, serializer=camel)
    target1 = Model()
    target2 = Model()
    document.apply(target1)
    document.apply(target2)
    assert target1.sub_model.numbers == [1, 2]
    assert target1.sub_model.numbers is not target2.sub_model.numbers
    assert target1.sub_model.numbers is not document.operations[0].value


def test_apply_later_operation_wins():
    operations = [replace("/integer", 1), replace("/integer", 2)]
    document = PatchDocument[Model](Model(), operations, model_type=Model)
    assert document.apply(Model()).integer == 2


def test_apply_frozen():
    document = parse({"value": 1}, Frozen)
    with pytest.raises(PathResolutionError) as ei:
        document.apply(Frozen())
    assert ei.value.segment == "value"
    assert ei.value.status == 409


def test_apply_missing_attribute():
    document = parse({"string": "x"}, Model)
    with pytest.raises(PathResolutionError) as ei:
        document.apply(SimpleNamespace(integer=1))
    assert ei.value.segment == "string"


def test_apply_missing_intermediate_attribute():
    document = parse({"subModel": {"value1": "x"}}, Model, serializer=camel)
    with pytest.raises(PathResolutionError) as ei:
        document.apply(SimpleNamespace(integer=1))
    assert ei.value.segment == "subModel"


def test_apply_non_object_intermediate():
    document = parse({"subModel": {"value1": "x"}}, Model, serializer=camel)
    target = Model()
    target.sub_model = "oops"
    with pytest.raises(PathResolutionError) as ei:
        document.apply(target)
    assert ei.value.segment == "value1"


def test_apply_non_mapping_intermediate():
    document = parse({"tags": {"a": "b"}}, Model)
    target = Model()
    target.tags = ["a"]
    with pytest.raises(PathResolutionError):
        document.apply(target)


def test_apply_aborts_without_rollback():
    operations = [replace("/integer", 1), replace("/string", "x")]
    document = PatchDocument[Model](Model(), operations, model_type=Model)
    target = SimpleNamespace(integer=0)
    with pytest.raises(PathResolutionError):
        document.apply(target)
    assert target.integer == 1


def test_unresolved_path():
    with pytest.raises(DeserializationError):
        PatchDocument[Model](Model(), [replace("/nope", 1)], model_type=Model)


def test_path_through_scalar():
    with pytest.raises(DeserializationError):
        PatchDocument[Model](Model(), [replace("/integer/a", 1)], model_type=Model)


def test_path_through_array():
    with pytest.raises(DeserializationError):
        PatchDocument[Model](Model(), [replace("/subModel/numbers/0", 1)], model_type=Model)


def test_not_nullable():
    with pytest.raises(DeserializationError):
        PatchDocument[Model](Model(), [replace("/integer", None)], model_type=Model)


def test_validation():
    @dataclass
    class Limited:
        name: Annotated[str, MaxLen(3)] | None = None
        count: Annotated[int, MinValue(0)] = 0

    assert parse({"name": "abc", "count": 1}, Limited).apply(Limited()) == Limited("abc", 1)
    assert parse({"name": None}, Limited).apply(Limited("a")) == Limited()
    with pytest.raises(DeserializationError) as ei:
        parse({"name": "abcd"}, Limited)
    assert str(ei.value).startswith("/name: ")
    with pytest.raises(DeserializationError):
        parse({"count": -1}, Limited)


def test_custom_converter():
    class UpperStrCodec(JSONCodec[str]):
        @staticmethod
        def handles(python_type):
            return python_type is str

        def encode(self, value):
            return value.lower()

        def decode(self, value):
            return value.upper()

    serializer = Serializer(converters=[UpperStrCodec])
    document = parse({"string": "abc"}, Model, serializer=serializer)
    assert document.model.string == "ABC"
    assert document.apply(Model()).string == "ABC"
    assert parse({"string": "abc"}, Model).apply(Model()).string == "abc"


def test_repr():
    document = parse({"integer": 1}, Model)
    assert repr(document).startswith("PatchDocument(model=")
    assert len(document) == 1


def test_serializer_shared_with_ordinary_bodies():
    target = Model(id=1, integer=5, sub_model=SubModel(value1="a"))
    body = camel.encode(Model, target)
    assert body == {
        "id": 1,
        "integer": 5,
        "subModel": {"value1": "a", "numbers": []},
        "tags": {},
    }
    document = parse({"subModel": {"value2": "b"}}, Model, serializer=camel)
    document.apply(target)
    assert camel.decode(Model, camel.encode(Model, target)) == target
    assert target.sub_model == SubModel(value1="a", value2="b")
