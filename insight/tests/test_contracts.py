import pytest
from pydantic import TypeAdapter, ValidationError

from insight.contracts.dump import DumpRecord, LocateDump
from insight.contracts.types import (
    AssertionResult,
    BaseElement,
    LocateQuery,
    Point,
    Rect,
    SchemaDemand,
    Size,
    TextDemand,
    UIContext,
    to_demand,
)
from insight.errors import PreconditionError


def test_rect_geometry():
    rect = Rect.from_bbox([30, 40, 10, 20])

    assert rect == Rect(left=10, top=20, width=20, height=20)
    assert rect.right == 30
    assert rect.bottom == 40
    assert rect.center == Point(left=20, top=30)
    assert rect.contains(Point(left=10, top=40))
    assert not rect.contains(Point(left=9, top=30))


def test_element_center_defaults_to_rect_center():
    element = BaseElement(id="a", rect=Rect(left=0, top=0, width=10, height=4))

    assert element.center == Point(left=5, top=2)


def test_context_lookups_and_immutability():
    context = UIContext(
        size=Size(width=100, height=100),
        tree=[
            BaseElement(id="outer", rect=Rect(left=0, top=0, width=100, height=100)),
            BaseElement(id="inner", rect=Rect(left=10, top=10, width=10, height=10)),
        ],
    )

    assert context.element_by_id("inner").id == "inner"
    assert context.element_by_id("missing") is None
    assert context.element_at(Point(left=15, top=15)).id == "inner"
    assert context.element_at(Point(left=50, top=50)).id == "outer"
    assert context.element_at(Point(left=500, top=500)) is None
    with pytest.raises(ValidationError):
        context.tree = []


def test_locate_query_coerce():
    assert LocateQuery.coerce({"prompt": "x", "deep_think": True}).deep_think is True
    query = LocateQuery(prompt="y", vl_locate_mode="qwen-vl")
    assert LocateQuery.coerce(query) is query
    assert query.vl_locate_mode == "qwen-vl"


def test_locate_query_accepts_camel_case_flags():
    query = LocateQuery.coerce({"prompt": "a", "deepThink": True, "vlLocateMode": "gemini"})

    assert query.deep_think is True
    assert query.vl_locate_mode == "gemini"


def test_locate_query_null_prompt_is_empty():
    assert LocateQuery.coerce({"prompt": None}).prompt == ""


def test_locate_query_invalid_mapping_is_precondition_error():
    with pytest.raises(PreconditionError, match="query should be an object for locate"):
        LocateQuery.coerce({"prompt": ["not", "text"]})


def test_to_demand_variants():
    assert to_demand("price") == TextDemand(text="price")
    assert to_demand({"price": "item price"}) == SchemaDemand(field_map={"price": "item price"})
    demand = SchemaDemand(field_map={"a": "b"})
    assert to_demand(demand) is demand
    assert to_demand(3.5) is None


def test_assertion_result_alias():
    result = AssertionResult.model_validate({"pass": True, "thought": "ok"})

    assert result.pass_ is True
    assert result.model_dump(by_alias=True)["pass"] is True


def test_dump_record_discriminates_on_type():
    adapter = TypeAdapter(DumpRecord)

    record = adapter.validate_python(
        {"type": "locate", "user_query": {"element": "a"}, "task_info": {"duration_ms": 1}, "deep_think": True}
    )

    assert isinstance(record, LocateDump)
    assert record.deep_think is True
