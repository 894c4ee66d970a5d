import asyncio

import pytest

from insight.contracts.types import AIUsageInfo, BaseElement, Rect, SchemaDemand, Size, TextDemand, UIContext
from insight.core.insight import Insight
from insight.errors import ModelResponseError, PreconditionError
from insight.llm import ai_model
from insight.llm.ai_model import AssertContent, AssertResponse, ExtractParseResult, ExtractResponse


def _context():
    return UIContext(
        size=Size(width=100, height=100),
        tree=[BaseElement(id="price", content="$9.99", rect=Rect(left=0, top=0, width=10, height=10))],
    )


class FakeExtract:
    def __init__(self, data=None, errors=None):
        self.data = data
        self.errors = errors or []
        self.demands = []

    async def __call__(self, context, data_query, call_ai=None):
        self.demands.append(data_query)
        return ExtractResponse(
            parse_result=ExtractParseResult(data=self.data, errors=list(self.errors)),
            usage=AIUsageInfo(total_tokens=11),
        )


class FakeAssert:
    def __init__(self, passed, thought):
        self.passed = passed
        self.thought = thought
        self.calls = 0

    async def __call__(self, context, assertion, call_ai=None):
        self.calls += 1
        return AssertResponse(content=AssertContent(pass_=self.passed, thought=self.thought), usage=AIUsageInfo())


def test_extract_returns_data(monkeypatch):
    fake = FakeExtract(data={"price": "9.99"})
    monkeypatch.setattr(ai_model, "ai_extract_element_info", fake)
    dumps = []

    result = asyncio.run(Insight(_context()).extract({"price": "price of the item"}, on_dump=dumps.append))

    assert result.data == {"price": "9.99"}
    assert result.usage.total_tokens == 11
    assert fake.demands[0] == SchemaDemand(field_map={"price": "price of the item"})
    assert dumps[0].type == "extract"
    assert dumps[0].data == {"price": "9.99"}
    assert dumps[0].error is None


def test_extract_text_demand(monkeypatch):
    fake = FakeExtract(data="9.99")
    monkeypatch.setattr(ai_model, "ai_extract_element_info", fake)

    result = asyncio.run(Insight(_context()).extract("the price"))

    assert result.data == "9.99"
    assert fake.demands[0] == TextDemand(text="the price")


def test_extract_keeps_partial_data_despite_errors(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_extract_element_info", FakeExtract(data={"price": "9.99"}, errors=["no currency"]))
    dumps = []

    result = asyncio.run(Insight(_context()).extract({"price": "p", "currency": "c"}, on_dump=dumps.append))

    assert result.data == {"price": "9.99"}
    assert dumps[0].error == "AI response error: \nno currency"


def test_extract_errors_without_data_raise_after_dump(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_extract_element_info", FakeExtract(data=None, errors=["page is empty"]))
    dumps = []

    with pytest.raises(ModelResponseError, match="page is empty"):
        asyncio.run(Insight(_context()).extract("the price", on_dump=dumps.append))

    assert len(dumps) == 1
    assert dumps[0].data is None


def test_extract_rejects_unsupported_demand():
    with pytest.raises(PreconditionError, match="data_demand"):
        asyncio.run(Insight(_context()).extract(42))


def test_assert_failure_is_a_normal_result(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_assert", FakeAssert(False, "cart is not empty"))
    dumps = []

    result = asyncio.run(Insight(_context()).assert_("cart is empty", on_dump=dumps.append))

    assert result.pass_ is False
    assert result.thought == "cart is not empty"
    assert result.model_dump(by_alias=True)["pass"] is False
    assert dumps[0].type == "assert"
    assert dumps[0].error == "cart is not empty"
    assert dumps[0].assertion_pass is False
    assert dumps[0].user_query == {"assertion": "cart is empty"}


def test_assert_pass_has_no_dump_error(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_assert", FakeAssert(True, "the cart shows 0 items"))
    dumps = []

    result = asyncio.run(Insight(_context()).assert_("cart is empty", on_dump=dumps.append))

    assert result.pass_ is True
    assert dumps[0].error is None
    assert dumps[0].assertion_thought == "the cart shows 0 items"


class _Handle:
    pass


def test_unserializable_task_info_keeps_extract_and_assert_results(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_extract_element_info", FakeExtract(data={"price": "9.99"}))
    monkeypatch.setattr(ai_model, "ai_assert", FakeAssert(True, "shown"))
    dumps = []
    insight = Insight(_context(), task_info={"session": _Handle()})

    extracted = asyncio.run(insight.extract("price", on_dump=dumps.append))
    asserted = asyncio.run(insight.assert_("price is shown", on_dump=dumps.append))

    assert extracted.data == {"price": "9.99"}
    assert asserted.pass_ is True
    assert [dump.type for dump in dumps] == ["extract", "assert"]


def test_assert_rejects_non_string():
    with pytest.raises(TypeError, match="assert` statement"):
        asyncio.run(Insight(_context()).assert_({"cart": "empty"}))


def test_once_dump_subscriber_fires_for_first_call_only(monkeypatch):
    fake = FakeAssert(True, "ok")
    monkeypatch.setattr(ai_model, "ai_assert", fake)
    dumps = []
    insight = Insight(_context())
    insight.once_dump_updated(dumps.append)

    asyncio.run(insight.assert_("first"))
    asyncio.run(insight.assert_("second"))

    assert fake.calls == 2
    assert [d.user_query["assertion"] for d in dumps] == ["first"]


def test_once_dump_subscriber_last_registration_wins(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_assert", FakeAssert(True, "ok"))
    first, second = [], []
    insight = Insight(_context())
    insight.once_dump_updated(first.append)
    insight.once_dump_updated(second.append)

    asyncio.run(insight.assert_("check"))

    assert first == []
    assert len(second) == 1


def test_per_call_subscriber_leaves_slot_for_next_call(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_extract_element_info", FakeExtract(data="x"))
    slot, per_call = [], []
    insight = Insight(_context())
    insight.once_dump_updated(slot.append)

    asyncio.run(insight.extract("a", on_dump=per_call.append))
    asyncio.run(insight.extract("b"))

    assert len(per_call) == 1
    assert len(slot) == 1
    assert slot[0].user_query["data_demand"]["text"] == "b"


def test_failing_subscriber_does_not_change_result(monkeypatch, caplog):
    monkeypatch.setattr(ai_model, "ai_extract_element_info", FakeExtract(data={"price": "9.99"}))

    def broken(record):
        raise ValueError("subscriber bug")

    with caplog.at_level("WARNING"):
        result = asyncio.run(Insight(_context()).extract("the price", on_dump=broken))

    assert result.data == {"price": "9.99"}
    assert "subscriber bug" in caplog.text


def test_context_retriever_gets_action_kind(monkeypatch):
    monkeypatch.setattr(ai_model, "ai_extract_element_info", FakeExtract(data="x"))
    monkeypatch.setattr(ai_model, "ai_assert", FakeAssert(True, "ok"))
    actions = []

    def retriever(action):
        actions.append(action)
        return _context()

    insight = Insight(retriever)
    asyncio.run(insight.extract("x"))
    asyncio.run(insight.assert_("y"))

    assert actions == ["extract", "assert"]


def test_context_retriever_must_return_ui_context():
    insight = Insight(lambda action: {"tree": []})

    with pytest.raises(PreconditionError, match="expected UIContext"):
        asyncio.run(insight.assert_("anything"))
