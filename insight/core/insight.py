"""
Insight: natural-language locate, extract and assert over a captured UI.

Each call acquires a fresh context, delegates perception to the model, shapes the
result, and emits exactly one diagnostic dump before returning or raising.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from typing import Any, Dict, Mapping, Optional, Union

from insight.config import INSIGHT_FORCE_DEEP_THINK, get_ai_config_in_boolean
from insight.contracts.dump import AssertDump, ExtractDump, LocateDump
from insight.contracts.types import (
    AssertionResult,
    ExtractDemand,
    ExtractResult,
    InsightAction,
    LocateQuery,
    LocateResult,
    QuickAnswer,
    UIContext,
    to_demand,
)
from insight.core import locator
from insight.core.context import ContextRetriever, ContextSource
from insight.core.dump import DumpSubscriber, build_task_info, emit_insight_dump
from insight.core.model_mode import narrowing_supported, vl_model_scope
from insight.errors import ModelResponseError, PreconditionError
from insight.llm import ai_model
from insight.llm.openai_client import CallAI

logger = logging.getLogger(__name__)

ASSERT_TYPE_MESSAGE = (
    "This is the assert method of Insight, the first argument should be a string. "
    "For an ordinary Python assertion use the `assert` statement instead."
)


class Insight:
    def __init__(
        self,
        context: ContextSource,
        ai_vendor_fn: Optional[CallAI] = None,
        task_info: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.context_retriever = ContextRetriever(context)
        self.ai_vendor_fn = ai_vendor_fn
        self.task_info: Dict[str, Any] = dict(task_info or {})
        self.once_dump_updated_fn: Optional[DumpSubscriber] = None

    def once_dump_updated(self, subscriber: Optional[DumpSubscriber]) -> None:
        """Register a subscriber for the dump of the next call only (last registration wins)."""
        self.once_dump_updated_fn = subscriber

    def _take_dump_subscriber(self, on_dump: Optional[DumpSubscriber]) -> Optional[DumpSubscriber]:
        # Runs before the first await of a call, so no other call can claim the slot in between.
        if on_dump is not None:
            return on_dump
        subscriber = self.once_dump_updated_fn
        self.once_dump_updated_fn = None
        return subscriber

    async def _context(self, action: InsightAction) -> UIContext:
        return await self.context_retriever(action)

    async def locate(
        self,
        query: Union[LocateQuery, Mapping[str, Any], str],
        call_ai: Optional[CallAI] = None,
        quick_answer: Optional[Union[QuickAnswer, Mapping[str, Any]]] = None,
        on_dump: Optional[DumpSubscriber] = None,
    ) -> LocateResult:
        if isinstance(query, LocateQuery):
            query_prompt = query.prompt
        elif isinstance(query, Mapping):
            query_prompt = str(query.get("prompt") or "")
        else:
            query_prompt = query
        if quick_answer is not None and not isinstance(quick_answer, QuickAnswer):
            quick_answer = QuickAnswer.model_validate(dict(quick_answer))
        if not query_prompt and quick_answer is None:
            raise PreconditionError("query or quick_answer is required for locate")

        dump_subscriber = self._take_dump_subscriber(on_dump)

        if not isinstance(query, (LocateQuery, Mapping)):
            raise PreconditionError("query should be an object for locate")
        query = LocateQuery.coerce(query)

        force_deep_think = get_ai_config_in_boolean(INSIGHT_FORCE_DEEP_THINK)
        if force_deep_think:
            logger.debug("locate: global force deep think switch is on")
        search_area_prompt = locator.resolve_search_area_prompt(query, force_deep_think)

        with vl_model_scope(search_area_prompt):
            search_area_prompt = narrowing_supported(search_area_prompt)
            context = await self._context("locate")
            outcome = await locator.run_locate(
                context,
                query_prompt,
                search_area_prompt=search_area_prompt,
                call_ai=call_ai or self.ai_vendor_fn,
                section_call_ai=self.ai_vendor_fn,
                quick_answer=quick_answer,
            )

            search_area = outcome.search_area
            task_info = build_task_info(
                self.task_info,
                duration_ms=outcome.duration_ms,
                raw_response=outcome.raw_response_text(),
                format_response=outcome.format_response(),
                usage=outcome.usage,
                search_area=search_area.rect if search_area else None,
                search_area_raw_response=search_area.raw_response if search_area else None,
                search_area_usage=search_area.usage if search_area else None,
            )
            error_log = outcome.error_log
            emit_insight_dump(
                LocateDump(
                    user_query={"element": query_prompt},
                    quick_answer=quick_answer,
                    matched_element=outcome.elements,
                    matched_rect=outcome.rect,
                    task_info=task_info,
                    deep_think=search_area is not None,
                    error=error_log,
                ),
                dump_subscriber,
            )

            if error_log:
                raise ModelResponseError(error_log)
            return locator.shape_locate_result(outcome.elements, outcome.rect)

    async def extract(
        self,
        data_demand: Union[ExtractDemand, Mapping[str, str], str],
        on_dump: Optional[DumpSubscriber] = None,
    ) -> ExtractResult:
        demand = to_demand(data_demand)
        if demand is None:
            raise PreconditionError(
                f"data_demand should be a string or a mapping of field descriptions, got {type(data_demand).__name__}"
            )
        dump_subscriber = self._take_dump_subscriber(on_dump)

        context = await self._context("extract")
        started = time.monotonic()
        response = await ai_model.ai_extract_element_info(context, demand, call_ai=self.ai_vendor_fn)
        parse_result = response.parse_result

        task_info = build_task_info(
            self.task_info,
            duration_ms=int((time.monotonic() - started) * 1000),
            raw_response=json.dumps(dataclasses.asdict(parse_result), ensure_ascii=False, default=str),
            usage=response.usage,
        )
        error_log = None
        if parse_result.errors:
            error_log = "AI response error: \n" + "\n".join(parse_result.errors)

        data = parse_result.data
        emit_insight_dump(
            ExtractDump(
                user_query={"data_demand": demand.model_dump()},
                data=data,
                task_info=task_info,
                error=error_log,
            ),
            dump_subscriber,
        )

        if error_log and data in (None, ""):
            raise ModelResponseError(error_log)
        return ExtractResult(data=data, usage=response.usage)

    async def assert_(self, assertion: str, on_dump: Optional[DumpSubscriber] = None) -> AssertionResult:
        if not isinstance(assertion, str):
            raise TypeError(ASSERT_TYPE_MESSAGE)
        dump_subscriber = self._take_dump_subscriber(on_dump)

        context = await self._context("assert")
        started = time.monotonic()
        response = await ai_model.ai_assert(context, assertion, call_ai=self.ai_vendor_fn)
        content = response.content

        task_info = build_task_info(
            self.task_info,
            duration_ms=int((time.monotonic() - started) * 1000),
            raw_response=json.dumps({"pass": content.pass_, "thought": content.thought}, ensure_ascii=False),
            usage=response.usage,
        )
        emit_insight_dump(
            AssertDump(
                user_query={"assertion": assertion},
                task_info=task_info,
                assertion_pass=content.pass_,
                assertion_thought=content.thought,
                error=None if content.pass_ else content.thought,
            ),
            dump_subscriber,
        )
        return AssertionResult(pass_=content.pass_, thought=content.thought, usage=response.usage)


__all__ = ["Insight"]
