"""
Two-stage locate: optional search-area narrowing, then element resolution.

Stage 1 asks a VL model for the region described by the prompt; Stage 2 locates the
target inside it (or on the whole page). Claimed element ids are reconciled against
the live element set before results are shaped.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from insight.contracts.types import (
    AIUsageInfo,
    BaseElement,
    LocatedElement,
    LocateQuery,
    LocateResult,
    QuickAnswer,
    Rect,
    UIContext,
)
from insight.errors import AmbiguityError, PreconditionError
from insight.llm import ai_model
from insight.llm.ai_model import ElementById, LocateParseResult, SectionLocateResponse
from insight.llm.openai_client import CallAI

logger = logging.getLogger(__name__)


@dataclass
class LocateOutcome:
    elements: List[BaseElement]
    rect: Optional[Rect]
    parse_result: LocateParseResult
    raw_response: Any
    usage: Optional[AIUsageInfo]
    duration_ms: int
    search_area: Optional[SectionLocateResponse] = None
    errors: List[str] = field(default_factory=list)

    @property
    def error_log(self) -> Optional[str]:
        if not self.errors:
            return None
        return "AI model failed to locate: \n" + "\n".join(self.errors)

    def format_response(self) -> str:
        return json.dumps(dataclasses.asdict(self.parse_result), ensure_ascii=False, default=str)

    def raw_response_text(self) -> Optional[str]:
        if self.raw_response is None or isinstance(self.raw_response, str):
            return self.raw_response
        return json.dumps(self.raw_response, ensure_ascii=False, default=str)


def resolve_search_area_prompt(query: LocateQuery, force_deep_think: bool = False) -> Optional[str]:
    """
    Decide whether the call narrows a search area first.

    Any of deep_think, the global force switch or vl_locate_mode selects narrowing,
    but a falsy vl_locate_mode always turns it back off.
    """
    search_area_prompt: Optional[str] = None
    if query.deep_think or force_deep_think or query.vl_locate_mode:
        search_area_prompt = query.prompt
    if not query.vl_locate_mode:
        search_area_prompt = None
    return search_area_prompt or None


async def locate_search_area(
    context: UIContext,
    search_area_prompt: str,
    call_ai: Optional[CallAI] = None,
) -> SectionLocateResponse:
    response = await ai_model.ai_locate_section(context, search_area_prompt, call_ai=call_ai)
    if not response.rect:
        detail = f": {response.error}" if response.error else ""
        raise PreconditionError(f'cannot find search area for "{search_area_prompt}"{detail}')
    return response


def reconcile_elements(parse_result: LocateParseResult, element_by_id: ElementById) -> List[BaseElement]:
    """Resolve claimed ids to live elements, dropping the ones that no longer exist."""
    elements: List[BaseElement] = []
    for item in parse_result.elements:
        if "id" not in item:
            continue
        element = element_by_id(item["id"])
        if element is None:
            logger.warning(
                "locate: cannot find element id=%s. Maybe an unstable response from AI model", item["id"]
            )
            continue
        elements.append(element)
    return elements


async def run_locate(
    context: UIContext,
    query_prompt: str,
    search_area_prompt: Optional[str] = None,
    call_ai: Optional[CallAI] = None,
    section_call_ai: Optional[CallAI] = None,
    quick_answer: Optional[QuickAnswer] = None,
) -> LocateOutcome:
    search_area: Optional[SectionLocateResponse] = None
    if search_area_prompt:
        search_area = await locate_search_area(context, search_area_prompt, call_ai=section_call_ai)

    started = time.monotonic()
    response = await ai_model.ai_locate_element(
        context,
        query_prompt,
        call_ai=call_ai,
        quick_answer=quick_answer,
        search_config=search_area,
    )
    duration_ms = int((time.monotonic() - started) * 1000)

    return LocateOutcome(
        elements=reconcile_elements(response.parse_result, response.element_by_id),
        rect=response.rect,
        parse_result=response.parse_result,
        raw_response=response.raw_response,
        usage=response.usage,
        duration_ms=duration_ms,
        search_area=search_area,
        errors=list(response.parse_result.errors or []),
    )


def shape_locate_result(elements: List[BaseElement], rect: Optional[Rect]) -> LocateResult:
    if len(elements) > 1:
        raise AmbiguityError(f"locate: multiple elements found, length = {len(elements)}")
    if not elements:
        return LocateResult(element=None, rect=rect)
    element = elements[0]
    return LocateResult(
        element=LocatedElement(
            id=element.id,
            index_id=element.index_id,
            center=element.center or element.rect.center,
            rect=element.rect,
        ),
        rect=rect,
    )


__all__ = [
    "LocateOutcome",
    "locate_search_area",
    "reconcile_elements",
    "resolve_search_area_prompt",
    "run_locate",
    "shape_locate_result",
]
