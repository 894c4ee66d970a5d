"""
Model-backed operations used by Insight: section locate, element locate, extract, assert.

Each operation builds messages, calls the injected ``call_ai`` (the OpenAI-compatible
client by default), and parses the reply into a typed response. Parse problems are
reported through ``errors`` on the response rather than raised; deciding what is fatal
is left to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from insight.config import vl_locate_mode
from insight.contracts.types import (
    AIUsageInfo,
    BaseElement,
    ExtractDemand,
    QuickAnswer,
    Rect,
    Size,
    UIContext,
)
from insight.llm import openai_client
from insight.llm.openai_client import CallAI
from insight.llm.prompts import (
    build_assert_messages,
    build_extract_messages,
    build_locate_element_messages,
    build_locate_section_messages,
)
from insight.llm.response_parser import coerce_bbox, normalize_errors, parse_json_reply
from insight.vision.imaging import adapt_bbox, clamp_rect, crop_image, expand_search_area, offset_rect

logger = logging.getLogger(__name__)

# A VL bbox is attributed to a tree element only when that element is at most this
# many times larger than the bbox; otherwise a synthetic element is used.
MAX_ELEMENT_TO_BBOX_AREA_RATIO = 4.0

ElementById = Callable[[str], Optional[BaseElement]]


@dataclass
class SectionLocateResponse:
    rect: Optional[Rect]
    raw_response: Optional[str]
    usage: Optional[AIUsageInfo]
    error: Optional[str] = None
    image_base64: Optional[str] = None


@dataclass
class LocateParseResult:
    elements: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ElementLocateResponse:
    parse_result: LocateParseResult
    rect: Optional[Rect]
    element_by_id: ElementById
    raw_response: Any
    usage: Optional[AIUsageInfo]


@dataclass
class ExtractParseResult:
    data: Any = None
    errors: List[str] = field(default_factory=list)


@dataclass
class ExtractResponse:
    parse_result: ExtractParseResult
    usage: Optional[AIUsageInfo]


@dataclass
class AssertContent:
    pass_: bool
    thought: str


@dataclass
class AssertResponse:
    content: AssertContent
    usage: Optional[AIUsageInfo]


def _resolve_call(call_ai: Optional[CallAI]) -> CallAI:
    return call_ai or openai_client.call_ai


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1", "pass", "passed"}
    return bool(value)


def _unparsed(content: str) -> str:
    preview = (content or "").strip()[:200]
    return f"failed to parse model response: {preview or '<empty>'}"


class _ElementIndex:
    """Looks ids up in the context tree, then among elements synthesized from bboxes."""

    def __init__(self, context: UIContext) -> None:
        self._context = context
        self._synthesized: Dict[str, BaseElement] = {}

    def __call__(self, element_id: str) -> Optional[BaseElement]:
        return self._context.element_by_id(element_id) or self._synthesized.get(element_id)

    def element_for_rect(self, rect: Rect) -> BaseElement:
        hit = self._context.element_at(rect.center)
        bbox_area = max(rect.width * rect.height, 1.0)
        if hit is not None and hit.rect.width * hit.rect.height <= bbox_area * MAX_ELEMENT_TO_BBOX_AREA_RATIO:
            return hit
        element_id = f"bbox-{int(rect.left)}-{int(rect.top)}-{int(rect.width)}-{int(rect.height)}"
        element = BaseElement(id=element_id, rect=rect)
        self._synthesized[element_id] = element
        return element


async def ai_locate_section(
    context: UIContext,
    section_description: str,
    call_ai: Optional[CallAI] = None,
) -> SectionLocateResponse:
    """Ask a vision-language model for the page region matching ``section_description``."""
    vl_mode = vl_locate_mode()
    if not vl_mode:
        return SectionLocateResponse(None, None, None, error="locating a section requires a vision-language model")
    if not context.screenshot_base64:
        return SectionLocateResponse(None, None, None, error="a screenshot is required to locate a section")

    messages = build_locate_section_messages(context, section_description)
    content, usage = await _resolve_call(call_ai)(messages)
    data = parse_json_reply(content)
    if not isinstance(data, dict):
        return SectionLocateResponse(None, content, usage, error=_unparsed(content))

    bbox = coerce_bbox(data.get("bbox"))
    if not bbox:
        error = data.get("error") or "model returned no bbox for the section"
        return SectionLocateResponse(None, content, usage, error=str(error))

    rect = expand_search_area(adapt_bbox(bbox, context.size, vl_mode), context.size)
    image = crop_image(context.screenshot_base64, rect)
    return SectionLocateResponse(rect=rect, raw_response=content, usage=usage, image_base64=image)


def _quick_answer_response(
    context: UIContext,
    index: _ElementIndex,
    quick_answer: QuickAnswer,
) -> Optional[ElementLocateResponse]:
    raw = quick_answer.model_dump(exclude_none=True)
    if quick_answer.id:
        element = index(quick_answer.id)
        if element is not None:
            return ElementLocateResponse(
                parse_result=LocateParseResult(elements=[{"id": element.id}]),
                rect=element.rect,
                element_by_id=index,
                raw_response=raw,
                usage=None,
            )
    bbox = coerce_bbox(quick_answer.bbox) if quick_answer.bbox else None
    if bbox:
        rect = clamp_rect(Rect.from_bbox(bbox), context.size)
        element = index.element_for_rect(rect)
        return ElementLocateResponse(
            parse_result=LocateParseResult(elements=[{"id": element.id}]),
            rect=rect,
            element_by_id=index,
            raw_response=raw,
            usage=None,
        )
    return None


async def ai_locate_element(
    context: UIContext,
    target_element_description: str,
    call_ai: Optional[CallAI] = None,
    quick_answer: Optional[QuickAnswer] = None,
    search_config: Optional[SectionLocateResponse] = None,
) -> ElementLocateResponse:
    """
    Find the element matching ``target_element_description``.

    A quick answer whose id resolves, or which carries a bbox, is returned without a
    model call. With a search area, VL models see the cropped screenshot and text
    models only the elements inside it.
    """
    index = _ElementIndex(context)
    if quick_answer is not None:
        short_circuit = _quick_answer_response(context, index, quick_answer)
        if short_circuit is not None:
            return short_circuit

    if not target_element_description:
        return ElementLocateResponse(
            parse_result=LocateParseResult(errors=["quick answer did not resolve and no target description was given"]),
            rect=None,
            element_by_id=index,
            raw_response=None,
            usage=None,
        )

    vl_mode = vl_locate_mode()
    search_area = search_config.rect if search_config is not None else None
    image = search_config.image_base64 if search_config is not None and search_config.image_base64 else None
    messages = build_locate_element_messages(
        context,
        target_element_description,
        vl_mode=bool(vl_mode),
        image_base64=image,
        search_area=search_area,
    )
    content, usage = await _resolve_call(call_ai)(messages)
    data = parse_json_reply(content)
    if isinstance(data, list):
        data = {"elements": data}
    if not isinstance(data, dict):
        return ElementLocateResponse(
            parse_result=LocateParseResult(errors=[_unparsed(content)]),
            rect=None,
            element_by_id=index,
            raw_response=content,
            usage=usage,
        )

    parse_result = LocateParseResult(errors=normalize_errors(data.get("errors")))
    rect: Optional[Rect] = None

    if vl_mode:
        bbox = coerce_bbox(data.get("bbox"))
        if bbox:
            if search_area is not None and image is not None:
                frame = Size(width=search_area.width, height=search_area.height)
                rect = offset_rect(adapt_bbox(bbox, frame, vl_mode), search_area)
            else:
                rect = adapt_bbox(bbox, context.size, vl_mode)
            element = index.element_for_rect(rect)
            parse_result.elements.append({"id": element.id})
    else:
        for item in data.get("elements") or []:
            if isinstance(item, dict) and item.get("id") is not None:
                parse_result.elements.append({**item, "id": str(item["id"])})
        for item in parse_result.elements:
            element = index(item["id"])
            if element is not None:
                rect = element.rect
                break

    return ElementLocateResponse(
        parse_result=parse_result,
        rect=rect,
        element_by_id=index,
        raw_response=content,
        usage=usage,
    )


async def ai_extract_element_info(
    context: UIContext,
    data_query: ExtractDemand,
    call_ai: Optional[CallAI] = None,
) -> ExtractResponse:
    messages = build_extract_messages(context, data_query)
    content, usage = await _resolve_call(call_ai)(messages)
    data = parse_json_reply(content)
    if not isinstance(data, dict):
        return ExtractResponse(parse_result=ExtractParseResult(errors=[_unparsed(content)]), usage=usage)
    return ExtractResponse(
        parse_result=ExtractParseResult(data=data.get("data"), errors=normalize_errors(data.get("errors"))),
        usage=usage,
    )


async def ai_assert(
    context: UIContext,
    assertion: str,
    call_ai: Optional[CallAI] = None,
) -> AssertResponse:
    messages = build_assert_messages(context, assertion)
    content, usage = await _resolve_call(call_ai)(messages)
    data = parse_json_reply(content)
    if not isinstance(data, dict) or "pass" not in data:
        logger.warning("assert: unparseable model reply for %r", assertion)
        return AssertResponse(content=AssertContent(pass_=False, thought=_unparsed(content)), usage=usage)
    return AssertResponse(
        content=AssertContent(pass_=_as_bool(data.get("pass")), thought=str(data.get("thought") or "")),
        usage=usage,
    )


__all__ = [
    "AssertContent",
    "AssertResponse",
    "ElementLocateResponse",
    "ExtractParseResult",
    "ExtractResponse",
    "LocateParseResult",
    "SectionLocateResponse",
    "ai_assert",
    "ai_extract_element_info",
    "ai_locate_element",
    "ai_locate_section",
]
