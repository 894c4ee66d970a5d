"""
Prompt templates for the insight model calls.

Every system prompt asks for a single JSON object and nothing else. Vision
messages attach the screenshot as a data URL; text messages carry a compact
description of the element tree instead.
"""

import json
from typing import List, Optional

from insight.contracts.types import ExtractDemand, Rect, TextDemand, UIContext

MAX_TREE_ELEMENTS = 400

LOCATE_ELEMENT_TEXT_PROMPT = """
You are a UI element locator. You receive a list of page elements, one per line,
formatted as `id | content | left,top,width,height`, and a target description.
Reply with ONLY a JSON object:
{"elements": [{"id": "<id of the matching element>", "reason": "<short reason>"}], "errors": []}
Return at most one element. If nothing matches, return an empty "elements" list and
explain why in "errors".
""".strip()

LOCATE_ELEMENT_VL_PROMPT = """
You are a UI vision locator. Given a screenshot and a target description, find the
single best matching element. Reply with ONLY a JSON object:
{"bbox": [x1, y1, x2, y2], "errors": []}
Coordinates are the top-left and bottom-right corners of the element in the provided
image. If nothing matches, set "bbox" to null and explain why in "errors".
""".strip()

LOCATE_SECTION_PROMPT = """
You are a UI layout analyst. Given a screenshot and a description of an area of the
page, find the region that contains it. Reply with ONLY a JSON object:
{"bbox": [x1, y1, x2, y2], "error": null}
Coordinates are the top-left and bottom-right corners of the region. If no region
matches, set "bbox" to null and put the reason in "error".
""".strip()

EXTRACT_PROMPT = """
You extract data from a UI. Use the screenshot and page content to answer the data
demand. Reply with ONLY a JSON object:
{"data": <the extracted data>, "errors": []}
When the demand lists named fields, "data" must be an object with exactly those keys.
If something cannot be found, leave it null and describe the problem in "errors".
""".strip()

ASSERT_PROMPT = """
You verify statements about a UI. Use the screenshot and page content to decide if the
assertion holds. Reply with ONLY a JSON object:
{"pass": true or false, "thought": "<why the assertion passes or fails>"}
""".strip()


def describe_tree(context: UIContext, limit: int = MAX_TREE_ELEMENTS) -> str:
    lines = []
    for element in context.tree[:limit]:
        rect = element.rect
        content = (element.content or "").replace("\n", " ").strip()
        lines.append(
            f"{element.id} | {content} | {int(rect.left)},{int(rect.top)},{int(rect.width)},{int(rect.height)}"
        )
    return "\n".join(lines)


def describe_demand(demand: ExtractDemand) -> str:
    if isinstance(demand, TextDemand):
        return demand.text
    return "Return an object with these fields:\n" + json.dumps(demand.field_map, ensure_ascii=False, indent=2)


def _page_text(context: UIContext) -> str:
    if context.content:
        return context.content
    return describe_tree(context)


def _vision_messages(system: str, text: str, image_base64: Optional[str]) -> List[dict]:
    if not image_base64:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": text},
        ]
    data_url = f"data:image/png;base64,{image_base64}"
    return [
        {"role": "system", "content": system},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": data_url}},
            ],
        },
    ]


def build_locate_element_messages(
    context: UIContext,
    target: str,
    vl_mode: bool,
    image_base64: Optional[str] = None,
    search_area: Optional[Rect] = None,
) -> List[dict]:
    if vl_mode:
        text = f"Find: {target}"
        return _vision_messages(LOCATE_ELEMENT_VL_PROMPT, text, image_base64 or context.screenshot_base64)

    elements = context.tree
    if search_area is not None:
        elements = [el for el in elements if search_area.contains(el.center or el.rect.center)]
    scoped = UIContext(size=context.size, tree=elements)
    text = f"Elements:\n{describe_tree(scoped)}\n\nFind: {target}"
    return [
        {"role": "system", "content": LOCATE_ELEMENT_TEXT_PROMPT},
        {"role": "user", "content": text},
    ]


def build_locate_section_messages(context: UIContext, section_description: str) -> List[dict]:
    text = f"Find the area: {section_description}"
    return _vision_messages(LOCATE_SECTION_PROMPT, text, context.screenshot_base64)


def build_extract_messages(context: UIContext, demand: ExtractDemand) -> List[dict]:
    text = f"Page content:\n{_page_text(context)}\n\nData demand:\n{describe_demand(demand)}"
    return _vision_messages(EXTRACT_PROMPT, text, context.screenshot_base64)


def build_assert_messages(context: UIContext, assertion: str) -> List[dict]:
    text = f"Page content:\n{_page_text(context)}\n\nAssertion: {assertion}"
    return _vision_messages(ASSERT_PROMPT, text, context.screenshot_base64)


__all__ = [
    "build_assert_messages",
    "build_extract_messages",
    "build_locate_element_messages",
    "build_locate_section_messages",
    "describe_demand",
    "describe_tree",
]
