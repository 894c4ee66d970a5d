"""
Shared data contracts: geometry, UI snapshot, model usage, queries and results.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from insight.errors import PreconditionError

InsightAction = Literal["locate", "extract", "assert"]


class Point(BaseModel):
    left: float
    top: float


class Size(BaseModel):
    width: float
    height: float


class Rect(BaseModel):
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def center(self) -> Point:
        return Point(left=self.left + self.width / 2.0, top=self.top + self.height / 2.0)

    def contains(self, point: Point) -> bool:
        return self.left <= point.left <= self.right and self.top <= point.top <= self.bottom

    @classmethod
    def from_bbox(cls, bbox: Sequence[float]) -> "Rect":
        """Build from ``[x1, y1, x2, y2]``."""
        x1, y1, x2, y2 = (float(v) for v in bbox[:4])
        left, right = min(x1, x2), max(x1, x2)
        top, bottom = min(y1, y2), max(y1, y2)
        return cls(left=left, top=top, width=right - left, height=bottom - top)


class BaseElement(BaseModel):
    """An addressable element of the captured UI."""

    id: str
    index_id: Optional[int] = None
    content: str = ""
    rect: Rect
    center: Optional[Point] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _default_center(self) -> "BaseElement":
        if self.center is None:
            self.center = self.rect.center
        return self


class UIContext(BaseModel):
    """Snapshot of the UI handed to the model calls. Never mutated by insight."""

    model_config = ConfigDict(frozen=True)

    size: Size
    screenshot_base64: Optional[str] = None
    tree: List[BaseElement] = Field(default_factory=list)
    content: Optional[str] = None

    def element_by_id(self, element_id: str) -> Optional[BaseElement]:
        for element in self.tree:
            if element.id == element_id:
                return element
        return None

    def element_at(self, point: Point) -> Optional[BaseElement]:
        """Return the smallest element whose rect contains ``point``."""
        hits = [el for el in self.tree if el.rect.contains(point)]
        if not hits:
            return None
        return min(hits, key=lambda el: el.rect.width * el.rect.height)


class AIUsageInfo(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    time_cost_ms: Optional[int] = None


class LocateQuery(BaseModel):
    """Locate request; mapping input may use ``deepThink`` / ``vlLocateMode`` as well."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    deep_think: bool = Field(default=False, alias="deepThink")
    vl_locate_mode: Union[bool, str] = Field(default=False, alias="vlLocateMode")

    @field_validator("prompt", mode="before")
    @classmethod
    def _prompt_or_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def coerce(cls, value: Union["LocateQuery", Mapping[str, Any]]) -> "LocateQuery":
        if isinstance(value, LocateQuery):
            return value
        try:
            return cls.model_validate(dict(value))
        except ValidationError as exc:
            raise PreconditionError(f"query should be an object for locate: {exc}") from exc


class QuickAnswer(BaseModel):
    """Partial answer supplied up front; a resolvable id or a bbox skips the model call."""

    id: Optional[str] = None
    bbox: Optional[List[float]] = None
    reason: Optional[str] = None


class TaskInfo(BaseModel):
    """Per-call telemetry; extra keys carry caller-supplied baseline metadata."""

    model_config = ConfigDict(extra="allow")

    duration_ms: int = 0
    raw_response: Optional[str] = None
    format_response: Optional[str] = None
    usage: Optional[AIUsageInfo] = None
    search_area: Optional[Rect] = None
    search_area_raw_response: Optional[str] = None
    search_area_usage: Optional[AIUsageInfo] = None


class TextDemand(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class SchemaDemand(BaseModel):
    kind: Literal["schema"] = "schema"
    field_map: Dict[str, str]


ExtractDemand = Union[TextDemand, SchemaDemand]


def to_demand(value: Any) -> Optional[ExtractDemand]:
    """Normalize a plain string or field mapping into a tagged demand; None if unsupported."""
    if isinstance(value, (TextDemand, SchemaDemand)):
        return value
    if isinstance(value, str):
        return TextDemand(text=value)
    if isinstance(value, Mapping):
        return SchemaDemand(field_map={str(k): str(v) for k, v in value.items()})
    return None


class LocatedElement(BaseModel):
    id: str
    index_id: Optional[int] = None
    center: Point
    rect: Rect


class LocateResult(BaseModel):
    element: Optional[LocatedElement] = None
    rect: Optional[Rect] = None


class ExtractResult(BaseModel):
    data: Any = None
    usage: Optional[AIUsageInfo] = None


class AssertionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pass_: bool = Field(alias="pass")
    thought: str = ""
    usage: Optional[AIUsageInfo] = None


__all__ = [
    "AIUsageInfo",
    "AssertionResult",
    "BaseElement",
    "ExtractDemand",
    "ExtractResult",
    "InsightAction",
    "LocateQuery",
    "LocateResult",
    "LocatedElement",
    "Point",
    "QuickAnswer",
    "Rect",
    "SchemaDemand",
    "Size",
    "TaskInfo",
    "TextDemand",
    "UIContext",
    "to_demand",
]
