from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from insight.contracts.types import BaseElement, QuickAnswer, Rect, TaskInfo


class _DumpBase(BaseModel):
    log_id: Optional[str] = None
    log_time: Optional[str] = None
    user_query: Dict[str, Any]
    matched_element: List[BaseElement] = Field(default_factory=list)
    data: Any = None
    task_info: TaskInfo
    error: Optional[str] = None


class LocateDump(_DumpBase):
    type: Literal["locate"] = "locate"
    quick_answer: Optional[QuickAnswer] = None
    matched_rect: Optional[Rect] = None
    deep_think: bool = False


class ExtractDump(_DumpBase):
    type: Literal["extract"] = "extract"


class AssertDump(_DumpBase):
    type: Literal["assert"] = "assert"
    assertion_pass: bool = False
    assertion_thought: str = ""


DumpRecord = Annotated[Union[LocateDump, ExtractDump, AssertDump], Field(discriminator="type")]


__all__ = ["AssertDump", "DumpRecord", "ExtractDump", "LocateDump"]
