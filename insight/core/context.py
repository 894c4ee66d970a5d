from __future__ import annotations

import inspect
from typing import Awaitable, Callable, Union

from insight.contracts.types import InsightAction, UIContext
from insight.errors import PreconditionError

ContextRetrieverFn = Callable[[InsightAction], Union[UIContext, Awaitable[UIContext]]]
ContextSource = Union[UIContext, ContextRetrieverFn]


class ContextRetriever:
    """
    Normalizes a static UIContext or a (sync or async) retriever into one awaitable call.

    The action kind is passed through so retrievers can capture less for extract/assert.
    """

    def __init__(self, source: ContextSource) -> None:
        if source is None:
            raise PreconditionError("context is required for Insight")
        if isinstance(source, UIContext):
            snapshot = source
            self._fn: ContextRetrieverFn = lambda action: snapshot
        elif callable(source):
            self._fn = source
        else:
            raise PreconditionError(f"context should be a UIContext or a callable, got {type(source).__name__}")

    async def __call__(self, action: InsightAction) -> UIContext:
        result = self._fn(action)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, UIContext):
            raise PreconditionError(
                f"context retriever returned {type(result).__name__} for {action}, expected UIContext"
            )
        return result


__all__ = ["ContextRetriever", "ContextRetrieverFn", "ContextSource"]
