from __future__ import annotations


class InsightError(RuntimeError):
    """Base class for failures raised by insight calls."""


class PreconditionError(InsightError):
    """The call cannot proceed with the given input or context."""


class AmbiguityError(InsightError):
    """The model reply resolved to more than one element."""


class ModelResponseError(InsightError):
    """The model reported errors and no usable result came with them."""


__all__ = ["InsightError", "PreconditionError", "AmbiguityError", "ModelResponseError"]
