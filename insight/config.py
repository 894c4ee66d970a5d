"""
Central model configuration store.

Values come from the process environment (``.env`` is loaded on import) with an
optional per-context overlay on top. The overlay lives in a ContextVar so a
scoped override only affects the task that installed it.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Iterator, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

OPENAI_API_KEY = "OPENAI_API_KEY"
OPENAI_BASE_URL = "OPENAI_BASE_URL"
INSIGHT_MODEL_NAME = "INSIGHT_MODEL_NAME"
INSIGHT_MODEL_MINI_NAME = "INSIGHT_MODEL_MINI_NAME"
INSIGHT_USE_QWEN_VL = "INSIGHT_USE_QWEN_VL"
INSIGHT_USE_DOUBAO_VISION = "INSIGHT_USE_DOUBAO_VISION"
INSIGHT_USE_GEMINI = "INSIGHT_USE_GEMINI"
INSIGHT_USE_VLM_UI_TARS = "INSIGHT_USE_VLM_UI_TARS"
INSIGHT_FORCE_DEEP_THINK = "INSIGHT_FORCE_DEEP_THINK"
INSIGHT_MODEL_TIMEOUT = "INSIGHT_MODEL_TIMEOUT"
INSIGHT_OPENAI_HTTP_PROXY = "INSIGHT_OPENAI_HTTP_PROXY"

VL_OPENAI_API_KEY = "VL_OPENAI_API_KEY"
VL_OPENAI_BASE_URL = "VL_OPENAI_BASE_URL"
VL_INSIGHT_MODEL_NAME = "VL_INSIGHT_MODEL_NAME"

DEFAULT_MODEL_NAME = "gpt-4o"
DEFAULT_TIMEOUT = 60.0
MAX_TIMEOUT = 180.0

# Checked in order; the first enabled flag wins.
VL_MODE_FLAGS = (
    (INSIGHT_USE_QWEN_VL, "qwen-vl"),
    (INSIGHT_USE_DOUBAO_VISION, "doubao-vision"),
    (INSIGHT_USE_GEMINI, "gemini"),
    (INSIGHT_USE_VLM_UI_TARS, "vlm-ui-tars"),
)

_FALSY = {"", "0", "false", "off", "no", "none"}

VlMode = Union[str, bool]

# Overlay values of None mean "unset", hiding whatever the environment holds.
_OVERRIDES: ContextVar[Optional[Mapping[str, Optional[str]]]] = ContextVar("INSIGHT_CONFIG_OVERRIDES", default=None)
_DERIVED: ContextVar[Optional["ModelConfig"]] = ContextVar("INSIGHT_DERIVED_CONFIG", default=None)


class ModelConfig(BaseModel):
    """Resolved settings used by the model transport."""

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: str = DEFAULT_MODEL_NAME
    mini_model_name: Optional[str] = None
    vl_mode: VlMode = False
    timeout: float = DEFAULT_TIMEOUT
    http_proxy: Optional[str] = None


def _flag(value: Optional[str]) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() not in _FALSY


def get_ai_config(key: str) -> Optional[str]:
    """Return the effective value for ``key``: overlay first, then the environment."""
    overrides = _OVERRIDES.get()
    if overrides is not None and key in overrides:
        return overrides[key]
    return os.getenv(key)


def get_ai_config_in_boolean(key: str) -> bool:
    return _flag(get_ai_config(key))


def vl_locate_mode() -> VlMode:
    """Return the enabled vision-language mode name, or False for text-only models."""
    for key, mode in VL_MODE_FLAGS:
        if get_ai_config_in_boolean(key):
            return mode
    return False


def _timeout_from_config() -> float:
    raw = get_ai_config(INSIGHT_MODEL_TIMEOUT)
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        return min(float(raw), MAX_TIMEOUT)
    except ValueError:
        return DEFAULT_TIMEOUT


def _build_model_config() -> ModelConfig:
    return ModelConfig(
        api_key=(get_ai_config(OPENAI_API_KEY) or "").strip() or None,
        base_url=(get_ai_config(OPENAI_BASE_URL) or "").strip() or None,
        model_name=(get_ai_config(INSIGHT_MODEL_NAME) or "").strip() or DEFAULT_MODEL_NAME,
        mini_model_name=(get_ai_config(INSIGHT_MODEL_MINI_NAME) or "").strip() or None,
        vl_mode=vl_locate_mode(),
        timeout=_timeout_from_config(),
        http_proxy=(get_ai_config(INSIGHT_OPENAI_HTTP_PROXY) or "").strip() or None,
    )


def get_model_config() -> ModelConfig:
    """Return the derived model configuration, computing it on first use in this context."""
    cached = _DERIVED.get()
    if cached is None:
        cached = _build_model_config()
        _DERIVED.set(cached)
    return cached


def reset_global_config() -> None:
    """Drop the cached derived configuration so the next read recomputes it."""
    _DERIVED.set(None)


@contextmanager
def override_ai_config(values: Mapping[str, Optional[str]]) -> Iterator[None]:
    """
    Layer ``values`` over the current configuration for the enclosed block.

    A value of None makes the key read as unset. On exit the previous overlay is
    restored exactly and derived configuration is recomputed.
    """
    current = _OVERRIDES.get() or {}
    merged = dict(current)
    merged.update(values)
    overrides_token = _OVERRIDES.set(MappingProxyType(merged))
    derived_token = _DERIVED.set(None)
    try:
        yield
    finally:
        _OVERRIDES.reset(overrides_token)
        _DERIVED.reset(derived_token)
        reset_global_config()


__all__ = [
    "ModelConfig",
    "get_ai_config",
    "get_ai_config_in_boolean",
    "get_model_config",
    "override_ai_config",
    "reset_global_config",
    "vl_locate_mode",
]
