"""
Scoped switch to the alternate vision-language model for a single locate call.

When a search area is requested but no VL mode is configured, and a complete
``VL_OPENAI_*`` credential set exists, the five model-selection keys are overlaid
for the duration of the call. The overlay is bound to the current context, so
concurrent calls never observe each other's settings, and it is removed on every
exit path.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from insight.config import (
    INSIGHT_MODEL_MINI_NAME,
    INSIGHT_MODEL_NAME,
    INSIGHT_USE_QWEN_VL,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    VL_INSIGHT_MODEL_NAME,
    VL_OPENAI_API_KEY,
    VL_OPENAI_BASE_URL,
    get_ai_config,
    override_ai_config,
    vl_locate_mode,
)

logger = logging.getLogger(__name__)

OVERRIDDEN_KEYS = (
    INSIGHT_USE_QWEN_VL,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    INSIGHT_MODEL_NAME,
    INSIGHT_MODEL_MINI_NAME,
)


def alternate_vl_settings() -> Optional[Dict[str, Optional[str]]]:
    """Return the overlay for the alternate VL model, or None if its credentials are incomplete."""
    api_key = get_ai_config(VL_OPENAI_API_KEY)
    base_url = get_ai_config(VL_OPENAI_BASE_URL)
    model_name = get_ai_config(VL_INSIGHT_MODEL_NAME)
    if not (api_key and base_url and model_name):
        return None
    return {
        INSIGHT_USE_QWEN_VL: "1",
        OPENAI_API_KEY: api_key,
        OPENAI_BASE_URL: base_url,
        INSIGHT_MODEL_NAME: model_name,
        INSIGHT_MODEL_MINI_NAME: None,
    }


@contextmanager
def vl_model_scope(search_area_prompt: Optional[str]) -> Iterator[bool]:
    """
    Route model calls in the block to the alternate VL model when narrowing needs it.

    Yields True when the override is active. Settings in effect before the block are
    restored on exit, including keys that were unset.
    """
    settings = alternate_vl_settings() if search_area_prompt and not vl_locate_mode() else None
    if settings is None:
        yield False
        return

    logger.info("locate: switching to alternate VL model %s for search area", settings[INSIGHT_MODEL_NAME])
    with override_ai_config(settings):
        yield True


def narrowing_supported(search_area_prompt: Optional[str]) -> Optional[str]:
    """Return ``search_area_prompt`` if the active model can narrow, else warn and return None."""
    if search_area_prompt and not vl_locate_mode():
        logger.warning(
            "locate: search area narrowing needs a vision-language model; "
            "set INSIGHT_USE_QWEN_VL (or another VL mode) or VL_OPENAI_* credentials"
        )
        return None
    return search_area_prompt


__all__ = ["OVERRIDDEN_KEYS", "alternate_vl_settings", "narrowing_supported", "vl_model_scope"]
