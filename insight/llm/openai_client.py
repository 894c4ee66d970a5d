import time
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx
from openai import APIError, AsyncOpenAI

from insight.config import ModelConfig, get_model_config
from insight.contracts.types import AIUsageInfo

CallAI = Callable[..., Awaitable[Tuple[str, AIUsageInfo]]]


def _require_api_key(config: ModelConfig) -> str:
    if not config.api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is not set")
    return config.api_key


def _build_client(config: ModelConfig) -> AsyncOpenAI:
    api_key = _require_api_key(config)
    http_client = httpx.AsyncClient(timeout=config.timeout, proxy=config.http_proxy)
    return AsyncOpenAI(
        api_key=api_key,
        base_url=config.base_url,
        http_client=http_client,
        max_retries=0,
    )


def _usage_from_response(response, time_cost_ms: int) -> AIUsageInfo:
    usage = getattr(response, "usage", None)
    return AIUsageInfo(
        prompt_tokens=getattr(usage, "prompt_tokens", None),
        completion_tokens=getattr(usage, "completion_tokens", None),
        total_tokens=getattr(usage, "total_tokens", None),
        time_cost_ms=time_cost_ms,
    )


async def call_ai(
    messages: List[dict],
    *,
    config: Optional[ModelConfig] = None,
    use_mini: bool = False,
) -> Tuple[str, AIUsageInfo]:
    """
    Send chat messages to an OpenAI-compatible endpoint and return (content, usage).

    Configuration is read when the call is made, so an active override scope applies.
    """
    cfg = config or get_model_config()
    model_name = cfg.mini_model_name if use_mini and cfg.mini_model_name else cfg.model_name
    started = time.monotonic()
    try:
        async with _build_client(cfg) as client:
            response = await client.chat.completions.create(
                model=model_name,
                messages=messages,
                temperature=0.1 if cfg.vl_mode else 0.0,
            )
    except APIError as exc:
        raise RuntimeError(f"AI model call to {model_name} failed: {exc}") from exc

    try:
        content = response.choices[0].message.content or ""
    except (AttributeError, IndexError, TypeError) as exc:
        raise RuntimeError("AI model response is missing expected content") from exc
    return content, _usage_from_response(response, int((time.monotonic() - started) * 1000))


__all__ = ["CallAI", "call_ai"]
