"""
Provider Adapters - Shared types, errors and retry/poll primitives
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional
from pydantic import BaseModel, Field
import httpx

from shortsfusion.config.constants import (
    PROVIDER_MAX_ATTEMPTS,
    RETRY_INITIAL_DELAY_S,
    RETRY_MAX_DELAY_S,
)
from shortsfusion.services.observability import logger


Sleep = Callable[[float], Awaitable[Any]]


class ProviderError(Exception):
    """Normalized failure from an external generation or render provider"""

    def __init__(
        self,
        provider: str,
        message: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.message = message
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class RenderTimeout(ProviderError):
    """Render did not reach a terminal status within the polling ceiling"""

    def __init__(self, render_id: str, attempts: int):
        self.render_id = render_id
        self.attempts = attempts
        super().__init__(
            "render",
            f"Render {render_id} not finished after {attempts} polling attempts",
            retryable=False,
        )


# Pydantic models shared by the adapters


class SceneDraft(BaseModel):
    """One scene as written by the script provider"""

    text: str = Field(description="Short on-screen caption for the scene")
    image_prompt: str = Field(description="Detailed prompt for AI image generation")


class ScriptResult(BaseModel):
    """Script provider output"""

    narration_text: str = Field(description="Full narration text for the voiceover")
    scenes: List[SceneDraft] = Field(description="Ordered scenes")


class TimelineScene(BaseModel):
    text: str
    image_url: str
    start_s: float
    duration_s: float
    is_animated: bool = False


class Timeline(BaseModel):
    """Render input assembled from persisted stage outputs"""

    width: int
    height: int
    frame_rate: int
    duration_s: float
    voiceover_url: str
    scenes: List[TimelineScene]


class RenderStatus(BaseModel):
    """Normalized render status"""

    render_id: str
    status: str  # "pending", "succeeded" or "failed"
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error: Optional[str] = None


# Adapter interfaces


class ScriptProvider:
    async def generate(self, topic: str, duration_s: int, scene_count: int) -> ScriptResult:
        raise NotImplementedError


class ImageProvider:
    async def generate(self, prompt: str, style: str) -> str:
        raise NotImplementedError


class VoiceProvider:
    async def synthesize(self, text: str, voice: str) -> str:
        raise NotImplementedError


class RenderProvider:
    async def submit(self, timeline: Timeline) -> str:
        raise NotImplementedError

    async def poll_status(self, render_id: str) -> RenderStatus:
        raise NotImplementedError


class ProviderSet(BaseModel):
    """Adapters injected into the pipeline for one job"""

    model_config = {"arbitrary_types_allowed": True}

    script: Any
    image: Any
    voice: Any
    render: Any


def normalize_http_error(provider: str, error: Exception) -> ProviderError:
    """
    Map an httpx exception into a ProviderError

    Timeouts, network errors, 429 and 5xx responses are retryable.
    """
    if isinstance(error, ProviderError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return ProviderError(provider, f"Timeout: {error}", retryable=True)

    if isinstance(error, httpx.NetworkError):
        return ProviderError(provider, f"Network error: {error}", retryable=True)

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        retryable = status == 429 or status >= 500
        return ProviderError(
            provider,
            f"HTTP {status}: {error.response.text[:500]}",
            retryable=retryable,
            status_code=status,
        )

    # SDK clients (e.g. openai) wrap transport failures in their own types
    error_name = type(error).__name__
    retryable_markers = ("Timeout", "Connection", "RateLimit", "InternalServer")
    retryable = any(marker in error_name for marker in retryable_markers)
    return ProviderError(provider, str(error), retryable=retryable)


async def call_with_retry(
    provider: str,
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    max_attempts: int = PROVIDER_MAX_ATTEMPTS,
    sleep: Sleep = asyncio.sleep,
    **kwargs: Any,
) -> Any:
    """
    Call a provider coroutine with exponential backoff on retryable errors

    Args:
        provider: Provider name for error normalization and logs
        func: Coroutine function to call
        max_attempts: Total attempts including the first
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Result of func

    Raises:
        ProviderError: Non-retryable failure or retries exhausted
    """
    last_error: Optional[ProviderError] = None

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            error = normalize_http_error(provider, e)
            last_error = error

            logger.warning(
                "provider_call_retry",
                provider=provider,
                attempt=attempt + 1,
                max_attempts=max_attempts,
                error_type=type(e).__name__,
                error=str(e),
                retryable=error.retryable,
            )

            if not error.retryable:
                if error is e:
                    raise
                raise error from e

            if attempt + 1 < max_attempts:
                delay = min(
                    RETRY_INITIAL_DELAY_S * (2 ** attempt),
                    RETRY_MAX_DELAY_S,
                )
                await sleep(delay)

    logger.error(
        "provider_call_exhausted",
        provider=provider,
        max_attempts=max_attempts,
        last_error=str(last_error),
    )
    raise last_error


async def poll_render(
    render_provider: RenderProvider,
    render_id: str,
    interval_s: float,
    max_attempts: int,
    sleep: Sleep = asyncio.sleep,
) -> RenderStatus:
    """
    Poll a render until it succeeds or fails

    Returns:
        Terminal RenderStatus ("succeeded" or "failed")

    Raises:
        RenderTimeout: If still pending after max_attempts polls
    """
    for attempt in range(max_attempts):
        status = await render_provider.poll_status(render_id)

        if status.status in ("succeeded", "failed"):
            logger.info(
                "render_poll_finished",
                render_id=render_id,
                status=status.status,
                attempts=attempt + 1,
            )
            return status

        if attempt + 1 < max_attempts:
            await sleep(interval_s)

    logger.error(
        "render_poll_timeout",
        render_id=render_id,
        max_attempts=max_attempts,
    )
    raise RenderTimeout(render_id, max_attempts)
