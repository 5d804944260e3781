"""LLM transport and the rate-limited AI client used by the pipeline."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType
from typing import Any

import httpx

from mailflow.core.config import AiSettings
from mailflow.core.interfaces import GenerationConfig, GenerationTransport
from mailflow.core.rate_limiter import RateLimiter
from mailflow.core.results import (
    ErrorType,
    ProcessingResult,
    Success,
    error,
)

from .prompts import build_context_prompt, build_email_analysis_prompt

LOGGER = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


class GeminiTransport(GenerationTransport):
    """Async client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        settings: AiSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Bind settings; an ``httpx.AsyncClient`` may be supplied for reuse."""
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)
        self._owns_client = client is None

    async def __aenter__(self) -> GeminiTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"gemini:{self._settings.model}"

    async def generate(self, prompt: str, config: GenerationConfig) -> str:
        """Send a single-turn completion request and return the text."""
        if not self._settings.api_key:
            raise LLMError("Gemini API key is not configured")
        endpoint = _resolve_endpoint(self._settings.base_url, self._settings.model)
        payload: dict[str, object] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": config.temperature,
                "topK": config.top_k,
                "topP": config.top_p,
                "maxOutputTokens": config.max_output_tokens,
            },
        }
        response = await self._client.post(
            endpoint,
            json=payload,
            headers={"x-goog-api-key": self._settings.api_key},
        )
        if response.is_error:
            raise LLMError(
                f"Gemini request failed with HTTP {response.status_code}: "
                f"{_error_detail(response)}"
            )
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise LLMError("LLM returned invalid JSON") from exc
        return _extract_text(data)

    async def aclose(self) -> None:
        """Release the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()


class AIClient:
    """Rate-limited, throttled wrapper around a generation transport.

    Every call takes one slot from the shared :class:`RateLimiter` and, after a
    successful response, sleeps for a random jitter so follow-up calls are not
    bursty. Failures come back as :class:`~mailflow.core.results.Error`
    values; nothing is raised to the caller.
    """

    def __init__(
        self,
        transport: GenerationTransport,
        rate_limiter: RateLimiter,
        *,
        config: GenerationConfig | None = None,
        jitter_ms: tuple[int, int] = (2000, 3000),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        low, high = jitter_ms
        if low < 0 or high < low:
            raise ValueError("jitter_ms must be a non-negative (low, high) band")
        self._transport = transport
        self._rate_limiter = rate_limiter
        self._config = config or GenerationConfig()
        self._jitter_ms = jitter_ms
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls, settings: AiSettings, transport: GenerationTransport
    ) -> AIClient:
        """Build a client with a per-minute limiter and configured sampling."""
        config = GenerationConfig(
            temperature=settings.temperature,
            top_k=settings.top_k,
            top_p=settings.top_p,
            max_output_tokens=settings.max_output_tokens,
        )
        return cls(
            transport,
            RateLimiter.per_minute(settings.requests_per_minute),
            config=config,
            jitter_ms=(settings.jitter_min_ms, settings.jitter_max_ms),
        )

    @property
    def provider_id(self) -> str:
        return self._transport.provider_id

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    async def generate_content(self, prompt: str) -> ProcessingResult[str]:
        """Generate text for ``prompt``."""
        return await self._call(prompt, purpose="generation")

    async def analyze_email(
        self,
        subject: str,
        body: str,
        agent_prompt: str,
        context_schema: Mapping[str, str],
    ) -> ProcessingResult[str]:
        """Run structured extraction for an email against an agent schema."""
        prompt = build_email_analysis_prompt(
            subject=subject,
            body=body,
            agent_prompt=agent_prompt,
            context_schema=context_schema,
        )
        LOGGER.debug("Analysing email %r", subject)
        return await self._call(prompt, purpose="email analysis")

    async def generate_with_context(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Mapping[str, Any] | None = None,
    ) -> ProcessingResult[str]:
        """Generate text for a user request framed by system instructions."""
        prompt = build_context_prompt(system_prompt, user_prompt, context or {})
        return await self._call(prompt, purpose="context generation")

    async def _call(self, prompt: str, *, purpose: str) -> ProcessingResult[str]:
        try:
            await self._rate_limiter.acquire()
            LOGGER.debug(
                "Acquired rate limit slot for %s. Remaining: %s",
                purpose,
                await self._rate_limiter.remaining_requests(),
            )
            text = await self._transport.generate(prompt, self._config)
        except httpx.TransportError as exc:
            LOGGER.warning("AI provider unreachable during %s: %s", purpose, exc)
            return error(ErrorType.NETWORK_ERROR, f"AI provider unreachable: {exc}", exc)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Error during %s: %s", purpose, exc, exc_info=True)
            return error(ErrorType.API_ERROR, str(exc) or type(exc).__name__, exc)

        delay_ms = self._rng.uniform(*self._jitter_ms)
        LOGGER.debug("%s completed. Delaying for %.0fms", purpose.capitalize(), delay_ms)
        await self._sleep(delay_ms / 1000)
        return Success(text)


def _resolve_endpoint(base_url: str, model: str) -> str:
    trimmed = base_url.rstrip("/")
    return f"{trimmed}/v1beta/models/{model}:generateContent"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except json.JSONDecodeError:
        return response.text[:200]
    if isinstance(payload, dict):
        detail = payload.get("error")
        if isinstance(detail, dict) and isinstance(detail.get("message"), str):
            return detail["message"]
    return response.text[:200]


def _extract_text(data: object) -> str:
    if not isinstance(data, dict):
        raise LLMError("LLM response was not a JSON object")
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise LLMError("LLM response missing 'candidates'")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        return ""
    parts = content.get("parts") or []
    texts = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    return "".join(texts)


__all__ = ["AIClient", "GeminiTransport", "LLMError"]
