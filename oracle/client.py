from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Protocol, Sequence

import httpx

from common.config import OracleSettings
from common.schemas import CorrectionResult
from oracle.prompts import SYSTEM_PROMPT, build_correction_prompt
from oracle.scoring import calculate_confidence, detect_changes

logger = logging.getLogger(__name__)


class OracleError(RuntimeError):
    """The chat-completion endpoint could not produce an answer."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Corrector(Protocol):
    async def correct(self, text: str, context: Sequence[str] = ()) -> CorrectionResult: ...

    async def is_available(self) -> bool: ...


def fallback_result(text: str) -> CorrectionResult:
    return CorrectionResult(corrected_text=text, confidence=0.0, changes=[])


def base_url(settings: OracleSettings) -> str:
    url = settings.gateway_url if settings.provider == "gateway" else settings.direct_url
    return url.rstrip("/")


def model_name(settings: OracleSettings) -> str:
    return settings.gateway_model if settings.provider == "gateway" else settings.direct_model


def build_headers(settings: OracleSettings) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {settings.api_key}",
        "Content-Type": "application/json",
    }
    # Gateway providers attribute traffic to the calling app
    if settings.provider == "gateway":
        headers["HTTP-Referer"] = settings.app_url
        headers["X-Title"] = settings.app_title
    return headers


def error_detail(resp: httpx.Response) -> str:
    """Pull a human-readable message out of an error response."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("detail"):
            return str(data["detail"])
    return resp.text


def _payload(
    messages: list[dict[str, str]],
    settings: OracleSettings,
    temperature: float,
    max_tokens: int,
    stream: bool,
) -> dict:
    return {
        "model": model_name(settings),
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": stream,
    }


async def chat_completion(
    messages: list[dict[str, str]],
    settings: OracleSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Call {base}/chat/completions and return the assistant message content."""
    settings = settings or OracleSettings()
    url = f"{base_url(settings)}/chat/completions"
    payload = _payload(messages, settings, settings.temperature, settings.max_tokens, stream=False)

    async with httpx.AsyncClient(timeout=settings.timeout_s, transport=transport) as client:
        resp = await client.post(url, json=payload, headers=build_headers(settings))
        if resp.is_error:
            raise OracleError(
                f"{settings.provider} API error: {resp.status_code} - {error_detail(resp)}",
                status_code=resp.status_code,
            )
        data = resp.json()
        return data["choices"][0]["message"]["content"]


async def stream_chat_completion(
    messages: list[dict[str, str]],
    settings: OracleSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[str]:
    """Yield content deltas from a server-sent-events chat completion.

    Lines that are not ``data:`` frames or that fail to decode are skipped.
    Any transport failure or non-2xx status raises :class:`OracleError`.
    """
    settings = settings or OracleSettings()
    url = f"{base_url(settings)}/chat/completions"
    payload = _payload(
        messages, settings, settings.stream_temperature, settings.stream_max_tokens, stream=True
    )
    payload["top_p"] = 0.1

    async with httpx.AsyncClient(timeout=settings.timeout_s, transport=transport) as client:
        try:
            async with client.stream("POST", url, json=payload, headers=build_headers(settings)) as resp:
                if resp.is_error:
                    await resp.aread()
                    raise OracleError(
                        f"{settings.provider} API error: {resp.status_code} - {error_detail(resp)}",
                        status_code=resp.status_code,
                    )
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:].strip()
                    if data == "[DONE]":
                        continue
                    try:
                        parsed = json.loads(data)
                        content = parsed["choices"][0]["delta"].get("content")
                    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
                        continue
                    if content:
                        yield content
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
            raise OracleError(f"Streaming request failed: {exc}") from exc


class CorrectionClient:
    """Stateless wrapper around the hosted chat-completion endpoint.

    One instance is shared by reference between pipelines. Without an API key
    every call short-circuits to the degraded result and no request is made.
    """

    def __init__(
        self,
        settings: OracleSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or OracleSettings()
        self._transport = transport
        if self.configured:
            logger.info("Correction client initialized (%s provider, %s)", self.settings.provider, self.base_url)
        else:
            logger.warning("Correction API key not set (CORRECTION_API_KEY); returning raw text")

    @property
    def configured(self) -> bool:
        return bool(self.settings.api_key)

    @property
    def base_url(self) -> str:
        return base_url(self.settings)

    @property
    def model(self) -> str:
        return model_name(self.settings)

    async def correct(self, text: str, context: Sequence[str] = ()) -> CorrectionResult:
        if not self.configured:
            return fallback_result(text)

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_correction_prompt(text, context)},
        ]
        try:
            content = await chat_completion(messages, self.settings, transport=self._transport)
        except OracleError as exc:
            logger.error("Correction request rejected: %s", exc)
            return fallback_result(text)
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, ValueError, KeyError, IndexError, TypeError):
            logger.exception("Correction request failed")
            return fallback_result(text)

        corrected = (content or "").strip() or text
        return CorrectionResult(
            corrected_text=corrected,
            confidence=calculate_confidence(text, corrected),
            changes=detect_changes(text, corrected),
        )

    async def process_with_prompt(self, text: str, context: Sequence[str] = ()) -> str:
        result = await self.correct(text, context)
        return result.corrected_text

    async def is_available(self) -> bool:
        if not self.configured:
            return False
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout_s, transport=self._transport) as client:
                resp = await client.get(
                    f"{self.base_url}/models",
                    headers={"Authorization": f"Bearer {self.settings.api_key}"},
                )
            return resp.is_success
        except (httpx.HTTPError, httpx.InvalidURL):
            logger.warning("Correction availability probe failed", exc_info=True)
            return False

    async def stream_completion(self, messages: list[dict[str, str]]) -> AsyncIterator[str]:
        if not self.configured:
            raise OracleError("Correction API key not configured")
        async for delta in stream_chat_completion(messages, self.settings, transport=self._transport):
            yield delta
