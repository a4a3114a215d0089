"""Thin httpx wrapper for the two OpenAI endpoints the pipeline calls."""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping

import httpx

from voxmemo.config.settings import OpenAIConfig
from voxmemo.services.errors import (
    AudioValidationError,
    CredentialInvalidError,
    PipelineError,
    RateLimitError,
    SchemaValidationError,
    TransientAPIError,
)
from voxmemo.services.rate_limiter import EXTRACTION_ENDPOINT, TRANSCRIPTION_ENDPOINT

logger = logging.getLogger(__name__)

_EXTENSIONS: dict[str, str] = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mp4": "mp4",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
}


def filename_for(mime_type: str) -> str:
    base_type = mime_type.split(";", 1)[0].strip().lower()
    return f"audio.{_EXTENSIONS.get(base_type, 'webm')}"


def create_http_client(config: OpenAIConfig, **kwargs: Any) -> httpx.AsyncClient:
    """Build the shared AsyncClient pointed at the configured base URL."""

    return httpx.AsyncClient(
        base_url=config.base_url.rstrip("/"),
        timeout=config.request_timeout,
        **kwargs,
    )


class OpenAIClient:
    """Speech-to-text and structured-generation calls with error classification."""

    def __init__(self, http_client: httpx.AsyncClient, config: OpenAIConfig) -> None:
        self._http = http_client
        self._config = config

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http

    async def transcribe(
        self,
        credential: str,
        audio: bytes,
        mime_type: str,
    ) -> Mapping[str, Any]:
        """Submit audio as multipart form data and return the verbose JSON body."""

        files = {"file": (filename_for(mime_type), audio, mime_type)}
        data = {
            "model": self._config.transcription_model,
            "response_format": "verbose_json",
        }
        response = await self._send(
            "POST",
            "/audio/transcriptions",
            credential,
            endpoint=TRANSCRIPTION_ENDPOINT,
            files=files,
            data=data,
        )
        return _json_body(response, TRANSCRIPTION_ENDPOINT)

    async def generate_structured(
        self,
        credential: str,
        *,
        system_prompt: str,
        user_prompt: str,
        schema: Mapping[str, Any],
        schema_name: str = "voice_item",
    ) -> str:
        """Run a chat completion constrained to ``schema`` and return the raw message content."""

        body = {
            "model": self._config.extraction_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "strict": True, "schema": dict(schema)},
            },
        }
        response = await self._send(
            "POST",
            "/chat/completions",
            credential,
            endpoint=EXTRACTION_ENDPOINT,
            json=body,
        )
        payload = _json_body(response, EXTRACTION_ENDPOINT)
        try:
            message = payload["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise SchemaValidationError("Structured generation returned no choices.") from exc

        if message.get("refusal"):
            raise SchemaValidationError(f"Model refused the request: {message['refusal']}")
        content = message.get("content")
        if not content:
            raise SchemaValidationError("Structured generation returned an empty response.")
        return content

    async def _send(
        self,
        method: str,
        url: str,
        credential: str,
        *,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {credential}"}
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientAPIError(f"Request to {endpoint} timed out", network=True) from exc
        except httpx.TransportError as exc:
            raise TransientAPIError(
                f"Network error contacting {endpoint}: {exc}", network=True
            ) from exc

        if response.is_success:
            return response
        raise _classify_status(response, endpoint)


def _json_body(response: httpx.Response, endpoint: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise SchemaValidationError(f"{endpoint} returned a non-JSON response") from exc


def _provider_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return response.reason_phrase


def _retry_after_ms(response: httpx.Response) -> int:
    header = response.headers.get("retry-after-ms") or response.headers.get("retry-after")
    if not header:
        return 0
    try:
        value = float(header)
    except ValueError:
        return 0
    if "retry-after-ms" in response.headers:
        return math.ceil(value)
    return math.ceil(value * 1000)


def _classify_status(response: httpx.Response, endpoint: str) -> PipelineError:
    status = response.status_code
    message = _provider_message(response)
    details = {"status_code": status, "endpoint": endpoint}

    if status in (401, 403):
        return CredentialInvalidError(details=details)
    if status == 429:
        return RateLimitError(
            f"Provider rate limit reached for {endpoint}: {message}",
            retry_after_ms=_retry_after_ms(response),
            endpoint=endpoint,
            details={"status_code": status},
        )
    if status >= 500 or status == 408:
        return TransientAPIError(
            f"{endpoint} request failed ({status}): {message}",
            status_code=status,
            details=details,
        )
    if endpoint == TRANSCRIPTION_ENDPOINT:
        return AudioValidationError(f"Transcription failed: {message}", details=details)
    return SchemaValidationError(f"Content processing failed: {message}", details=details)


__all__ = ["OpenAIClient", "create_http_client", "filename_for"]
