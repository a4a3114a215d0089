"""Transcription and extraction stages: admission, credentials and retries."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from tests.support import TEST_API_KEY, StaticSource, voice_item_json, webm_payload
from voxmemo.pipelines.audio.gate import rate_limit_message
from voxmemo.services.credentials import CredentialResolver
from voxmemo.services.errors import (
    AudioValidationError,
    CredentialInvalidError,
    CredentialMissingError,
    RateLimitError,
    SchemaValidationError,
    TransientAPIError,
)


def test_transcription_posts_multipart_audio(container, provider):
    result = asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert result.text == "Remember to buy milk tomorrow"
    assert result.language == "en"

    (request,) = provider.calls_to("/audio/transcriptions")
    assert request.headers["authorization"] == f"Bearer {TEST_API_KEY}"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'name="model"' in request.content
    assert b"whisper-1" in request.content
    assert b'filename="audio.webm"' in request.content


def test_refusal_happens_before_credentials_or_network(container, provider):
    stage = container.orchestrator.transcription
    source = StaticSource(TEST_API_KEY)
    stage.resolver = CredentialResolver([source])
    stage.limiter.reset(0)

    with pytest.raises(RateLimitError) as excinfo:
        asyncio.run(stage.run(webm_payload()))

    assert excinfo.value.endpoint == "whisper"
    assert excinfo.value.retry_after_ms == 20_000
    assert "Please wait 20 seconds" in excinfo.value.message
    assert source.reads == 0
    assert provider.requests == []


def test_burst_of_five_then_refused(container):
    stage = container.orchestrator.extraction

    for _ in range(5):
        stage.admit()
    with pytest.raises(RateLimitError):
        stage.admit()

    assert container.limiters.transcription.available_tokens() == 5


def test_missing_credential_fails_after_admission(container, provider, settings):
    container.secure_store.delete(settings.storage.credential_key)

    with pytest.raises(CredentialMissingError):
        asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert provider.requests == []
    assert container.limiters.transcription.available_tokens() == 4


def test_transient_failures_are_retried_with_backoff(container, provider, sleep):
    provider.transcriptions = [httpx.Response(503), httpx.Response(502)]

    result = asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert result.text == "Remember to buy milk tomorrow"
    assert len(provider.calls_to("/audio/transcriptions")) == 3
    assert sleep.calls == [1.0, 2.0]
    assert container.limiters.transcription.available_tokens() == 4


def test_network_errors_exhaust_after_three_attempts(container, provider, sleep):
    provider.transcriptions = [httpx.ConnectError("connection refused")] * 3

    with pytest.raises(TransientAPIError) as excinfo:
        asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert excinfo.value.network is True
    assert excinfo.value.attempts == 3
    assert sleep.calls == [1.0, 2.0]


def test_provider_rate_limit_is_not_retried(container, provider, sleep):
    provider.transcriptions = [
        httpx.Response(429, headers={"retry-after": "7"}, json={"error": {"message": "Too many requests"}})
    ]

    with pytest.raises(RateLimitError) as excinfo:
        asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert excinfo.value.retry_after_ms == 7000
    assert excinfo.value.retry_after_seconds == 7
    assert len(provider.requests) == 1
    assert sleep.calls == []


def test_rejected_key_is_not_retried(container, provider, sleep):
    provider.transcriptions = [
        httpx.Response(401, json={"error": {"message": f"Incorrect API key provided: {TEST_API_KEY}"}})
    ]

    with pytest.raises(CredentialInvalidError) as excinfo:
        asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert TEST_API_KEY not in str(excinfo.value)
    assert len(provider.requests) == 1
    assert sleep.calls == []


def test_provider_client_error_on_transcription_is_terminal(container, provider, sleep):
    provider.transcriptions = [httpx.Response(400, json={"error": {"message": "Audio file is too short"}})]

    with pytest.raises(AudioValidationError) as excinfo:
        asyncio.run(container.orchestrator.transcription.run(webm_payload()))

    assert "Audio file is too short" in excinfo.value.message
    assert sleep.calls == []


def test_transcription_without_text_is_a_schema_error(container, provider):
    provider.transcriptions = [httpx.Response(200, json={"language": "en"})]

    with pytest.raises(SchemaValidationError):
        asyncio.run(container.orchestrator.transcription.run(webm_payload()))


def test_extraction_requests_strict_schema_in_transcript_language(container, provider):
    content = asyncio.run(container.orchestrator.extraction.run("Milch kaufen morgen", "de"))

    assert content.intent.value == "TODO"
    (request,) = provider.calls_to("/chat/completions")
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o"
    assert body["response_format"]["type"] == "json_schema"
    assert body["response_format"]["json_schema"]["strict"] is True
    system, user = body["messages"]
    assert "same language as the transcript" in system["content"]
    assert 'Transcript: "Milch kaufen morgen"' in user["content"]
    assert 'Detected Language Code: "de"' in user["content"]


def test_extraction_contract_violation_is_not_retried(container, provider, sleep):
    provider.completion_content = voice_item_json(
        "NOTE", data={"todos": [{"task": "x", "done": False, "due": None}], "researchAnswer": None, "draftContent": None}
    )

    with pytest.raises(SchemaValidationError):
        asyncio.run(container.orchestrator.extraction.run("just a thought"))

    assert len(provider.calls_to("/chat/completions")) == 1
    assert sleep.calls == []


def test_stage_limiters_are_independent(container):
    container.limiters.transcription.reset(0)

    container.orchestrator.extraction.admit()

    with pytest.raises(RateLimitError):
        container.orchestrator.transcription.admit()


def test_rate_limit_message_rounds_up_to_whole_seconds():
    assert rate_limit_message("transcription", 400) == (
        "Rate limit exceeded for transcription. Please wait 1 second and try again."
    )
    assert "wait 3 seconds" in rate_limit_message("content processing", 2001)
