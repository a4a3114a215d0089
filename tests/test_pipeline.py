"""End-to-end pipeline runs, failure capture and replay of stored recordings."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from tests.support import TEST_API_KEY, make_settings, webm_payload
from voxmemo.config.dependencies import build_container
from voxmemo.domain.models import FailedRecording, FailedRecordingErrorType
from voxmemo.pipelines.audio import (
    AudioPayload,
    PipelineRun,
    PipelineState,
    allowed_transitions,
    classify_failure,
    encode_audio_data,
)
from voxmemo.services.errors import (
    AudioValidationError,
    RateLimitError,
    SchemaValidationError,
    TransientAPIError,
)
from voxmemo.services.failed_recordings import FailedRecordingStoreError
from voxmemo.telemetry.metrics import FAILED_RECORDINGS_PERSISTED

S = PipelineState


def _process(container, payload=None, **kwargs):
    return asyncio.run(container.orchestrator.process(payload or webm_payload(), **kwargs))


def _stored(container) -> list[FailedRecording]:
    return asyncio.run(container.store.list())


def test_happy_path_walks_every_state(container, provider):
    outcome = _process(container)

    assert outcome.succeeded
    assert outcome.history == (
        S.IDLE,
        S.VALIDATING,
        S.RATE_GATE_TRANSCRIPTION,
        S.TRANSCRIBING,
        S.RATE_GATE_EXTRACTION,
        S.EXTRACTING,
        S.SUCCEEDED,
    )
    item = outcome.item
    assert item.original_transcript == "Remember to buy milk tomorrow"
    assert item.language == "en"
    assert item.audio_data.startswith("data:audio/webm;codecs=opus;base64,")
    assert item.data.todos[0].task == "Buy milk"
    assert _stored(container) == []


def test_language_from_transcription_reaches_the_prompt(container, provider):
    provider.language = "fr"
    provider.transcript_text = "Acheter du lait demain"

    outcome = _process(container)

    assert outcome.item.language == "fr"
    (request,) = provider.calls_to("/chat/completions")
    assert b'Detected Language Code: \\"fr\\"' in request.content


def test_validation_failures_are_not_persisted(container, provider):
    outcome = _process(container, AudioPayload(data=b"", mime_type="audio/webm"))

    assert outcome.state is S.FAILED
    assert outcome.failed_in is S.VALIDATING
    assert isinstance(outcome.error, AudioValidationError)
    assert outcome.persisted is False
    assert provider.requests == []
    assert _stored(container) == []


def test_exhausted_extraction_is_persisted_with_transcript(container, provider, sleep):
    provider.completions = [httpx.Response(500)] * 3

    outcome = _process(container)

    assert outcome.failed_in is S.EXTRACTING
    assert isinstance(outcome.error, TransientAPIError)
    (stored,) = _stored(container)
    assert stored.id == outcome.failed_recording.id
    assert stored.error_type is FailedRecordingErrorType.PROCESSING
    assert stored.retry_count == 3
    assert stored.transcript == "Remember to buy milk tomorrow"
    assert stored.language == "en"
    assert stored.audio_data == encode_audio_data(webm_payload())
    assert sleep.calls == [1.0, 2.0]


def test_network_failures_are_typed_as_network(container, provider):
    provider.transcriptions = [httpx.ConnectTimeout("timed out")] * 3

    outcome = _process(container)

    assert outcome.failed_in is S.TRANSCRIBING
    assert outcome.failed_recording.error_type is FailedRecordingErrorType.NETWORK
    assert outcome.failed_recording.transcript is None


def test_schema_failure_is_typed_as_processing(container, provider):
    provider.completion_content = "definitely not json"

    outcome = _process(container)

    assert isinstance(outcome.error, SchemaValidationError)
    assert outcome.failed_recording.error_type is FailedRecordingErrorType.PROCESSING
    assert outcome.failed_recording.retry_count == 1


def test_error_messages_are_sanitized_before_storage(container, provider):
    provider.transcriptions = [
        httpx.Response(503, json={"error": {"message": f"upstream saw {TEST_API_KEY}"}})
    ] * 3

    outcome = _process(container)

    assert TEST_API_KEY not in outcome.failed_recording.error_message
    assert TEST_API_KEY not in container.store.path.read_text(encoding="utf-8")


def test_rate_limited_runs_are_not_persisted_by_default(container, provider):
    container.limiters.extraction.reset(0)

    outcome = _process(container)

    assert outcome.failed_in is S.RATE_GATE_EXTRACTION
    assert isinstance(outcome.error, RateLimitError)
    assert outcome.persisted is False
    assert provider.calls_to("/chat/completions") == []
    assert _stored(container) == []


def test_rate_limited_runs_can_be_queued(tmp_path, http_client, sleep, clock):
    settings = make_settings(tmp_path, persist_rate_limited=True)
    services = build_container(settings, http_client=http_client, sleep=sleep, clock=clock)
    services.secure_store.set(settings.storage.credential_key, TEST_API_KEY)
    services.limiters.transcription.reset(0)

    outcome = asyncio.run(services.orchestrator.process(webm_payload()))

    assert outcome.failed_in is S.RATE_GATE_TRANSCRIPTION
    assert outcome.failed_recording.error_type is FailedRecordingErrorType.TRANSCRIPTION
    assert outcome.failed_recording.retry_count == 0


def test_known_transcript_skips_transcription(container, provider):
    outcome = _process(container, transcript="  Draft an email to Sam  ", language="en")

    assert outcome.history == (
        S.IDLE,
        S.VALIDATING,
        S.RATE_GATE_EXTRACTION,
        S.EXTRACTING,
        S.SUCCEEDED,
    )
    assert provider.calls_to("/audio/transcriptions") == []
    assert outcome.item.original_transcript == "Draft an email to Sam"


def test_failed_recording_metric_is_counted(container, provider):
    provider.completions = [httpx.Response(500)] * 3
    before = FAILED_RECORDINGS_PERSISTED.labels(error_type="processing")._value.get()

    _process(container)

    assert FAILED_RECORDINGS_PERSISTED.labels(error_type="processing")._value.get() == before + 1


def test_store_write_failure_still_returns_the_pipeline_error(container, provider, monkeypatch, caplog):
    provider.completions = [httpx.Response(500)] * 3

    async def broken_save(recording):
        raise FailedRecordingStoreError("disk full")

    monkeypatch.setattr(container.store, "save", broken_save)

    with caplog.at_level("ERROR", logger="voxmemo.pipeline"):
        outcome = _process(container)

    assert outcome.state is S.FAILED
    assert outcome.failed_in is S.EXTRACTING
    assert isinstance(outcome.error, TransientAPIError)
    assert outcome.persisted is False
    assert outcome.transcript == "Remember to buy milk tomorrow"
    assert "Could not save failed recording" in caplog.text


def test_unclassified_failure_records_its_own_attempts(container, provider):
    provider.completions = [RuntimeError("decoder crashed")] * 3

    outcome = _process(container)

    assert isinstance(outcome.error, RuntimeError)
    assert outcome.failed_recording.retry_count == 3
    assert outcome.failed_recording.error_type is FailedRecordingErrorType.PROCESSING


def _seed_failure(container, provider) -> FailedRecording:
    provider.completions = [httpx.Response(500)] * 3
    outcome = _process(container)
    provider.completions = []
    return outcome.failed_recording


def test_replay_success_deletes_the_entry(container, provider):
    stored = _seed_failure(container, provider)
    transcriptions_before = len(provider.calls_to("/audio/transcriptions"))

    outcome = asyncio.run(container.orchestrator.replay(stored.id))

    assert outcome.succeeded
    assert outcome.replayed_id == stored.id
    assert outcome.item.original_transcript == stored.transcript
    assert len(provider.calls_to("/audio/transcriptions")) == transcriptions_before
    assert _stored(container) == []


def test_replay_failure_updates_the_entry_in_place(container, provider, clock):
    stored = _seed_failure(container, provider)
    provider.completions = [httpx.Response(503)] * 3

    outcome = asyncio.run(container.orchestrator.replay(stored.id))

    assert outcome.state is S.FAILED
    (updated,) = _stored(container)
    assert updated.id == stored.id
    assert updated.created_at == stored.created_at
    assert updated.retry_count == stored.retry_count + 3
    assert updated.last_retry_at is not None


def test_replay_refused_by_rate_limiter_leaves_entry_untouched(container, provider):
    stored = _seed_failure(container, provider)
    container.limiters.extraction.reset(0)

    outcome = asyncio.run(container.orchestrator.replay(stored.id))

    assert isinstance(outcome.error, RateLimitError)
    assert _stored(container) == [stored]


def test_replay_of_unknown_id_returns_none(container):
    assert asyncio.run(container.orchestrator.replay("does-not-exist")) is None


def test_replay_with_corrupt_audio_is_recorded(container):
    broken = FailedRecording(audio_data="data:audio/webm;base64,###", error_message="boom")
    asyncio.run(container.store.save(broken))

    outcome = asyncio.run(container.orchestrator.replay(broken.id))

    assert outcome.failed_in is S.IDLE
    assert isinstance(outcome.error, AudioValidationError)
    (updated,) = _stored(container)
    assert updated.retry_count == 1
    assert updated.error_type is FailedRecordingErrorType.UNKNOWN


def test_replay_all_processes_every_entry(container, provider):
    first = _seed_failure(container, provider)
    second = _seed_failure(container, provider)

    outcomes = asyncio.run(container.orchestrator.replay_all())

    assert {outcome.replayed_id for outcome in outcomes} == {first.id, second.id}
    assert all(outcome.succeeded for outcome in outcomes)
    assert _stored(container) == []


def test_illegal_transitions_are_rejected():
    run = PipelineRun()

    with pytest.raises(RuntimeError):
        run.advance(S.TRANSCRIBING)

    run.advance(S.VALIDATING)
    run.advance(S.FAILED)
    assert run.failed_in is S.VALIDATING
    assert run.terminal
    assert allowed_transitions(S.FAILED) == frozenset()


@pytest.mark.parametrize(
    "state, error, expected",
    [
        (S.TRANSCRIBING, TransientAPIError("x", network=True), FailedRecordingErrorType.NETWORK),
        (S.EXTRACTING, TransientAPIError("x", network=True), FailedRecordingErrorType.NETWORK),
        (S.TRANSCRIBING, TransientAPIError("503", status_code=503), FailedRecordingErrorType.TRANSCRIPTION),
        (S.RATE_GATE_TRANSCRIPTION, RateLimitError("x", retry_after_ms=1, endpoint="whisper"), FailedRecordingErrorType.TRANSCRIPTION),
        (S.EXTRACTING, SchemaValidationError("x"), FailedRecordingErrorType.PROCESSING),
        (S.IDLE, AudioValidationError("x"), FailedRecordingErrorType.UNKNOWN),
    ],
)
def test_classify_failure(state, error, expected):
    assert classify_failure(state, error) is expected


def test_stage_descriptions_are_ordered(container):
    stages = list(container.orchestrator.describe_stages())

    assert [stage.order for stage in stages] == [1, 2, 3, 4, 5]
    assert stages[0].name == "Validation"
