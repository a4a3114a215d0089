"""Orchestration for the voice pipeline.

A run moves through a fixed state machine:

1. ``validating`` – pre-flight checks on the audio payload (``ingestion``).
2. ``rate_gate_transcription`` – take a token from the transcription limiter.
3. ``transcribing`` – speech-to-text (``transcription``).
4. ``rate_gate_extraction`` – take a token from the extraction limiter.
5. ``extracting`` – structured extraction (``prompts`` + ``extraction``).
6. ``succeeded`` / ``failed`` – terminal.

Any non-terminal state may fall into ``failed``. When a transcript is already
known (live captions, or a stored partial transcript during replay) the two
transcription states are skipped. On failure the recording is written to the
:class:`FailedRecordingStore` before the outcome is returned, except for
recordings rejected during validation and, unless configured otherwise,
rate-limit refusals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from voxmemo.domain.models import (
    FailedRecording,
    FailedRecordingErrorType,
    VoiceItem,
    utcnow,
)
from voxmemo.services.errors import PipelineError, RateLimitError, TransientAPIError
from voxmemo.services.failed_recordings import FailedRecordingStore, FailedRecordingStoreError
from voxmemo.services.retry import attempts_made
from voxmemo.telemetry import observe_failed_recording, observe_pipeline_run, observe_stage_failure
from voxmemo.utils.sanitizer import log_error, sanitize_error

from .extraction import ExtractionStage
from .ingestion import AudioValidator, decode_audio_data, encode_audio_data
from .transcription import TranscriptionStage
from .types import AudioPayload

logger = logging.getLogger("voxmemo.pipeline")


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RATE_GATE_TRANSCRIPTION = "rate_gate_transcription"
    TRANSCRIBING = "transcribing"
    RATE_GATE_EXTRACTION = "rate_gate_extraction"
    EXTRACTING = "extracting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES: FrozenSet[PipelineState] = frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED})

_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.VALIDATING, PipelineState.FAILED}),
    PipelineState.VALIDATING: frozenset(
        {
            PipelineState.RATE_GATE_TRANSCRIPTION,
            PipelineState.RATE_GATE_EXTRACTION,
            PipelineState.FAILED,
        }
    ),
    PipelineState.RATE_GATE_TRANSCRIPTION: frozenset({PipelineState.TRANSCRIBING, PipelineState.FAILED}),
    PipelineState.TRANSCRIBING: frozenset({PipelineState.RATE_GATE_EXTRACTION, PipelineState.FAILED}),
    PipelineState.RATE_GATE_EXTRACTION: frozenset({PipelineState.EXTRACTING, PipelineState.FAILED}),
    PipelineState.EXTRACTING: frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED}),
    PipelineState.SUCCEEDED: frozenset(),
    PipelineState.FAILED: frozenset(),
}

_TRANSCRIPTION_STATES = frozenset({PipelineState.RATE_GATE_TRANSCRIPTION, PipelineState.TRANSCRIBING})
_EXTRACTION_STATES = frozenset({PipelineState.RATE_GATE_EXTRACTION, PipelineState.EXTRACTING})


def allowed_transitions(state: PipelineState) -> FrozenSet[PipelineState]:
    return _TRANSITIONS[state]


@dataclass
class PipelineRun:
    """Mutable state of one pass through the pipeline."""

    state: PipelineState = PipelineState.IDLE
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])
    transcript: Optional[str] = None
    language: Optional[str] = None
    failed_in: Optional[PipelineState] = None

    def advance(self, target: PipelineState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal pipeline transition {self.state.value} -> {target.value}")
        if target is PipelineState.FAILED:
            self.failed_in = self.state
        logger.debug("Pipeline %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of one run: either a VoiceItem or the error that ended it."""

    state: PipelineState
    history: Tuple[PipelineState, ...]
    item: Optional[VoiceItem] = None
    error: Optional[Exception] = None
    failed_in: Optional[PipelineState] = None
    failed_recording: Optional[FailedRecording] = None
    transcript: Optional[str] = None
    replayed_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.SUCCEEDED

    @property
    def persisted(self) -> bool:
        return self.failed_recording is not None


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the voice pipeline."""

    order: int
    name: str
    module: str
    summary: str


_STAGES: Tuple[PipelineStage, ...] = (
    PipelineStage(
        1,
        "Validation",
        "voxmemo.pipelines.audio.ingestion",
        "Reject empty, oversized, wrongly typed or out-of-bounds audio before any quota is spent.",
    ),
    PipelineStage(
        2,
        "Transcription",
        "voxmemo.pipelines.audio.transcription",
        "Take a transcription token, resolve the API key, call speech-to-text under the retry policy.",
    ),
    PipelineStage(
        3,
        "Extraction",
        "voxmemo.pipelines.audio.extraction",
        "Take an extraction token, resolve the API key, request schema-constrained structured content.",
    ),
    PipelineStage(
        4,
        "Assembly",
        "voxmemo.pipelines.audio.flow",
        "Combine transcript, audio data URL and extracted content into a VoiceItem.",
    ),
    PipelineStage(
        5,
        "Failure capture",
        "voxmemo.services.failed_recordings",
        "Classify the error and write the recording to the encrypted failed-recordings store.",
    ),
)


class PipelineOrchestrator:
    """Sequence validation, transcription and extraction for one recording at a time."""

    def __init__(
        self,
        validator: AudioValidator,
        transcription: TranscriptionStage,
        extraction: ExtractionStage,
        store: FailedRecordingStore,
        *,
        persist_rate_limited: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.validator = validator
        self.transcription = transcription
        self.extraction = extraction
        self.store = store
        self.persist_rate_limited = persist_rate_limited
        self._clock = clock

    @staticmethod
    def describe_stages() -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return _STAGES

    async def process(
        self,
        payload: Optional[AudioPayload],
        *,
        transcript: Optional[str] = None,
        language: Optional[str] = None,
        failed_recording: Optional[FailedRecording] = None,
    ) -> PipelineOutcome:
        """Run one recording end to end.

        ``failed_recording`` marks the run as a replay of that stored entry: the
        entry is deleted on success and updated in place on failure.
        """

        run = PipelineRun(language=language)
        try:
            run.advance(PipelineState.VALIDATING)
            await self.validator.validate_or_raise(payload)

            if transcript and transcript.strip():
                run.transcript = transcript.strip()
            else:
                run.advance(PipelineState.RATE_GATE_TRANSCRIPTION)
                self.transcription.admit()
                run.advance(PipelineState.TRANSCRIBING)
                result = await self.transcription.execute(payload)
                run.transcript = result.text
                run.language = result.language or run.language

            run.advance(PipelineState.RATE_GATE_EXTRACTION)
            self.extraction.admit()
            run.advance(PipelineState.EXTRACTING)
            content = await self.extraction.execute(run.transcript, run.language)

            item = VoiceItem.assemble(
                content,
                transcript=run.transcript,
                language=run.language,
                audio_data=encode_audio_data(payload),
            )
            run.advance(PipelineState.SUCCEEDED)
        except Exception as exc:
            return await self._fail(run, payload, exc, failed_recording)

        if failed_recording is not None:
            try:
                await self.store.delete(failed_recording.id)
            except FailedRecordingStoreError as exc:
                log_error(logger, f"Replayed recording {failed_recording.id} but could not remove it", exc)
            else:
                logger.info("Replayed failed recording %s successfully", failed_recording.id)
        observe_pipeline_run("succeeded")
        logger.info("Pipeline succeeded: item=%s intent=%s", item.id, item.intent.value)
        return PipelineOutcome(
            state=run.state,
            history=tuple(run.history),
            item=item,
            transcript=run.transcript,
            replayed_id=failed_recording.id if failed_recording else None,
        )

    async def replay(self, recording_id: str) -> Optional[PipelineOutcome]:
        """Re-feed a stored recording; returns ``None`` when the id is unknown."""

        recording = await self.store.get_by_id(recording_id)
        if recording is None:
            return None
        try:
            payload = decode_audio_data(recording.audio_data)
        except PipelineError as exc:
            run = PipelineRun(transcript=recording.transcript, language=recording.language)
            return await self._fail(run, None, exc, recording)
        return await self.process(
            payload,
            transcript=recording.transcript,
            language=recording.language,
            failed_recording=recording,
        )

    async def replay_all(self) -> List[PipelineOutcome]:
        """Replay every stored recording sequentially, oldest entries last."""

        outcomes: List[PipelineOutcome] = []
        for recording in await self.store.list():
            outcome = await self.replay(recording.id)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def _fail(
        self,
        run: PipelineRun,
        payload: Optional[AudioPayload],
        exc: Exception,
        existing: Optional[FailedRecording],
    ) -> PipelineOutcome:
        failed_in = run.state
        run.advance(PipelineState.FAILED)
        kind = exc.kind.value if isinstance(exc, PipelineError) else "unexpected"
        observe_stage_failure(failed_in.value, kind)
        log_error(logger, f"Pipeline failed while {failed_in.value}", exc)

        record: Optional[FailedRecording] = None
        if self._should_persist(failed_in, exc, existing):
            try:
                record = await self._record_failure(run, failed_in, payload, exc, existing)
            except FailedRecordingStoreError as store_exc:
                log_error(logger, "Could not save failed recording", store_exc)
        observe_pipeline_run("failed")

        return PipelineOutcome(
            state=run.state,
            history=tuple(run.history),
            error=exc,
            failed_in=failed_in,
            failed_recording=record,
            transcript=run.transcript,
            replayed_id=existing.id if existing else None,
        )

    def _should_persist(
        self,
        failed_in: PipelineState,
        exc: Exception,
        existing: Optional[FailedRecording],
    ) -> bool:
        if isinstance(exc, RateLimitError):
            return self.persist_rate_limited and existing is None
        if existing is not None:
            return True
        return failed_in not in (PipelineState.IDLE, PipelineState.VALIDATING)

    async def _record_failure(
        self,
        run: PipelineRun,
        failed_in: PipelineState,
        payload: Optional[AudioPayload],
        exc: Exception,
        existing: Optional[FailedRecording],
    ) -> FailedRecording:
        now = self._clock()
        error_type = classify_failure(failed_in, exc)
        message = exc.user_message if isinstance(exc, PipelineError) else sanitize_error(exc)
        attempts = attempts_made(exc)

        if existing is not None:
            record = existing.model_copy(
                update={
                    "failed_at": now,
                    "error_message": message,
                    "error_type": error_type,
                    "transcript": run.transcript or existing.transcript,
                    "language": run.language or existing.language,
                    "retry_count": existing.retry_count + max(attempts, 1),
                    "last_retry_at": now,
                }
            )
        else:
            record = FailedRecording(
                created_at=now,
                failed_at=now,
                audio_data=encode_audio_data(payload),
                transcript=run.transcript,
                language=run.language,
                error_message=message,
                error_type=error_type,
                retry_count=attempts,
            )

        await self.store.save(record)
        observe_failed_recording(error_type.value)
        logger.info(
            "Saved failed recording %s (type=%s, retries=%d)",
            record.id,
            error_type.value,
            record.retry_count,
        )
        return record


def classify_failure(failed_in: PipelineState, exc: Exception) -> FailedRecordingErrorType:
    """Map the failing state and error onto the stored ``errorType``."""

    if isinstance(exc, TransientAPIError) and exc.network:
        return FailedRecordingErrorType.NETWORK
    if failed_in in _TRANSCRIPTION_STATES:
        return FailedRecordingErrorType.TRANSCRIPTION
    if failed_in in _EXTRACTION_STATES:
        return FailedRecordingErrorType.PROCESSING
    return FailedRecordingErrorType.UNKNOWN


__all__ = [
    "PipelineOrchestrator",
    "PipelineOutcome",
    "PipelineRun",
    "PipelineStage",
    "PipelineState",
    "TERMINAL_STATES",
    "allowed_transitions",
    "classify_failure",
]
