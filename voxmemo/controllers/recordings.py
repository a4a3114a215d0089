"""Recording ingestion endpoint.

For a stage-by-stage map see ``voxmemo.pipelines.audio.flow``. ``POST
/recordings`` performs validation, transcription (skipped when the client
already holds a live transcript) and structured extraction, and returns the
assembled VoiceItem. Failed runs answer with the classified error and, when the
recording was captured for replay, its ``failed_recording_id``.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, File, Form, UploadFile

from voxmemo.controllers.dependencies import OrchestratorDep
from voxmemo.controllers.errors import pipeline_error_response
from voxmemo.pipelines.audio import PipelineOrchestrator, read_audio_payload

router = APIRouter(prefix="/recordings", tags=["recordings"])

logger = logging.getLogger(__name__)

PIPELINE_STAGES = tuple(PipelineOrchestrator.describe_stages())
"""Ordered pipeline metadata used for quick reference and debugging."""

_AUDIO_FILE_UPLOAD = File(...)
_TRANSCRIPT_FORM = Form(None)
_LANGUAGE_FORM = Form(None)


@router.post("")
async def create_recording(
    orchestrator: OrchestratorDep,
    audio_file: UploadFile = _AUDIO_FILE_UPLOAD,
    transcript: Optional[str] = _TRANSCRIPT_FORM,
    language: Optional[str] = _LANGUAGE_FORM,
) -> Any:
    """Turn an uploaded voice memo into a structured VoiceItem."""

    payload = await read_audio_payload(audio_file)
    logger.info(
        "Recording received: %d bytes, %s, live transcript=%s",
        payload.size_bytes,
        payload.mime_type,
        bool(transcript),
    )

    outcome = await orchestrator.process(payload, transcript=transcript, language=language)
    if not outcome.succeeded:
        failed_id = outcome.failed_recording.id if outcome.failed_recording else None
        return pipeline_error_response(outcome.error, failed_recording_id=failed_id)

    return outcome.item.to_record()


@router.get("/stages")
async def describe_stages() -> list[dict[str, Any]]:
    """List the pipeline stages in execution order."""

    return [
        {"order": stage.order, "name": stage.name, "module": stage.module, "summary": stage.summary}
        for stage in PIPELINE_STAGES
    ]
