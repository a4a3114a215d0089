"""Failed-recording queue: inspection, deletion and manual replay."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from voxmemo.controllers.dependencies import FailedStoreDep, OrchestratorDep
from voxmemo.controllers.errors import error_body
from voxmemo.pipelines.audio import PipelineOutcome
from voxmemo.views import (
    FailedRecordingCount,
    FailedRecordingSummary,
    ReplayAllResponse,
    ReplayResult,
)

router = APIRouter(prefix="/failed-recordings", tags=["failed-recordings"])

logger = logging.getLogger(__name__)


def _not_found(recording_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Failed recording {recording_id} not found",
    )


def _to_result(recording_id: str, outcome: PipelineOutcome) -> ReplayResult:
    if outcome.succeeded:
        return ReplayResult(recording_id=recording_id, succeeded=True, item=outcome.item.to_record())
    failed_id = outcome.failed_recording.id if outcome.failed_recording else recording_id
    return ReplayResult(
        recording_id=recording_id,
        succeeded=False,
        error=error_body(outcome.error, failed_recording_id=failed_id),
    )


@router.get("", response_model=list[FailedRecordingSummary], response_model_by_alias=True)
async def list_failed_recordings(store: FailedStoreDep) -> list[FailedRecordingSummary]:
    return [FailedRecordingSummary.from_recording(recording) for recording in await store.list()]


@router.get("/count", response_model=FailedRecordingCount)
async def count_failed_recordings(store: FailedStoreDep) -> FailedRecordingCount:
    return FailedRecordingCount(count=await store.count())


@router.post("/retry-all", response_model=ReplayAllResponse)
async def retry_all_failed_recordings(orchestrator: OrchestratorDep) -> ReplayAllResponse:
    """Replay every stored recording sequentially."""

    outcomes = await orchestrator.replay_all()
    results = [_to_result(outcome.replayed_id or "", outcome) for outcome in outcomes]
    succeeded = sum(1 for result in results if result.succeeded)
    logger.info("Replayed %d failed recordings: %d succeeded", len(results), succeeded)
    return ReplayAllResponse(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )


@router.get("/{recording_id}")
async def get_failed_recording(recording_id: str, store: FailedStoreDep) -> dict[str, Any]:
    recording = await store.get_by_id(recording_id)
    if recording is None:
        raise _not_found(recording_id)
    return recording.to_record()


@router.delete("/{recording_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_failed_recording(recording_id: str, store: FailedStoreDep) -> None:
    if not await store.delete(recording_id):
        raise _not_found(recording_id)


@router.post("/{recording_id}/retry", response_model=ReplayResult)
async def retry_failed_recording(recording_id: str, orchestrator: OrchestratorDep) -> ReplayResult:
    """Re-feed one stored recording through the pipeline."""

    outcome = await orchestrator.replay(recording_id)
    if outcome is None:
        raise _not_found(recording_id)
    return _to_result(recording_id, outcome)
