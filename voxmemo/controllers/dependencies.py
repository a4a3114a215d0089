"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from voxmemo.config.dependencies import ServiceContainer, get_container
from voxmemo.pipelines.audio import PipelineOrchestrator
from voxmemo.services.failed_recordings import FailedRecordingStore


def get_services() -> ServiceContainer:
    return get_container()


ServicesDep = Annotated[ServiceContainer, Depends(get_services)]


def get_orchestrator(services: ServicesDep) -> PipelineOrchestrator:
    return services.orchestrator


def get_failed_store(services: ServicesDep) -> FailedRecordingStore:
    return services.store


OrchestratorDep = Annotated[PipelineOrchestrator, Depends(get_orchestrator)]
FailedStoreDep = Annotated[FailedRecordingStore, Depends(get_failed_store)]


__all__ = [
    "FailedStoreDep",
    "OrchestratorDep",
    "ServicesDep",
    "get_failed_store",
    "get_orchestrator",
    "get_services",
]
