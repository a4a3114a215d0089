"""API-key management endpoints backed by the secure value store."""

import logging

from fastapi import APIRouter, status
from fastapi.concurrency import run_in_threadpool

from voxmemo.controllers.dependencies import ServicesDep
from voxmemo.services.credentials import verify_credential
from voxmemo.services.errors import CredentialMissingError
from voxmemo.views import (
    CredentialStatusResponse,
    CredentialUpdateRequest,
    CredentialVerifyRequest,
    CredentialVerifyResponse,
)

router = APIRouter(prefix="/credentials", tags=["credentials"])

logger = logging.getLogger(__name__)


@router.put("", status_code=status.HTTP_204_NO_CONTENT)
async def store_credential(request: CredentialUpdateRequest, services: ServicesDep) -> None:
    """Save the API key to the secure store; later runs pick it up immediately."""

    value = request.api_key.get_secret_value().strip()
    if not value:
        raise CredentialMissingError("API key must not be empty.")
    key = services.settings.storage.credential_key
    await run_in_threadpool(services.secure_store.set, key, value)
    logger.info("API key stored in secure store")


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(services: ServicesDep) -> None:
    key = services.settings.storage.credential_key
    await run_in_threadpool(services.secure_store.delete, key)
    logger.info("API key removed from secure store")


@router.get("/status", response_model=CredentialStatusResponse)
async def credential_status(services: ServicesDep) -> CredentialStatusResponse:
    """Report which source currently supplies the key, never the key itself."""

    source = await services.resolver.active_source()
    return CredentialStatusResponse(configured=source is not None, source=source)


@router.post("/verify", response_model=CredentialVerifyResponse)
async def verify(request: CredentialVerifyRequest, services: ServicesDep) -> CredentialVerifyResponse:
    """Check a supplied key, or the currently resolved one, against the provider."""

    if request.api_key is not None and request.api_key.get_secret_value().strip():
        credential = request.api_key.get_secret_value().strip()
        source = "request"
    else:
        credential, source = await services.resolver.resolve_with_source()

    await verify_credential(
        services.http_client,
        credential,
        timeout=services.settings.openai.verify_timeout,
    )
    return CredentialVerifyResponse(valid=True, source=source)
