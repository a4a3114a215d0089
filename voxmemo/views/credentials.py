"""Schemas for API-key management. Key values are never echoed back."""

from typing import Optional

from pydantic import BaseModel, Field, SecretStr


class CredentialUpdateRequest(BaseModel):
    api_key: SecretStr = Field(min_length=1)


class CredentialVerifyRequest(BaseModel):
    api_key: Optional[SecretStr] = None


class CredentialStatusResponse(BaseModel):
    configured: bool
    source: Optional[str] = None


class CredentialVerifyResponse(BaseModel):
    valid: bool
    source: Optional[str] = None
