"""Service layer helpers for external integrations and local state."""

from .credentials import (
    CredentialResolver,
    EnvironmentSource,
    LocalValueSource,
    SecureStoreSource,
    SecureValueStore,
    build_default_resolver,
    verify_credential,
)
from .crypto import DecryptionError, Encryptor, FernetEncryptor
from .errors import (
    AudioValidationError,
    CredentialInvalidError,
    CredentialMissingError,
    ErrorKind,
    PipelineError,
    RateLimitError,
    SchemaValidationError,
    TransientAPIError,
    should_retry,
)
from .failed_recordings import FailedRecordingStore, FailedRecordingStoreError
from .openai_client import OpenAIClient, create_http_client
from .rate_limiter import RateLimiter, RateLimiters, build_rate_limiters
from .retry import DEFAULT_RETRY_POLICY, RetryOrchestrator, RetryPolicy

__all__ = [
    "AudioValidationError",
    "CredentialInvalidError",
    "CredentialMissingError",
    "CredentialResolver",
    "DEFAULT_RETRY_POLICY",
    "DecryptionError",
    "Encryptor",
    "EnvironmentSource",
    "ErrorKind",
    "FailedRecordingStore",
    "FailedRecordingStoreError",
    "FernetEncryptor",
    "LocalValueSource",
    "OpenAIClient",
    "PipelineError",
    "RateLimitError",
    "RateLimiter",
    "RateLimiters",
    "RetryOrchestrator",
    "RetryPolicy",
    "SchemaValidationError",
    "SecureStoreSource",
    "SecureValueStore",
    "TransientAPIError",
    "build_default_resolver",
    "build_rate_limiters",
    "create_http_client",
    "should_retry",
    "verify_credential",
]
