"""Voice pipeline package.

Modules are organised by the order in which a recording moves through them:

1. `ingestion` – read the upload and run the pre-flight audio checks.
2. `transcription` – rate-gated, retried speech-to-text.
3. `prompts` – assemble the extraction system/user prompts.
4. `extraction` – rate-gated, retried structured extraction.
5. `flow` – the state machine that sequences the stages and captures failures.

The FastAPI controllers import from here so contributors can jump straight
to the relevant stage without wading through a single monolithic file.
"""

from .extraction import ExtractionStage
from .flow import (
    PipelineOrchestrator,
    PipelineOutcome,
    PipelineRun,
    PipelineStage,
    PipelineState,
    allowed_transitions,
    classify_failure,
)
from .gate import GovernedStage
from .ingestion import (
    AudioValidator,
    FFprobeDurationProbe,
    decode_audio_data,
    encode_audio_data,
    format_file_size,
    read_audio_payload,
    resolve_content_type,
)
from .prompts import build_extraction_prompts
from .transcription import TranscriptionStage
from .types import AudioPayload, PromptBundle, TranscriptionResult, ValidationResult

__all__ = [
    "AudioPayload",
    "AudioValidator",
    "ExtractionStage",
    "FFprobeDurationProbe",
    "GovernedStage",
    "PipelineOrchestrator",
    "PipelineOutcome",
    "PipelineRun",
    "PipelineStage",
    "PipelineState",
    "PromptBundle",
    "TranscriptionResult",
    "TranscriptionStage",
    "ValidationResult",
    "allowed_transitions",
    "build_extraction_prompts",
    "classify_failure",
    "decode_audio_data",
    "encode_audio_data",
    "format_file_size",
    "read_audio_payload",
    "resolve_content_type",
]
