"""Domain models for voice items and the failed-recording queue.

The intent-specific content of a :class:`VoiceItem` is a tagged union keyed by
``intent``: a TODO item can only carry todos, a RESEARCH item only an answer,
and so on. The flat ``data`` record (``todos`` / ``researchAnswer`` /
``draftContent`` with nulls for the unused branches) is derived from the
payload when serializing, so the exclusivity invariant holds by construction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class IntentType(str, Enum):
    TODO = "TODO"
    RESEARCH = "RESEARCH"
    DRAFT = "DRAFT"
    NOTE = "NOTE"


class TodoEntry(BaseModel):
    task: str
    done: bool = False
    due: Optional[str] = None


class TodoPayload(BaseModel):
    intent: Literal["TODO"] = "TODO"
    todos: list[TodoEntry]


class ResearchPayload(BaseModel):
    intent: Literal["RESEARCH"] = "RESEARCH"
    research_answer: str


class DraftPayload(BaseModel):
    intent: Literal["DRAFT"] = "DRAFT"
    draft_content: str


class NotePayload(BaseModel):
    intent: Literal["NOTE"] = "NOTE"


IntentPayload = Annotated[
    Union[TodoPayload, ResearchPayload, DraftPayload, NotePayload],
    Field(discriminator="intent"),
]


class IntentData(BaseModel):
    """Flat wire shape of the intent-specific content."""

    todos: Optional[list[TodoEntry]] = None
    research_answer: Optional[str] = Field(default=None, alias="researchAnswer")
    draft_content: Optional[str] = Field(default=None, alias="draftContent")

    model_config = ConfigDict(populate_by_name=True)

    def populated_fields(self) -> list[str]:
        populated = []
        if self.todos is not None:
            populated.append("todos")
        if self.research_answer is not None:
            populated.append("researchAnswer")
        if self.draft_content is not None:
            populated.append("draftContent")
        return populated

    def to_payload(self, intent: IntentType | str) -> "TodoPayload | ResearchPayload | DraftPayload | NotePayload":
        """Convert to the tagged payload, rejecting any field that does not match ``intent``."""

        intent = IntentType(intent)
        expected = _INTENT_FIELDS[intent]
        populated = self.populated_fields()
        if populated != ([expected] if expected else []):
            raise ValueError(
                f"intent {intent.value} requires "
                f"{expected or 'no data fields'} but got {populated or 'none'}"
            )

        if intent is IntentType.TODO:
            return TodoPayload(todos=self.todos or [])
        if intent is IntentType.RESEARCH:
            return ResearchPayload(research_answer=self.research_answer or "")
        if intent is IntentType.DRAFT:
            return DraftPayload(draft_content=self.draft_content or "")
        return NotePayload()

    @classmethod
    def from_payload(cls, payload: "TodoPayload | ResearchPayload | DraftPayload | NotePayload") -> "IntentData":
        if isinstance(payload, TodoPayload):
            return cls(todos=list(payload.todos))
        if isinstance(payload, ResearchPayload):
            return cls(research_answer=payload.research_answer)
        if isinstance(payload, DraftPayload):
            return cls(draft_content=payload.draft_content)
        return cls()


_INTENT_FIELDS: dict[IntentType, Optional[str]] = {
    IntentType.TODO: "todos",
    IntentType.RESEARCH: "researchAnswer",
    IntentType.DRAFT: "draftContent",
    IntentType.NOTE: None,
}


class ExtractedContent(BaseModel):
    """Structured content returned by the extraction stage."""

    title: str
    tags: list[str] = Field(min_length=2, max_length=5)
    summary: str
    key_facts: list[str] = Field(default_factory=list, alias="keyFacts")
    payload: IntentPayload

    model_config = ConfigDict(populate_by_name=True)

    @property
    def intent(self) -> IntentType:
        return IntentType(self.payload.intent)


class VoiceItem(BaseModel):
    """Pipeline output handed to the item-persistence layer."""

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    original_transcript: str = Field(alias="originalTranscript")
    audio_data: Optional[str] = Field(default=None, alias="audioData")
    language: str = "en"
    title: str
    tags: list[str] = Field(min_length=2, max_length=5)
    summary: str
    key_facts: list[str] = Field(default_factory=list, alias="keyFacts")
    payload: IntentPayload = Field(exclude=True)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_intent(cls, values: Any) -> Any:
        # Accept the flat {"intent", "data"} wire shape as input too.
        if isinstance(values, Mapping) and "payload" not in values and "intent" in values:
            values = dict(values)
            intent = values.pop("intent")
            data = IntentData.model_validate(values.pop("data", None) or {})
            values["payload"] = data.to_payload(intent)
        return values

    @computed_field  # type: ignore[prop-decorator]
    @property
    def intent(self) -> IntentType:
        return IntentType(self.payload.intent)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def data(self) -> IntentData:
        return IntentData.from_payload(self.payload)

    @classmethod
    def assemble(
        cls,
        content: ExtractedContent,
        *,
        transcript: str,
        language: str | None,
        audio_data: str | None,
    ) -> "VoiceItem":
        return cls(
            original_transcript=transcript,
            audio_data=audio_data,
            language=language or "en",
            title=content.title,
            tags=list(content.tags),
            summary=content.summary,
            key_facts=list(content.key_facts),
            payload=content.payload,
        )

    def to_record(self) -> dict[str, Any]:
        """JSON-ready camelCase record."""

        return self.model_dump(mode="json", by_alias=True)


class FailedRecordingErrorType(str, Enum):
    TRANSCRIPTION = "transcription"
    PROCESSING = "processing"
    NETWORK = "network"
    UNKNOWN = "unknown"


class FailedRecording(BaseModel):
    """A recording that exhausted retries or hit a terminal error."""

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    failed_at: datetime = Field(default_factory=utcnow, alias="failedAt")
    audio_data: str = Field(alias="audioData")
    transcript: Optional[str] = None
    language: Optional[str] = None
    error_message: str = Field(alias="errorMessage")
    error_type: FailedRecordingErrorType = Field(
        default=FailedRecordingErrorType.UNKNOWN, alias="errorType"
    )
    retry_count: int = Field(default=0, ge=0, alias="retryCount")
    last_retry_at: Optional[datetime] = Field(default=None, alias="lastRetryAt")

    model_config = ConfigDict(populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "DraftPayload",
    "ExtractedContent",
    "FailedRecording",
    "FailedRecordingErrorType",
    "IntentData",
    "IntentPayload",
    "IntentType",
    "NotePayload",
    "ResearchPayload",
    "TodoEntry",
    "TodoPayload",
    "VoiceItem",
    "new_id",
    "utcnow",
]
