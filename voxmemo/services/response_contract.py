"""Pydantic contract for the structured-generation response.

The provider is asked for the flat VoiceItem shape (``intent`` plus a ``data``
record with nullable ``todos`` / ``researchAnswer`` / ``draftContent``). The
response is re-validated client-side and converted into the tagged payload;
anything that violates the intent exclusivity invariant is rejected as a
:class:`SchemaValidationError`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voxmemo.domain.models import ExtractedContent, IntentData, IntentType
from voxmemo.services.errors import SchemaValidationError

_NULLABLE_STRING = {"type": ["string", "null"]}

VOICE_ITEM_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["title", "tags", "summary", "keyFacts", "intent", "data"],
    "properties": {
        "title": {"type": "string", "description": "A short, descriptive title (max 60 characters)"},
        "tags": {
            "type": "array",
            "items": {"type": "string"},
            "description": "2-5 relevant tags for categorization",
        },
        "summary": {"type": "string", "description": "A 2-3 sentence summary of the content"},
        "keyFacts": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Bullet points with hard facts like names, dates, amounts",
        },
        "intent": {
            "type": "string",
            "enum": [intent.value for intent in IntentType],
            "description": "The primary intent of the voice input",
        },
        "data": {
            "type": "object",
            "additionalProperties": False,
            "required": ["todos", "researchAnswer", "draftContent"],
            "properties": {
                "todos": {
                    "type": ["array", "null"],
                    "description": "List of action items if intent is TODO",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["task", "done", "due"],
                        "properties": {
                            "task": {"type": "string"},
                            "done": {"type": "boolean"},
                            "due": _NULLABLE_STRING,
                        },
                    },
                },
                "researchAnswer": {
                    **_NULLABLE_STRING,
                    "description": "AI-generated answer if intent is RESEARCH",
                },
                "draftContent": {
                    **_NULLABLE_STRING,
                    "description": "Polished, ready-to-use text if intent is DRAFT",
                },
            },
        },
    },
}


class StructuredVoiceResponse(BaseModel):
    title: str = Field(min_length=1)
    tags: List[str] = Field(min_length=2, max_length=5)
    summary: str
    key_facts: List[str] = Field(default_factory=list, alias="keyFacts")
    intent: IntentType
    data: IntentData = Field(default_factory=IntentData)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_json(cls, payload: str) -> "StructuredVoiceResponse":
        cleaned = _clean_json_payload(payload)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise SchemaValidationError(f"Structured response is not valid JSON: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise SchemaValidationError(
                f"Structured response failed schema validation: {exc.error_count()} error(s)",
                details={"errors": _summarize(exc)},
            ) from exc

    def to_content(self) -> ExtractedContent:
        """Convert to the tagged payload, enforcing the intent exclusivity invariant."""

        try:
            payload = self.data.to_payload(self.intent)
        except ValueError as exc:
            raise SchemaValidationError(
                f"Structured response violates intent exclusivity: {exc}",
                details={"intent": self.intent.value, "populated": self.data.populated_fields()},
            ) from exc
        return ExtractedContent(
            title=self.title.strip(),
            tags=[tag.strip() for tag in self.tags],
            summary=self.summary.strip(),
            key_facts=list(self.key_facts),
            payload=payload,
        )


def parse_extraction_response(payload: str) -> ExtractedContent:
    """Validate a raw provider response and return the tagged content."""

    if not payload or not payload.strip():
        raise SchemaValidationError("Structured generation returned an empty response.")
    return StructuredVoiceResponse.from_json(payload).to_content()


def _summarize(exc: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def _clean_json_payload(payload: str) -> str:
    """Strip Markdown code fences and keep the outermost JSON object."""

    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    return cleaned


__all__ = [
    "StructuredVoiceResponse",
    "VOICE_ITEM_JSON_SCHEMA",
    "parse_extraction_response",
]
