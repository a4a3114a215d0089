"""Test doubles and payload builders shared across the suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
from pydantic import SecretStr

from voxmemo.config.settings import (
    AudioValidationConfig,
    OpenAIConfig,
    PipelineConfig,
    Settings,
    StorageConfig,
)
from voxmemo.pipelines.audio import AudioPayload

TEST_API_KEY = "sk-test-abcdefghijklmnopqrstuvwxyz012345"
BASE_URL = "https://api.test/v1"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordedSleep:
    """Async sleep replacement that only records the requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class StaticSource:
    """Credential source returning a fixed value and counting reads."""

    def __init__(self, value: Optional[str], name: str = "static") -> None:
        self.value = value
        self.name = name
        self.reads = 0

    async def read(self) -> Optional[str]:
        self.reads += 1
        return self.value


def voice_item_json(intent: str = "TODO", **overrides: Any) -> str:
    data = {"todos": None, "researchAnswer": None, "draftContent": None}
    if intent == "TODO":
        data["todos"] = [{"task": "Buy milk", "done": False, "due": "tomorrow"}]
    elif intent == "RESEARCH":
        data["researchAnswer"] = "Paris is the capital of France."
    elif intent == "DRAFT":
        data["draftContent"] = "Dear team, the meeting moves to Friday."
    body = {
        "title": "Groceries",
        "tags": ["shopping", "errands"],
        "summary": "A reminder to buy milk tomorrow.",
        "keyFacts": ["milk", "tomorrow"],
        "intent": intent,
        "data": data,
    }
    body.update(overrides)
    return json.dumps(body)


def chat_completion(content: str) -> dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [
            {"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}
        ],
    }


Reply = Any  # httpx.Response, an exception instance, or a callable(request) -> Response


class ProviderStub:
    """Scripted fake of the provider endpoints behind ``httpx.MockTransport``.

    Each endpoint has a queue of replies; once it runs dry the default success
    reply is returned.
    """

    def __init__(self) -> None:
        self.transcriptions: list[Reply] = []
        self.completions: list[Reply] = []
        self.models: list[Reply] = []
        self.requests: list[httpx.Request] = []
        self.transcript_text = "Remember to buy milk tomorrow"
        self.language = "en"
        self.completion_content = voice_item_json("TODO")

    def calls_to(self, suffix: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/audio/transcriptions"):
            queue = self.transcriptions
            default: Callable[[], httpx.Response] = lambda: httpx.Response(
                200, json={"text": self.transcript_text, "language": self.language, "duration": 2.5}
            )
        elif path.endswith("/chat/completions"):
            queue = self.completions
            default = lambda: httpx.Response(200, json=chat_completion(self.completion_content))
        elif path.endswith("/models"):
            queue = self.models
            default = lambda: httpx.Response(200, json={"object": "list", "data": []})
        else:
            return httpx.Response(404, json={"error": {"message": "unknown route"}})

        if not queue:
            return default()
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply


def make_settings(tmp_path: Path, **pipeline: Any) -> Settings:
    return Settings(
        openai=OpenAIConfig(api_key=None, base_url=BASE_URL),
        audio=AudioValidationConfig(),
        storage=StorageConfig(data_dir=tmp_path, encryption_secret=SecretStr("test-secret")),
        pipeline=PipelineConfig(**pipeline),
        log_file=str(tmp_path / "logs" / "app.log"),
        pipeline_log_file=str(tmp_path / "logs" / "pipeline.log"),
    )


def webm_payload(data: bytes = b"\x1a\x45\xdf\xa3 fake webm audio") -> AudioPayload:
    return AudioPayload(data=data, mime_type="audio/webm;codecs=opus")


