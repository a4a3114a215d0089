"""Prompt construction for the extraction stage.

The transcript's own language wins over everything else: every generated field
(title, summary, key facts and the intent payload) must come back in it.
"""

from __future__ import annotations

import logging
from typing import Optional

from .types import PromptBundle

logger = logging.getLogger("voxmemo.pipeline")

SYSTEM_PROMPT = (
    "You turn short voice memos into structured notes. "
    "Always answer with a single JSON object that matches the provided schema. "
    "Strictly output in the same language as the transcript. Do not translate."
)

_INSTRUCTIONS = """Instructions:
1. Identify the language of the transcript{language_hint} and ensure ALL generated output is in this language. This applies to the title, summary, key facts, todos, research answers, and draft content. Do NOT translate to English unless the transcript is in English.

2. Determine the PRIMARY intent:
   - TODO: Contains action items or tasks to be done
   - RESEARCH: Contains a question or request for information/analysis
   - DRAFT: Request to write or compose something (email, message, document)
   - NOTE: General information, observations, or thoughts to remember

3. Extract (IN THE TRANSCRIPT'S LANGUAGE):
   - A clear, concise title
   - 2-5 relevant tags for categorization
   - A 2-3 sentence summary
   - Key facts (names, dates, amounts, specific details)

4. Based on intent, populate the data field (use null for fields not relevant to the intent):
   - TODO: Extract all action items with clear task descriptions (set done: false for all new tasks, use null for due if no date mentioned). Set researchAnswer and draftContent to null.
   - RESEARCH: Provide a comprehensive, well-researched answer to the question. Set todos and draftContent to null.
   - DRAFT: Write polished, ready-to-use content based on the request. Set todos and researchAnswer to null.
   - NOTE: Set all data fields (todos, researchAnswer, draftContent) to null.

IMPORTANT: Strictly output in the same language as the transcript. Do not translate.
Be thorough and accurate. Ensure the output is immediately useful to the user."""


def _escape_transcript(transcript: str) -> str:
    return transcript.strip().replace('"', '\\"')


def build_extraction_prompts(transcript: str, language: Optional[str] = None) -> PromptBundle:
    """Render the system/user prompt pair for one transcript."""

    language = (language or "").strip() or None
    lines = [
        "Analyze the following voice transcript and extract structured information.",
        "",
        f'Transcript: "{_escape_transcript(transcript)}"',
    ]
    if language:
        lines.append(f'Detected Language Code: "{language}"')
    lines.append("")
    language_hint = f" (likely '{language}' based on initial detection)" if language else ""
    lines.append(_INSTRUCTIONS.format(language_hint=language_hint))

    user_prompt = "\n".join(lines)
    logger.debug("Extraction prompt built (%d chars, language=%s)", len(user_prompt), language)
    return PromptBundle(system_prompt=SYSTEM_PROMPT, user_prompt=user_prompt)


__all__ = ["SYSTEM_PROMPT", "build_extraction_prompts"]
