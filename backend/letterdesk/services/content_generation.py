"""
Content Generation Adapter

Wraps the generative-text provider behind ``generate(prompt)`` and isolates
provider-specific response parsing. Parsing never raises on malformed output:
anything that is not the expected JSON object degrades to "raw text as
content" with a generic summary.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from openai import OpenAI, APITimeoutError, OpenAIError

from ..config import Settings
from ..errors import GenerationError

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a professional legal assistant specializing in drafting formal legal "
    "correspondence. Generate professional, legally sound letters with appropriate "
    "formatting and language."
)

FALLBACK_SUMMARY = "AI-generated legal letter"

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_FENCE_SEARCH_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*\n(.*?)\n?\s*```", re.DOTALL)


@dataclass(frozen=True)
class GeneratedContent:
    content: str
    summary: str


def build_prompt(letter: Any) -> str:
    """
    Deterministic drafting prompt from the letter's structured fields.
    ``letter`` is a LetterDB or any object exposing the same attributes.
    """
    sender = letter.sender_name
    if getattr(letter, "sender_firm_name", None):
        sender = f"{sender} from {letter.sender_firm_name}"

    lines = [
        "Generate a professional legal letter with the following details:",
        "",
        f"Sender: {sender}",
        f"Recipient: {letter.recipient_name}",
        f"Subject: {letter.subject}",
        f"Conflict: {letter.conflict_description}",
        f"Desired Resolution: {letter.desired_resolution}",
    ]
    if getattr(letter, "additional_notes", None):
        lines.append(f"Additional Notes: {letter.additional_notes}")
    lines += [
        "",
        "Please format this as a formal legal letter with proper legal language and "
        "structure. Include appropriate legal terminology and maintain a professional "
        "tone throughout. The letter should clearly state the issue, reference relevant "
        "facts, and specify the desired resolution.",
        "",
        "Return the response in JSON format with the following structure:",
        '{',
        '  "content": "The full letter content",',
        '  "summary": "Brief summary of the letter"',
        '}',
    ]
    return "\n".join(lines)


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    # Prose around a fenced block: keep only the block
    inner = _FENCE_SEARCH_RE.search(text)
    if inner and inner.group(1).strip().startswith("{"):
        return inner.group(1).strip()
    return text.strip()


def parse_generation_response(raw: Optional[str]) -> GeneratedContent:
    """
    Parse the provider's reply into content + summary.

    Accepts bare JSON, JSON wrapped in markdown fences, JSON without a
    summary, and plain text. Only an empty reply raises GenerationError.
    """
    if raw is None or not raw.strip():
        raise GenerationError("Empty response from content generator")

    text = _strip_fences(raw)
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        payload = None

    if isinstance(payload, dict):
        content = payload.get("content")
        if isinstance(content, str) and content.strip():
            summary = payload.get("summary")
            if not isinstance(summary, str) or not summary.strip():
                summary = FALLBACK_SUMMARY
            return GeneratedContent(content=content.strip(), summary=summary.strip())

    logger.warning("Generator reply was not the expected JSON object - using raw text")
    return GeneratedContent(content=text, summary=FALLBACK_SUMMARY)


class ContentGenerator:
    """OpenAI chat-completions drafting client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0, client=None):
        if not api_key:
            raise ValueError("OPENAI_API_KEY not configured")
        self.model = model
        self.client = client or OpenAI(api_key=api_key, timeout=timeout)

    def complete(self, prompt: str) -> str:
        """Raw provider call. Timeouts and provider errors become GenerationError."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except APITimeoutError as e:
            raise GenerationError(f"Content generation timed out: {e}") from e
        except OpenAIError as e:
            raise GenerationError(f"Content generation failed: {e}") from e

        if not response.choices:
            raise GenerationError("Content generator returned no choices")
        return response.choices[0].message.content or ""

    def generate(self, prompt: str) -> GeneratedContent:
        return parse_generation_response(self.complete(prompt))


def build_content_generator(settings: Settings) -> Optional[ContentGenerator]:
    """Generator for the configured provider key, or None when absent."""
    if not settings.openai_api_key:
        return None
    return ContentGenerator(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=float(settings.generation_timeout_seconds),
    )
