"""Prompt rendering and output parsing for activity summaries.

The model is asked for a JSON object (summary, action items, suggested
messages). When the reply is not valid JSON for that schema, a
labeled-section fallback recovers what it can and marks the result as
degraded.

Usage:
    from ops_assistant.chains.summarize_activity import (
        build_system_prompt,
        load_prompt_template,
        parse_summary_output,
        render_user_prompt,
    )
"""

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ops_assistant.core.llm import parse_llm_json
from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_feedback import PreferenceProfile
from ops_assistant.core.schemas_summary import (
    ModelSummaryOutput,
    SuggestedMessage,
    SummaryResult,
)

logger = get_logger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

DATA_PLACEHOLDER = "{{DATA}}"

FALLBACK_MESSAGE_CONFIDENCE = 0.25

PROMPT_TEMPLATES = {
    "slack": "slack-summary.txt",
    "zendesk": "zendesk-summary.txt",
    "harvest": "harvest-summary.txt",
    "email": "email-summary.txt",
}

# Payload key each source's records are sent under
PAYLOAD_KEYS = {
    "slack": "messages",
    "zendesk": "tickets",
    "harvest": "entries",
    "email": "emails",
}

EMPTY_MESSAGES = {
    "slack": "No recent Slack messages to summarize.",
    "zendesk": "No recent Zendesk tickets to summarize.",
    "harvest": "No recent Harvest data to summarize.",
    "email": "No recent emails to summarize.",
}
DEFAULT_EMPTY_MESSAGE = "No recent data to summarize."


# =============================================================================
# System prompt
# =============================================================================

SYSTEM_PROMPT = """You are a helpful AI assistant that summarizes operations activity and provides actionable insights.

Based on user feedback, please follow these guidelines:
- Tone: {tone}
- Length: {length}
- Style: {style}

Format your response as a JSON object with the following structure:
{{
  "summary": "A concise summary of the key points",
  "action_items": ["Action item 1", "Action item 2"],
  "suggested_messages": [
    {{
      "recipient": "The person to send the message to",
      "subject": "Optional subject line for emails",
      "message": "The suggested message content",
      "confidence": 0.8
    }}
  ]
}}

Output ONLY the JSON object, no markdown and no commentary."""


def build_system_prompt(profile: PreferenceProfile | None = None) -> str:
    """System instruction carrying the learned tone/length/style."""
    profile = profile or PreferenceProfile()
    return SYSTEM_PROMPT.format(tone=profile.tone, length=profile.length, style=profile.style)


# =============================================================================
# User prompt
# =============================================================================


@lru_cache(maxsize=16)
def load_prompt_template(name: str) -> str:
    """
    Load a prompt template from the prompts directory.

    Args:
        name: Template filename (e.g. "slack-summary.txt")

    Raises:
        FileNotFoundError: If the template does not exist
    """
    path = PROMPTS_DIR / name
    return path.read_text(encoding="utf-8")


def template_for_source(source: str) -> str:
    """Template text for a source; unknown sources get a generic template."""
    filename = PROMPT_TEMPLATES.get(source)
    if filename is None:
        return f"Summarize the following {source} activity.\n\n{DATA_PLACEHOLDER}\n"
    return load_prompt_template(filename)


def render_user_prompt(
    template: str,
    payload: dict[str, Any],
    context: dict[str, Any] | None = None,
) -> str:
    """
    Substitute payload plus context, as indented JSON, into the template.

    The data block is appended when the template has no placeholder.
    """
    data = {**payload, "context": context or {}}
    block = json.dumps(data, indent=2, default=str)
    if DATA_PLACEHOLDER in template:
        return template.replace(DATA_PLACEHOLDER, block)
    return f"{template.rstrip()}\n\n{block}\n"


# =============================================================================
# Output parsing
# =============================================================================

_LABEL = r"[\"']?{name}[\"']?\s*:"
_SUMMARY_LABEL = _LABEL.format(name=r"summary")
_ACTION_LABEL = _LABEL.format(name=r"action[_ ]items")
_MESSAGES_LABEL = _LABEL.format(name=r"suggested[_ ]messages")

_SUMMARY_SECTION = re.compile(
    rf"{_SUMMARY_LABEL}(.*?)(?={_ACTION_LABEL}|{_MESSAGES_LABEL}|$)",
    re.IGNORECASE | re.DOTALL,
)
_ACTION_SECTION = re.compile(
    rf"{_ACTION_LABEL}(.*?)(?={_MESSAGES_LABEL}|$)",
    re.IGNORECASE | re.DOTALL,
)
_MESSAGES_SECTION = re.compile(rf"{_MESSAGES_LABEL}(.*)$", re.IGNORECASE | re.DOTALL)

_LINE_MARKER = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")


def _section_lines(section: str) -> list[str]:
    lines = []
    for line in section.splitlines():
        text = _LINE_MARKER.sub("", line).strip()
        if text:
            lines.append(text)
    return lines


def _fallback_parse(raw: str, source: str) -> SummaryResult:
    summary_match = _SUMMARY_SECTION.search(raw)
    summary = summary_match.group(1).strip() if summary_match else ""
    if not summary:
        summary = raw.strip()

    action_match = _ACTION_SECTION.search(raw)
    action_items = _section_lines(action_match.group(1)) if action_match else []

    messages_match = _MESSAGES_SECTION.search(raw)
    messages = [
        SuggestedMessage(message=line, source=source, confidence=FALLBACK_MESSAGE_CONFIDENCE)
        for line in (_section_lines(messages_match.group(1)) if messages_match else [])
    ]

    logger.info(
        f"Extracted structured data from model response: summary length {len(summary)}, "
        f"{len(action_items)} action items, {len(messages)} suggested messages"
    )
    return SummaryResult(
        source=source,
        summary=summary,
        action_items=action_items,
        suggested_messages=messages,
        parse_degraded=True,
    )


def parse_summary_output(raw: str, source: str) -> SummaryResult:
    """
    Parse model output into a SummaryResult.

    Structured JSON (optionally fenced) is validated first; anything else
    goes through the labeled-section fallback and is flagged as degraded.
    Never raises.
    """
    raw = raw or ""
    try:
        output = parse_llm_json(raw, ModelSummaryOutput)
    except (json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.warning(f"Failed to parse model response as JSON, falling back to text extraction: {e}")
        return _fallback_parse(raw, source)

    messages = [
        m if m.source else m.model_copy(update={"source": source})
        for m in output.suggested_messages
    ]
    return SummaryResult(
        source=source,
        summary=output.summary,
        action_items=output.action_items,
        suggested_messages=messages,
    )
