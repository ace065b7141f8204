"""Lexicon-based tone/style inference over operator edits.

Deterministic by construction: fixed lexicons, fixed thresholds and a
majority vote. The same edit history always yields the same preferences.
"""

import re
from collections import Counter
from datetime import datetime
from typing import Iterable

from ops_assistant.core.schemas_feedback import EditAnalysis

UNCHANGED = "unchanged"
NEUTRAL_TONE = "neutral"
DEFAULT_LENGTH = "medium"
DEFAULT_STYLE = "professional"

# Dict order is the tie-break order for the dominant tone
TONE_LEXICONS: dict[str, tuple[str, ...]] = {
    "formal": ("therefore", "consequently", "furthermore", "thus", "hence", "regarding"),
    "casual": ("hey", "cool", "awesome", "great", "thanks", "cheers"),
    "technical": ("implement", "system", "process", "function", "data", "analysis"),
    "friendly": ("please", "appreciate", "thank you", "welcome", "happy to"),
}

SENTENCE_DELTA_CHARS = 10
BULLET_DELTA = 2
DETAIL_RATIO = 1.2

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_BULLET_GLYPHS = re.compile(r"[-*•]")


def lexicon_counts(text: str) -> dict[str, int]:
    """Number of entries from each lexicon present in ``text``."""
    lowered = (text or "").lower()
    return {
        tone: sum(1 for word in words if word in lowered)
        for tone, words in TONE_LEXICONS.items()
    }


def dominant_tone(text: str) -> str:
    best, best_count = NEUTRAL_TONE, 0
    for tone, hits in lexicon_counts(text).items():
        if hits > best_count:
            best, best_count = tone, hits
    return best


def analyze_tone_change(original: str, edited: str) -> str:
    """Return ``"<from> to <to>"`` when the dominant lexicon changed."""
    before = dominant_tone(original)
    after = dominant_tone(edited)
    if before != after:
        return f"{before} to {after}"
    return UNCHANGED


def _average_sentence_length(text: str) -> float:
    sentences = [s for s in _SENTENCE_SPLIT.split(text or "") if s.strip()]
    if not sentences:
        return 0.0
    return sum(len(s) for s in sentences) / len(sentences)


def analyze_style_change(original: str, edited: str) -> str:
    """Comma-joined style labels, or ``"unchanged"``."""
    original = original or ""
    edited = edited or ""
    changes: list[str] = []

    sentence_delta = _average_sentence_length(edited) - _average_sentence_length(original)
    if abs(sentence_delta) > SENTENCE_DELTA_CHARS:
        changes.append("longer sentences" if sentence_delta > 0 else "shorter sentences")

    original_bullets = len(_BULLET_GLYPHS.findall(original))
    edited_bullets = len(_BULLET_GLYPHS.findall(edited))
    if edited_bullets > original_bullets + BULLET_DELTA:
        changes.append("more bullet points")
    elif original_bullets > edited_bullets + BULLET_DELTA:
        changes.append("fewer bullet points")

    if len(edited) > len(original) * DETAIL_RATIO:
        changes.append("more detailed")
    elif len(original) > len(edited) * DETAIL_RATIO:
        changes.append("more concise")

    return ", ".join(changes) if changes else UNCHANGED


def build_edit_analysis(
    summary_id: str,
    original: str,
    edited: str,
    created_at: datetime | None = None,
) -> EditAnalysis:
    """Compare a suggestion with the operator's edited version."""
    original = original or ""
    edited = edited or ""
    original_length = len(original)
    edited_length = len(edited)
    delta = edited_length - original_length
    percent = (delta / original_length) * 100 if original_length > 0 else 0.0

    return EditAnalysis(
        summary_id=summary_id,
        original_length=original_length,
        edited_length=edited_length,
        length_change_percent=percent,
        tone_change=analyze_tone_change(original, edited),
        style_change=analyze_style_change(original, edited),
        created_at=created_at,
    )


def _style_labels(analysis: EditAnalysis) -> list[str]:
    if not analysis.style_change or analysis.style_change == UNCHANGED:
        return []
    return [label.strip() for label in analysis.style_change.split(",") if label.strip()]


def _majority(votes: Iterable[str]) -> str | None:
    """Most common vote; ties go to the vote seen first."""
    tally = Counter()
    first_seen: dict[str, int] = {}
    for position, vote in enumerate(votes):
        tally[vote] += 1
        first_seen.setdefault(vote, position)
    if not tally:
        return None
    return max(tally, key=lambda v: (tally[v], -first_seen[v]))


def infer_preferences(analyses: list[EditAnalysis]) -> tuple[str, str, str]:
    """
    Derive (tone, length, style) from edit analyses.

    Args:
        analyses: Most recent first; order decides tone ties

    Returns:
        Tuple of preferred tone, length band and structural style
    """
    target_tones = []
    for analysis in analyses:
        change = analysis.tone_change or UNCHANGED
        if change == UNCHANGED or " to " not in change:
            continue
        target = change.split(" to ", 1)[1].strip()
        if target:
            target_tones.append(target)
    tone = _majority(target_tones) or NEUTRAL_TONE

    labels = Counter(label for a in analyses for label in _style_labels(a))

    length = DEFAULT_LENGTH
    if labels["more detailed"] > labels["more concise"]:
        length = "detailed"
    elif labels["more concise"] > labels["more detailed"]:
        length = "concise"

    bullets = labels["more bullet points"] > labels["fewer bullet points"]
    sentences = None
    if labels["longer sentences"] > labels["shorter sentences"]:
        sentences = "longer-sentences"
    elif labels["shorter sentences"] > labels["longer sentences"]:
        sentences = "shorter-sentences"

    if bullets and sentences:
        style = f"bullet-points-with-{sentences}"
    elif bullets:
        style = "bullet-points"
    elif sentences:
        style = sentences
    else:
        style = DEFAULT_STYLE

    return tone, length, style
