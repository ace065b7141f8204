"""Operator feedback storage and preference learning.

Verdicts are stored through the durable store. Edits are analysed for
tone/style deltas and rejections are annotated with how many recent
same-source summaries were also rejected. The aggregate ``PreferenceProfile``
is cached for a short TTL and invalidated by every stored verdict.
"""

import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from time import monotonic
from typing import Any, Callable

from ops_assistant.core.edit_analysis import build_edit_analysis, infer_preferences
from ops_assistant.core.errors import StorageError, ValidationError
from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_feedback import (
    EditAnalysis,
    FeedbackRecord,
    FeedbackStats,
    PreferenceProfile,
    RejectionAnalysis,
    Verdict,
)
from ops_assistant.db.store import DurableStore

logger = get_logger(__name__)

DEFAULT_PROFILE_TTL_SECONDS = 5 * 60
DEFAULT_ANALYSIS_LIMIT = 20
DEFAULT_WINDOW_DAYS = 30
RECENT_SUMMARIES_FOR_REJECTION = 10

_PATTERN_TYPES = {
    Verdict.APPROVED: "approval",
    Verdict.EDITED: "edit",
    Verdict.REJECTED: "rejection",
}


def normalize_verdict(value: Any) -> Verdict:
    """Map a caller-supplied verdict to ``Verdict``; unknown values become approved."""
    if isinstance(value, Verdict):
        return value
    try:
        return Verdict(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Invalid rating type: {value!r}. Using 'approved' as default.")
        return Verdict.APPROVED


def _rate(part: int, total: int) -> float:
    return (part / total) * 100 if total > 0 else 0.0


class FeedbackLearner:
    """Feedback store plus the TTL-cached preference profile."""

    def __init__(
        self,
        store: DurableStore,
        profile_ttl_seconds: float = DEFAULT_PROFILE_TTL_SECONDS,
        analysis_limit: int = DEFAULT_ANALYSIS_LIMIT,
        window_days: int = DEFAULT_WINDOW_DAYS,
        clock: Callable[[], float] = monotonic,
    ):
        self._store = store
        self.profile_ttl_seconds = profile_ttl_seconds
        self.analysis_limit = analysis_limit
        self.window_days = window_days
        self._clock = clock

        self._lock = threading.Lock()
        self._profile: PreferenceProfile | None = None
        self._profile_at = 0.0
        self._generation = 0
        self.recompute_count = 0

    # ------------------------------------------------------------------
    # Feedback writes
    # ------------------------------------------------------------------

    def store_feedback(
        self,
        summary_id: str,
        verdict: Any,
        comment: str | None = None,
        user_id: str | None = None,
    ) -> FeedbackRecord | None:
        """
        Store an operator verdict on a summary.

        Args:
            summary_id: Summary the verdict applies to
            verdict: approved/edited/rejected; anything else is stored as approved
            comment: Free-text comment, or the edited body for ``edited``
            user_id: Optional operator id

        Returns:
            The stored FeedbackRecord, or None if the store write failed

        Raises:
            ValidationError: If summary_id is empty
        """
        if not summary_id or not str(summary_id).strip():
            raise ValidationError("summary_id is required")

        rating = normalize_verdict(verdict)
        data: dict[str, Any] = {
            "summary_id": summary_id,
            "rating": rating.value,
            "comment": comment or "",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if user_id:
            data["user_id"] = user_id

        logger.debug(f"Storing feedback for summary {summary_id}: {rating.value}")
        try:
            row = self._store.insert_feedback(data)
        except StorageError as e:
            logger.error(f"Error storing feedback for summary {summary_id}: {e}")
            return None

        record = FeedbackRecord.model_validate({**data, **(row or {})})
        self.invalidate_preferences()

        self._record_derived(record)
        logger.debug(f"Feedback stored successfully with ID: {record.id}")
        return record

    def _record_derived(self, record: FeedbackRecord) -> None:
        """Best-effort pattern, analysis and analytics rows for a verdict."""
        try:
            summary = self._store.get_summary(record.summary_id)
        except StorageError as e:
            logger.error(f"Error fetching summary {record.summary_id}: {e}")
            return

        if not summary:
            logger.warning(f"Summary {record.summary_id} not found; skipping feedback analysis")
            return

        self._best_effort(
            "feedback pattern",
            self._store.insert_feedback_pattern,
            {
                "summary_id": record.summary_id,
                "rating": record.rating.value,
                "source": summary.get("source"),
                "pattern_type": _PATTERN_TYPES[record.rating],
                "content": summary.get("summary"),
                "user_edit": record.comment or None,
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )

        if record.rating == Verdict.EDITED and record.comment:
            analysis = self.analyze_edit(summary, record.comment)
            if analysis is not None:
                self._best_effort(
                    "edit analysis",
                    self._store.insert_edit_analysis,
                    analysis.model_dump(mode="json"),
                )

        if record.rating == Verdict.REJECTED:
            rejection = self.analyze_rejection(summary)
            if rejection is not None:
                self._best_effort(
                    "rejection analysis",
                    self._store.insert_rejection_analysis,
                    rejection.model_dump(mode="json"),
                )

        self._best_effort(
            "feedback analytics",
            self._store.insert_analytics_event,
            {
                "summary_id": record.summary_id,
                "event_type": "feedback",
                "source": summary.get("source"),
                "rating": record.rating.value,
                "has_comment": bool(record.comment),
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    def _best_effort(self, label: str, write: Callable[[dict[str, Any]], None], data: dict[str, Any]) -> None:
        try:
            write(data)
        except StorageError as e:
            if e.missing_relation:
                logger.warning(f"{e.table} table does not exist. Skipping {label} storage.")
            else:
                logger.error(f"Error storing {label}: {e}")
        except Exception:
            logger.exception(f"Unexpected error storing {label}")

    def analyze_edit(self, summary: dict[str, Any], edited_text: str) -> EditAnalysis | None:
        """Derive an EditAnalysis from a stored summary and its edited body."""
        if not summary.get("id") or not edited_text:
            return None
        try:
            analysis = build_edit_analysis(
                summary_id=summary["id"],
                original=summary.get("summary") or "",
                edited=edited_text,
                created_at=datetime.now(timezone.utc),
            )
        except Exception:
            logger.exception(f"Edit analysis failed for summary {summary['id']}")
            return None

        logger.debug(
            f"Edit analysis for summary {analysis.summary_id}: "
            f"length change {analysis.length_change_percent:.2f}%, "
            f"tone {analysis.tone_change}, style {analysis.style_change}"
        )
        return analysis

    def analyze_rejection(self, summary: dict[str, Any]) -> RejectionAnalysis | None:
        """Count recent same-source summaries that were also rejected."""
        source = summary.get("source")
        try:
            recent = self._store.list_summaries(source=source, limit=RECENT_SUMMARIES_FOR_REJECTION)
            similar = 0
            for other in recent:
                if other.get("id") == summary.get("id"):
                    continue
                rejected = self._store.list_feedback(
                    summary_id=other.get("id"), rating=Verdict.REJECTED.value
                )
                if rejected:
                    similar += 1
        except StorageError as e:
            logger.error(f"Error fetching recent summaries for source {source}: {e}")
            return None

        logger.debug(f"Rejection analysis for summary {summary.get('id')}: {similar} similar rejections")
        return RejectionAnalysis(
            summary_id=summary["id"],
            source=source,
            content=summary.get("summary") or "",
            similar_rejections=similar,
            created_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_feedback_history(self, summary_id: str) -> list[FeedbackRecord]:
        """All feedback on a summary, newest first."""
        if not summary_id:
            return []
        try:
            rows = self._store.list_feedback(summary_id=summary_id)
        except StorageError as e:
            logger.error(f"Error fetching feedback history for summary {summary_id}: {e}")
            return []
        return [FeedbackRecord.model_validate(row) for row in rows]

    def get_feedback_stats(self, days: int | None = None) -> FeedbackStats:
        """Verdict counts, rates and distributions over the trailing window."""
        days = self.window_days if days is None else days
        since = datetime.now(timezone.utc) - timedelta(days=days)
        try:
            rows = self._store.list_feedback(since=since)
        except StorageError as e:
            logger.error(f"Error fetching feedback stats: {e}")
            return FeedbackStats()

        if not rows:
            return FeedbackStats()

        verdicts = Counter(normalize_verdict(r.get("rating")) for r in rows)
        total = len(rows)

        summary_ids = sorted({r["summary_id"] for r in rows if r.get("summary_id")})
        sources_by_summary: dict[str, str] = {}
        try:
            for summary in self._store.get_summaries_by_ids(summary_ids):
                if summary.get("source"):
                    sources_by_summary[summary["id"]] = summary["source"]
        except StorageError as e:
            logger.warning(f"Error fetching summary sources for feedback stats: {e}")

        sources: Counter = Counter()
        time_distribution: Counter = Counter()
        for r in rows:
            source = sources_by_summary.get(r.get("summary_id"))
            if source:
                sources[source] += 1
            created = r.get("created_at")
            if created:
                time_distribution[str(created)[:10]] += 1

        stats = FeedbackStats(
            total=total,
            approved=verdicts[Verdict.APPROVED],
            edited=verdicts[Verdict.EDITED],
            rejected=verdicts[Verdict.REJECTED],
            approval_rate=_rate(verdicts[Verdict.APPROVED], total),
            edit_rate=_rate(verdicts[Verdict.EDITED], total),
            rejection_rate=_rate(verdicts[Verdict.REJECTED], total),
            sources=dict(sources),
            time_distribution=dict(time_distribution),
        )
        logger.debug(
            f"Feedback stats: {stats.approved} approved, {stats.edited} edited, "
            f"{stats.rejected} rejected"
        )
        return stats

    # ------------------------------------------------------------------
    # Preference profile
    # ------------------------------------------------------------------

    def invalidate_preferences(self) -> None:
        with self._lock:
            self._profile = None
            self._generation += 1

    def get_preference_profile(self) -> PreferenceProfile:
        """Cached profile if younger than the TTL, otherwise a fresh recompute."""
        with self._lock:
            if (
                self._profile is not None
                and self._clock() - self._profile_at < self.profile_ttl_seconds
            ):
                logger.debug("Using cached preference profile")
                return self._profile
            generation = self._generation

        # Compute outside the lock to avoid blocking
        profile = self._compute_profile()

        with self._lock:
            # A verdict stored mid-recompute makes this result stale
            if self._generation == generation:
                self._profile = profile
                self._profile_at = self._clock()
        return profile

    def _compute_profile(self) -> PreferenceProfile:
        self.recompute_count += 1
        stats = self.get_feedback_stats(self.window_days)

        analyses: list[EditAnalysis] = []
        try:
            rows = self._store.list_edit_analyses(limit=self.analysis_limit)
            analyses = [EditAnalysis.model_validate(row) for row in rows]
        except StorageError as e:
            if e.missing_relation:
                logger.warning("edit_analyses table does not exist. Using default preferences.")
            else:
                logger.warning(f"Error loading edit analyses: {e}")

        tone, length, style = infer_preferences(analyses)
        logger.debug(f"Preference profile computed: tone={tone}, length={length}, style={style}")

        return PreferenceProfile(
            tone=tone,
            length=length,
            style=style,
            approval_rate=stats.approval_rate,
            edit_rate=stats.edit_rate,
            rejection_rate=stats.rejection_rate,
            sources=stats.sources,
            time_distribution=stats.time_distribution,
            analyses_considered=len(analyses),
            computed_at=datetime.now(timezone.utc),
        )
