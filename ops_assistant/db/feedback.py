"""Database operations for feedback and the derived analytics tables."""

from datetime import datetime
from typing import Any

from ops_assistant.core.logging import get_logger
from ops_assistant.db.supabase_client import execute, get_supabase

logger = get_logger(__name__)


def insert_feedback(data: dict[str, Any]) -> dict[str, Any]:
    """Insert a feedback row and return it."""
    supabase = get_supabase()
    rows = execute(supabase.table("feedback").insert(data), "feedback")
    if not rows:
        # Insert succeeded without a representation; echo the payload back
        logger.warning("Feedback insert returned no rows")
        return dict(data)
    return rows[0]


def list_feedback(
    summary_id: str | None = None,
    rating: str | None = None,
    since: datetime | None = None,
) -> list[dict[str, Any]]:
    """List feedback, newest first, with optional filters."""
    supabase = get_supabase()
    query = supabase.table("feedback").select("*")
    if summary_id:
        query = query.eq("summary_id", summary_id)
    if rating:
        query = query.eq("rating", rating)
    if since:
        query = query.gte("created_at", since.isoformat())
    query = query.order("created_at", desc=True)
    return execute(query, "feedback")


def insert_feedback_pattern(data: dict[str, Any]) -> None:
    supabase = get_supabase()
    execute(supabase.table("feedback_patterns").insert(data), "feedback_patterns")


def insert_edit_analysis(data: dict[str, Any]) -> None:
    supabase = get_supabase()
    execute(supabase.table("edit_analyses").insert(data), "edit_analyses")


def list_edit_analyses(limit: int = 20) -> list[dict[str, Any]]:
    """Most recent edit analyses first."""
    supabase = get_supabase()
    query = (
        supabase.table("edit_analyses")
        .select("*")
        .order("created_at", desc=True)
        .limit(limit)
    )
    return execute(query, "edit_analyses")


def insert_rejection_analysis(data: dict[str, Any]) -> None:
    supabase = get_supabase()
    execute(supabase.table("rejection_analyses").insert(data), "rejection_analyses")


def insert_analytics_event(data: dict[str, Any]) -> None:
    supabase = get_supabase()
    execute(supabase.table("feedback_analytics").insert(data), "feedback_analytics")
