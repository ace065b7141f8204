"""Database operations for summaries and stored emails."""

from typing import Any

from ops_assistant.db.supabase_client import execute, get_supabase


def insert_summary(data: dict[str, Any]) -> dict[str, Any] | None:
    """Insert a summary row and return it (with its generated id)."""
    supabase = get_supabase()
    rows = execute(supabase.table("summaries").insert(data), "summaries")
    return rows[0] if rows else None


def get_summary(summary_id: str) -> dict[str, Any] | None:
    supabase = get_supabase()
    query = supabase.table("summaries").select("*").eq("id", summary_id).limit(1)
    rows = execute(query, "summaries")
    return rows[0] if rows else None


def get_summaries_by_ids(summary_ids: list[str]) -> list[dict[str, Any]]:
    """Batch lookup used for per-source feedback statistics."""
    if not summary_ids:
        return []
    supabase = get_supabase()
    query = supabase.table("summaries").select("id, source").in_("id", summary_ids)
    return execute(query, "summaries")


def list_summaries(source: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
    """Most recent summaries first, optionally for a single source."""
    supabase = get_supabase()
    query = supabase.table("summaries").select("*")
    if source:
        query = query.eq("source", source)
    query = query.order("created_at", desc=True).limit(limit)
    return execute(query, "summaries")


def update_email_suggested_reply(message_id: str, reply: str) -> None:
    """Attach a suggested reply to a stored email for operator review."""
    supabase = get_supabase()
    query = (
        supabase.table("emails")
        .update({"suggested_reply": reply})
        .eq("message_id", message_id)
    )
    execute(query, "emails")
