"""Database operations for clients and projects tables."""

from datetime import datetime, timezone
from typing import Any

from ops_assistant.core.logging import get_logger
from ops_assistant.db.supabase_client import execute, get_supabase

logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def find_clients_by_names(names: list[str]) -> list[dict[str, Any]]:
    """Batch lookup of clients by exact name."""
    if not names:
        return []
    supabase = get_supabase()
    query = supabase.table("clients").select("*").in_("name", names)
    return execute(query, "clients")


def get_client(client_id: str) -> dict[str, Any] | None:
    """Get a single client by ID."""
    supabase = get_supabase()
    query = supabase.table("clients").select("*").eq("id", client_id).limit(1)
    rows = execute(query, "clients")
    return rows[0] if rows else None


def get_client_by_name(name: str) -> dict[str, Any] | None:
    """Get a single client by its unique name."""
    supabase = get_supabase()
    query = supabase.table("clients").select("*").eq("name", name).limit(1)
    rows = execute(query, "clients")
    return rows[0] if rows else None


def create_client(data: dict[str, Any]) -> dict[str, Any] | None:
    """Create a new client; ``last_mentioned`` starts at creation time."""
    supabase = get_supabase()
    now = _now_iso()
    row = {
        "name": data["name"],
        "profile": data.get("profile") or {},
        "last_mentioned": now,
        "created_at": now,
        "updated_at": now,
    }
    rows = execute(supabase.table("clients").insert(row), "clients")
    return rows[0] if rows else None


def update_client(client_id: str, data: dict[str, Any]) -> dict[str, Any] | None:
    """Update a client, stamping ``updated_at``."""
    supabase = get_supabase()
    payload = {**data, "updated_at": _now_iso()}
    query = supabase.table("clients").update(payload).eq("id", client_id)
    rows = execute(query, "clients")
    return rows[0] if rows else None


def touch_clients(client_ids: list[str], at: datetime | None = None) -> int:
    """Set ``last_mentioned`` for a batch of clients in one update."""
    if not client_ids:
        return 0
    stamp = (at or datetime.now(timezone.utc)).isoformat()
    supabase = get_supabase()
    query = (
        supabase.table("clients")
        .update({"last_mentioned": stamp, "updated_at": stamp})
        .in_("id", client_ids)
    )
    return len(execute(query, "clients"))


def get_project(project_id: str) -> dict[str, Any] | None:
    """Get a single project by ID."""
    supabase = get_supabase()
    query = supabase.table("projects").select("*").eq("id", project_id).limit(1)
    rows = execute(query, "projects")
    return rows[0] if rows else None


def list_projects_for_client(client_id: str) -> list[dict[str, Any]]:
    """List projects linked to a client, most recently updated first."""
    supabase = get_supabase()
    query = (
        supabase.table("projects")
        .select("*")
        .eq("client_id", client_id)
        .order("updated_at", desc=True)
    )
    return execute(query, "projects")
