"""Fake in-memory durable store for behavioral testing."""

from datetime import datetime, timezone
from typing import Any, Dict, List
from uuid import uuid4

from ops_assistant.core.errors import StorageError, UNDEFINED_TABLE_CODE, UNIQUE_VIOLATION_CODE


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FakeStore:
    """In-memory ``DurableStore`` with call recording and failure injection."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all tables to an empty state."""
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            "clients": [],
            "projects": [],
            "summaries": [],
            "feedback": [],
            "feedback_patterns": [],
            "edit_analyses": [],
            "rejection_analyses": [],
            "feedback_analytics": [],
            "emails": [],
        }
        self.calls: List[tuple] = []
        self.failures: Dict[str, StorageError] = {}
        self.missing_tables: set[str] = set()

    # Failure injection
    def fail(self, method: str, code: str | None = None, table: str | None = None):
        """Make ``method`` raise StorageError until cleared."""
        self.failures[method] = StorageError(f"injected failure in {method}", table=table, code=code)

    def drop_table(self, table: str):
        """Make every access to ``table`` fail as a missing relation."""
        self.missing_tables.add(table)

    def _enter(self, method: str, table: str, *args):
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]
        if table in self.missing_tables:
            raise StorageError(
                f'relation "{table}" does not exist', table=table, code=UNDEFINED_TABLE_CODE
            )

    def call_count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    def _insert(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        row = {"id": str(uuid4()), "created_at": _now(), **data}
        self.tables[table].append(row)
        return dict(row)

    # Seeding helpers
    def add_client(self, name: str, **fields) -> Dict[str, Any]:
        return self._insert("clients", {"name": name, "profile": {}, "last_mentioned": None, **fields})

    def add_project(self, name: str, client_id: str, **fields) -> Dict[str, Any]:
        return self._insert(
            "projects", {"name": name, "client_id": client_id, "updated_at": _now(), **fields}
        )

    def add_summary(self, source: str, summary: str, **fields) -> Dict[str, Any]:
        return self._insert(
            "summaries",
            {"source": source, "summary": summary, "action_items": [], "suggested_messages": [], **fields},
        )

    # Clients / projects
    def find_clients_by_names(self, names: List[str]) -> List[Dict[str, Any]]:
        self._enter("find_clients_by_names", "clients", list(names))
        wanted = set(names)
        return [dict(c) for c in self.tables["clients"] if c["name"] in wanted]

    def get_client(self, client_id: str) -> Dict[str, Any] | None:
        self._enter("get_client", "clients", client_id)
        return next((dict(c) for c in self.tables["clients"] if c["id"] == client_id), None)

    def get_client_by_name(self, name: str) -> Dict[str, Any] | None:
        self._enter("get_client_by_name", "clients", name)
        return next((dict(c) for c in self.tables["clients"] if c["name"] == name), None)

    def create_client(self, data: Dict[str, Any]) -> Dict[str, Any] | None:
        self._enter("create_client", "clients", data)
        if any(c["name"] == data["name"] for c in self.tables["clients"]):
            raise StorageError(
                "duplicate key value violates unique constraint",
                table="clients",
                code=UNIQUE_VIOLATION_CODE,
            )
        now = _now()
        return self._insert(
            "clients",
            {
                "name": data["name"],
                "profile": data.get("profile") or {},
                "last_mentioned": now,
                "updated_at": now,
            },
        )

    def update_client(self, client_id: str, data: Dict[str, Any]) -> Dict[str, Any] | None:
        self._enter("update_client", "clients", client_id, data)
        for client in self.tables["clients"]:
            if client["id"] == client_id:
                client.update(data)
                client["updated_at"] = _now()
                return dict(client)
        return None

    def touch_clients(self, client_ids: List[str], at: datetime | None = None) -> int:
        self._enter("touch_clients", "clients", list(client_ids))
        stamp = (at or datetime.now(timezone.utc)).isoformat()
        touched = 0
        for client in self.tables["clients"]:
            if client["id"] in client_ids:
                client["last_mentioned"] = stamp
                touched += 1
        return touched

    def get_project(self, project_id: str) -> Dict[str, Any] | None:
        self._enter("get_project", "projects", project_id)
        return next((dict(p) for p in self.tables["projects"] if p["id"] == project_id), None)

    def list_projects_for_client(self, client_id: str) -> List[Dict[str, Any]]:
        self._enter("list_projects_for_client", "projects", client_id)
        return [dict(p) for p in self.tables["projects"] if p["client_id"] == client_id]

    # Feedback
    def insert_feedback(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._enter("insert_feedback", "feedback", data)
        return self._insert("feedback", data)

    def list_feedback(
        self,
        summary_id: str | None = None,
        rating: str | None = None,
        since: datetime | None = None,
    ) -> List[Dict[str, Any]]:
        self._enter("list_feedback", "feedback", summary_id, rating)
        rows = self.tables["feedback"]
        if summary_id:
            rows = [r for r in rows if r["summary_id"] == summary_id]
        if rating:
            rows = [r for r in rows if r["rating"] == rating]
        if since:
            rows = [r for r in rows if datetime.fromisoformat(r["created_at"]) >= since]
        return [dict(r) for r in reversed(rows)]

    def insert_feedback_pattern(self, data: Dict[str, Any]) -> None:
        self._enter("insert_feedback_pattern", "feedback_patterns", data)
        self._insert("feedback_patterns", data)

    def insert_edit_analysis(self, data: Dict[str, Any]) -> None:
        self._enter("insert_edit_analysis", "edit_analyses", data)
        self._insert("edit_analyses", data)

    def list_edit_analyses(self, limit: int = 20) -> List[Dict[str, Any]]:
        self._enter("list_edit_analyses", "edit_analyses", limit)
        return [dict(r) for r in reversed(self.tables["edit_analyses"])][:limit]

    def insert_rejection_analysis(self, data: Dict[str, Any]) -> None:
        self._enter("insert_rejection_analysis", "rejection_analyses", data)
        self._insert("rejection_analyses", data)

    def insert_analytics_event(self, data: Dict[str, Any]) -> None:
        self._enter("insert_analytics_event", "feedback_analytics", data)
        self._insert("feedback_analytics", data)

    # Summaries
    def insert_summary(self, data: Dict[str, Any]) -> Dict[str, Any] | None:
        self._enter("insert_summary", "summaries", data)
        return self._insert("summaries", data)

    def get_summary(self, summary_id: str) -> Dict[str, Any] | None:
        self._enter("get_summary", "summaries", summary_id)
        return next((dict(s) for s in self.tables["summaries"] if s["id"] == summary_id), None)

    def get_summaries_by_ids(self, summary_ids: List[str]) -> List[Dict[str, Any]]:
        self._enter("get_summaries_by_ids", "summaries", list(summary_ids))
        return [
            {"id": s["id"], "source": s["source"]}
            for s in self.tables["summaries"]
            if s["id"] in summary_ids
        ]

    def list_summaries(self, source: str | None = None, limit: int = 20) -> List[Dict[str, Any]]:
        self._enter("list_summaries", "summaries", source, limit)
        rows = [s for s in reversed(self.tables["summaries"]) if not source or s["source"] == source]
        return [dict(r) for r in rows[:limit]]

    def update_email_suggested_reply(self, message_id: str, reply: str) -> None:
        self._enter("update_email_suggested_reply", "emails", message_id, reply)
        for email in self.tables["emails"]:
            if email.get("message_id") == message_id:
                email["suggested_reply"] = reply
