"""Durable store interface consumed by the memory and orchestration layer.

Every method may raise ``StorageError``. ``StorageError.missing_relation``
marks an absent table, which callers treat as a skippable condition for the
optional analytics tables.
"""

from datetime import datetime
from typing import Any, Protocol

from ops_assistant.db import clients as clients_db
from ops_assistant.db import feedback as feedback_db
from ops_assistant.db import summaries as summaries_db


class DurableStore(Protocol):
    # Clients / projects
    def find_clients_by_names(self, names: list[str]) -> list[dict[str, Any]]: ...
    def get_client(self, client_id: str) -> dict[str, Any] | None: ...
    def get_client_by_name(self, name: str) -> dict[str, Any] | None: ...
    def create_client(self, data: dict[str, Any]) -> dict[str, Any] | None: ...
    def update_client(self, client_id: str, data: dict[str, Any]) -> dict[str, Any] | None: ...
    def touch_clients(self, client_ids: list[str], at: datetime | None = None) -> int: ...
    def get_project(self, project_id: str) -> dict[str, Any] | None: ...
    def list_projects_for_client(self, client_id: str) -> list[dict[str, Any]]: ...

    # Feedback
    def insert_feedback(self, data: dict[str, Any]) -> dict[str, Any]: ...
    def list_feedback(
        self,
        summary_id: str | None = None,
        rating: str | None = None,
        since: datetime | None = None,
    ) -> list[dict[str, Any]]: ...
    def insert_feedback_pattern(self, data: dict[str, Any]) -> None: ...
    def insert_edit_analysis(self, data: dict[str, Any]) -> None: ...
    def list_edit_analyses(self, limit: int = 20) -> list[dict[str, Any]]: ...
    def insert_rejection_analysis(self, data: dict[str, Any]) -> None: ...
    def insert_analytics_event(self, data: dict[str, Any]) -> None: ...

    # Summaries
    def insert_summary(self, data: dict[str, Any]) -> dict[str, Any] | None: ...
    def get_summary(self, summary_id: str) -> dict[str, Any] | None: ...
    def get_summaries_by_ids(self, summary_ids: list[str]) -> list[dict[str, Any]]: ...
    def list_summaries(self, source: str | None = None, limit: int = 20) -> list[dict[str, Any]]: ...
    def update_email_suggested_reply(self, message_id: str, reply: str) -> None: ...


class SupabaseStore:
    """``DurableStore`` backed by the Supabase table modules."""

    find_clients_by_names = staticmethod(clients_db.find_clients_by_names)
    get_client = staticmethod(clients_db.get_client)
    get_client_by_name = staticmethod(clients_db.get_client_by_name)
    create_client = staticmethod(clients_db.create_client)
    update_client = staticmethod(clients_db.update_client)
    touch_clients = staticmethod(clients_db.touch_clients)
    get_project = staticmethod(clients_db.get_project)
    list_projects_for_client = staticmethod(clients_db.list_projects_for_client)

    insert_feedback = staticmethod(feedback_db.insert_feedback)
    list_feedback = staticmethod(feedback_db.list_feedback)
    insert_feedback_pattern = staticmethod(feedback_db.insert_feedback_pattern)
    insert_edit_analysis = staticmethod(feedback_db.insert_edit_analysis)
    list_edit_analyses = staticmethod(feedback_db.list_edit_analyses)
    insert_rejection_analysis = staticmethod(feedback_db.insert_rejection_analysis)
    insert_analytics_event = staticmethod(feedback_db.insert_analytics_event)

    insert_summary = staticmethod(summaries_db.insert_summary)
    get_summary = staticmethod(summaries_db.get_summary)
    get_summaries_by_ids = staticmethod(summaries_db.get_summaries_by_ids)
    list_summaries = staticmethod(summaries_db.list_summaries)
    update_email_suggested_reply = staticmethod(summaries_db.update_email_suggested_reply)
