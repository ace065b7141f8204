"""Resolve the client entities referenced by a batch of source records.

Names are extracted heuristically (capitalized runs of tokens), looked up in
the entity cache first and then in the durable store in a single batched
query. Every resolved client gets a background recency bump.
"""

import asyncio
import re
import string
from datetime import datetime, timezone
from typing import Any, Iterable

from ops_assistant.core.errors import StorageError, ValidationError
from ops_assistant.core.logging import get_logger
from ops_assistant.core.schemas_context import Client, ContextBundle, Project
from ops_assistant.db.context_cache import ContextCache
from ops_assistant.db.store import DurableStore

logger = get_logger(__name__)

STOP_WORDS = frozenset(
    {
        "The", "A", "An", "And", "But", "Or", "For", "Nor", "As", "At",
        "By", "From", "In", "Into", "Near", "Of", "On", "To", "With",
        "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
        "January", "February", "March", "April", "May", "June", "July",
        "August", "September", "October", "November", "December",
        "I", "You", "He", "She", "It", "We", "They",
    }
)

TEXT_FIELDS = ("text", "subject", "body")

_PUNCTUATION = re.compile(r"[^\w\s]")


def _clean_token(token: str) -> str:
    return _PUNCTUATION.sub("", token)


def _is_name_token(word: str) -> bool:
    return len(word) > 1 and word[0] in string.ascii_uppercase and word not in STOP_WORDS


def extract_names_from_text(text: str) -> list[str]:
    """
    Extract candidate organization names from free text.

    Adjacent capitalized tokens are merged, so "Acme Corp" is one name.
    Sentence-initial words are over-matched; the store lookup filters them.
    """
    names: list[str] = []
    current: list[str] = []
    for raw in (text or "").split():
        word = _clean_token(raw)
        if _is_name_token(word):
            current.append(word)
            continue
        if current:
            names.append(" ".join(current))
            current = []
    if current:
        names.append(" ".join(current))
    return names


def extract_client_names(records: Iterable[dict[str, Any]]) -> list[str]:
    """Unique candidate names across records, in first-seen order."""
    seen: dict[str, None] = {}
    for record in records or []:
        if not isinstance(record, dict):
            continue

        for field in TEXT_FIELDS:
            value = record.get(field)
            if isinstance(value, str) and value:
                for name in extract_names_from_text(value):
                    seen.setdefault(name, None)

        # Harvest entries carry the client name verbatim
        for key in ("client_details", "client"):
            nested = record.get(key)
            if isinstance(nested, dict) and nested.get("name"):
                seen.setdefault(str(nested["name"]).strip(), None)

    return [name for name in seen if name]


class ContextResolver:
    """Cache-first client resolution plus client/project administration."""

    def __init__(self, cache: ContextCache, store: DurableStore):
        self.cache = cache
        self._store = store
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, records: list[dict[str, Any]]) -> ContextBundle:
        """
        Resolve the clients referenced by ``records``.

        Args:
            records: Raw source records (Slack messages, tickets, emails, ...)

        Returns:
            ContextBundle with the extracted names and resolved clients
        """
        if not records:
            return ContextBundle()

        names = extract_client_names(records)
        if not names:
            return ContextBundle()

        pool = self.cache.clients
        stale = pool.is_stale
        cached = pool.get_by_name(names)

        if stale:
            logger.debug("Client cache is stale; querying store for all names")
            missing = list(names)
        else:
            found = {c.name for c in cached}
            missing = [n for n in names if n not in found]

        fetched: list[Client] = []
        if missing:
            try:
                rows = await asyncio.to_thread(self._store.find_clients_by_names, missing)
                fetched = [Client.model_validate(row) for row in rows]
            except StorageError as e:
                logger.error(f"Error fetching clients from store: {e}")
                # Degrade to whatever the cache still holds
                return ContextBundle(names=names, clients=_dedupe(cached))
            pool.put(fetched)

        # Store hits take precedence over cached copies
        clients = _dedupe(fetched + cached)

        logger.debug(
            f"Resolved {len(clients)} clients from {len(names)} names "
            f"({len(cached)} cached, {len(fetched)} fetched)"
        )

        if clients:
            self._schedule_touch([c.id for c in clients])

        return ContextBundle(names=names, clients=clients)

    def _schedule_touch(self, client_ids: list[str]) -> None:
        task = asyncio.create_task(self._touch(client_ids))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _touch(self, client_ids: list[str]) -> None:
        at = datetime.now(timezone.utc)
        try:
            await asyncio.to_thread(self._store.touch_clients, client_ids, at)
        except StorageError as e:
            logger.warning(f"Failed to update last_mentioned for {len(client_ids)} clients: {e}")
            return
        except Exception:
            logger.exception("Unexpected error updating last_mentioned")
            return
        self.cache.clients.touch_referenced(client_ids, at)

    async def wait_for_background(self) -> None:
        """Wait for pending recency bumps."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_client(self, client_id: str) -> Client | None:
        cached = self.cache.clients.get(client_id)
        if cached is not None:
            return cached
        try:
            row = await asyncio.to_thread(self._store.get_client, client_id)
        except StorageError as e:
            logger.error(f"Error fetching client {client_id}: {e}")
            return None
        if not row:
            return None
        client = Client.model_validate(row)
        self.cache.clients.put([client])
        return client

    async def get_project(self, project_id: str) -> Project | None:
        cached = self.cache.projects.get(project_id)
        if cached is not None:
            return cached
        try:
            row = await asyncio.to_thread(self._store.get_project, project_id)
        except StorageError as e:
            logger.error(f"Error fetching project {project_id}: {e}")
            return None
        if not row:
            return None
        project = Project.model_validate(row)
        self.cache.projects.put([project])
        return project

    async def get_projects_for_client(self, client_id: str) -> list[Project]:
        try:
            rows = await asyncio.to_thread(self._store.list_projects_for_client, client_id)
        except StorageError as e:
            logger.error(f"Error fetching projects for client {client_id}: {e}")
            return []
        projects = [Project.model_validate(row) for row in rows]
        self.cache.projects.put(projects)
        return projects

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def create_client(self, name: str, profile: dict[str, Any] | None = None) -> Client | None:
        """
        Create a client, or return the existing one on a name conflict.

        Raises:
            ValidationError: If name is empty
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Client name is required")

        try:
            row = await asyncio.to_thread(
                self._store.create_client, {"name": name, "profile": profile or {}}
            )
        except StorageError as e:
            if not e.unique_violation:
                logger.error(f"Error creating client {name}: {e}")
                return None
            logger.info(f"Client {name} already exists; returning existing record")
            try:
                row = await asyncio.to_thread(self._store.get_client_by_name, name)
            except StorageError as lookup_error:
                logger.error(f"Error fetching existing client {name}: {lookup_error}")
                return None

        if not row:
            return None
        client = Client.model_validate(row)
        self.cache.clients.put([client])
        return client

    async def update_client(self, client_id: str, updates: dict[str, Any]) -> Client | None:
        """Apply operator edits; the cached copy is merged, not re-timed."""
        payload = {k: v for k, v in (updates or {}).items() if v is not None}
        if not payload:
            return await self.get_client(client_id)

        try:
            row = await asyncio.to_thread(self._store.update_client, client_id, payload)
        except StorageError as e:
            logger.error(f"Error updating client {client_id}: {e}")
            return None
        if not row:
            return None

        client = Client.model_validate(row)
        if self.cache.clients.update(client_id, client.model_dump(exclude={"id"})) is None:
            self.cache.clients.put([client])
        return client

    def clear_cache(self, kind: str | None = None) -> list[str]:
        """Clear one pool or all pools; raises ValidationError for an unknown kind."""
        try:
            return self.cache.clear(kind)
        except KeyError as e:
            raise ValidationError(f"Unknown cache kind: {kind}") from e

    def prune_cache(self) -> dict[str, int]:
        pruned = self.cache.prune()
        logger.info(f"Pruned context cache: {pruned}")
        return pruned


def _dedupe(clients: Iterable[Client]) -> list[Client]:
    seen: dict[str, Client] = {}
    for client in clients:
        seen.setdefault(client.id, client)
    return list(seen.values())
