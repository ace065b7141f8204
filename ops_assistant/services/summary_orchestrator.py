"""Summary orchestration across data sources.

Coordinates the full pipeline for one batch: context resolution → preference
profile → prompt rendering → model call → parsing → persistence. Per-source
passes run concurrently and are then folded into a combined summary without
another model call.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from ops_assistant.chains.summarize_activity import (
    DEFAULT_EMPTY_MESSAGE,
    EMPTY_MESSAGES,
    PAYLOAD_KEYS,
    build_system_prompt,
    parse_summary_output,
    render_user_prompt,
    template_for_source,
)
from ops_assistant.core.context_resolver import ContextResolver
from ops_assistant.core.errors import StorageError
from ops_assistant.core.feedback_learner import FeedbackLearner
from ops_assistant.core.llm import ModelClient
from ops_assistant.core.logging import get_logger, log_with_context
from ops_assistant.core.schemas_summary import (
    MultiSourceSummary,
    SuggestedMessage,
    SummaryResult,
)
from ops_assistant.db.store import DurableStore

logger = get_logger(__name__)

COMBINED_SOURCE = "combined"
RECENT_SOURCE = "all"
# Composite rows are never folded into another composite
COMPOSITE_SOURCES = frozenset({COMBINED_SOURCE, RECENT_SOURCE})


class SummaryOrchestrator:
    """Runs summaries per source and across sources."""

    def __init__(
        self,
        resolver: ContextResolver,
        learner: FeedbackLearner,
        model_client: ModelClient,
        store: DurableStore,
    ):
        self.resolver = resolver
        self.learner = learner
        self.model_client = model_client
        self._store = store

    async def summarize(
        self,
        source: str,
        template: str,
        payload: dict[str, Any],
        context: dict[str, Any] | None = None,
    ) -> SummaryResult:
        """
        Summarize one payload with the model.

        Args:
            source: Data source label (slack, zendesk, harvest, email, ...)
            template: Prompt template with a {{DATA}} placeholder
            payload: Source records keyed for the prompt
            context: Resolved entity context

        Returns:
            SummaryResult (``id`` is None when persistence failed)

        Raises:
            ModelUnavailableError: If the model endpoint failed on every attempt
        """
        profile = await asyncio.to_thread(self.learner.get_preference_profile)

        system_prompt = build_system_prompt(profile)
        user_prompt = render_user_prompt(template, payload, context)

        log_with_context(logger, logging.INFO, "Requesting summary from model", source=source)
        raw = await self.model_client.complete(system_prompt, user_prompt)

        result = parse_summary_output(raw, source)
        if result.parse_degraded:
            logger.warning(f"Model output for {source} was not structured; used text fallback")

        return await self._persist(result)

    async def _persist(self, result: SummaryResult) -> SummaryResult:
        row = {**result.to_row(), "created_at": datetime.now(timezone.utc).isoformat()}
        try:
            stored = await asyncio.to_thread(self._store.insert_summary, row)
        except StorageError as e:
            logger.error(f"Error storing {result.source} summary: {e}")
            return result
        except Exception:
            logger.exception(f"Unexpected error storing {result.source} summary")
            return result

        if not stored:
            return result
        return SummaryResult.model_validate(
            {
                **result.model_dump(),
                "id": str(stored["id"]) if stored.get("id") is not None else None,
                "created_at": stored.get("created_at") or row["created_at"],
            }
        )

    async def summarize_source(self, source: str, records: list[dict[str, Any]]) -> SummaryResult:
        """Resolve context for ``records`` and summarize them."""
        if not records:
            return SummaryResult(
                source=source,
                summary=EMPTY_MESSAGES.get(source, DEFAULT_EMPTY_MESSAGE),
            )

        bundle = await self.resolver.resolve(records)
        template = template_for_source(source)
        payload = {PAYLOAD_KEYS.get(source, "records"): records}

        result = await self.summarize(source, template, payload, bundle.to_prompt_context())

        if source == "email" and result.suggested_messages:
            await self._attach_email_replies(records, result.suggested_messages)

        return result

    async def summarize_sources(self, batches: dict[str, list[dict[str, Any]]]) -> MultiSourceSummary:
        """Summarize every source concurrently, then combine the successes."""
        sources = list(batches)
        outcomes = await asyncio.gather(
            *(self.summarize_source(source, batches[source]) for source in sources),
            return_exceptions=True,
        )

        multi = MultiSourceSummary()
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, Exception):
                log_with_context(
                    logger, logging.ERROR, "Source summary failed", source=source, error=repr(outcome)
                )
                multi.errors[source] = str(outcome)
            else:
                multi.results[source] = outcome

        if multi.results:
            multi.combined = await self.combine(list(multi.results.values()), COMBINED_SOURCE)
        return multi

    async def combine(self, results: list[SummaryResult], source: str = COMBINED_SOURCE) -> SummaryResult:
        """
        Fold per-source results into one summary. No model call.

        Summaries become "SOURCE: text" blocks, action items are unioned in
        order and suggested messages keep their originating source.
        """
        blocks = [f"{r.source.upper()}: {r.summary}" for r in results]

        action_items: dict[str, None] = {}
        messages: list[SuggestedMessage] = []
        for r in results:
            for item in r.action_items:
                action_items.setdefault(item, None)
            for message in r.suggested_messages:
                messages.append(
                    message if message.source else message.model_copy(update={"source": r.source})
                )

        combined = SummaryResult(
            source=source,
            summary="\n\n".join(blocks),
            action_items=list(action_items),
            suggested_messages=messages,
            parse_degraded=any(r.parse_degraded for r in results),
        )
        return await self._persist(combined)

    async def summarize_recent(self, limit: int = 10) -> SummaryResult:
        """
        Combine the latest stored summary of each source into an "all" summary.

        Raises:
            StorageError: If recent summaries cannot be read
        """
        rows = await asyncio.to_thread(self._store.list_summaries, None, limit)

        latest: dict[str, SummaryResult] = {}
        for row in rows:
            source = row.get("source")
            if not source or source in COMPOSITE_SOURCES or source in latest:
                continue
            latest[source] = SummaryResult.model_validate(row)

        if not latest:
            return SummaryResult(source=RECENT_SOURCE, summary=DEFAULT_EMPTY_MESSAGE)

        return await self.combine(list(latest.values()), RECENT_SOURCE)

    async def list_recent_summaries(self, limit: int = 20) -> list[SummaryResult]:
        """
        Most recent stored summaries first.

        Raises:
            StorageError: If the store read fails
        """
        rows = await asyncio.to_thread(self._store.list_summaries, None, limit)
        return [SummaryResult.model_validate(row) for row in rows]

    async def _attach_email_replies(
        self,
        emails: list[dict[str, Any]],
        messages: list[SuggestedMessage],
    ) -> int:
        """Queue suggested replies on their stored emails. Best effort."""
        attached = 0
        for message in messages:
            target = _match_email(emails, message)
            if target is None or not message.message:
                continue
            try:
                await asyncio.to_thread(
                    self._store.update_email_suggested_reply, str(target["id"]), message.message
                )
                attached += 1
            except StorageError as e:
                logger.error(f"Error updating suggested reply for email {target['id']}: {e}")
        if attached:
            logger.debug(f"Attached {attached} suggested replies to emails")
        return attached


def _match_email(emails: list[dict[str, Any]], message: SuggestedMessage) -> dict[str, Any] | None:
    """Find the email a suggested reply answers (id, then thread, then subject)."""
    if not (message.email_id or message.thread_id or message.subject):
        return None
    for email in emails:
        if not email.get("id"):
            continue
        if message.email_id and str(email["id"]) == message.email_id:
            return email
        thread = email.get("threadId") or email.get("thread_id")
        if message.thread_id and thread == message.thread_id:
            return email
        if message.subject and message.subject in (email.get("subject") or ""):
            return email
    return None
