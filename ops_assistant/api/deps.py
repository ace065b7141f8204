"""Shared service instances for the API routes.

Each getter is cached so every request sees the same caches; tests swap them
out through ``app.dependency_overrides``.
"""

from functools import lru_cache

from ops_assistant.core.config import get_settings
from ops_assistant.core.context_resolver import ContextResolver
from ops_assistant.core.feedback_learner import FeedbackLearner
from ops_assistant.core.llm import ModelClient
from ops_assistant.db.context_cache import ContextCache
from ops_assistant.db.store import DurableStore, SupabaseStore
from ops_assistant.services.summary_orchestrator import SummaryOrchestrator


@lru_cache
def get_store() -> DurableStore:
    return SupabaseStore()


@lru_cache
def get_context_cache() -> ContextCache:
    settings = get_settings()
    return ContextCache(
        ttl_seconds=settings.CONTEXT_CACHE_TTL_SECONDS,
        max_entries=settings.CONTEXT_CACHE_MAX_ENTRIES,
    )


@lru_cache
def get_resolver() -> ContextResolver:
    return ContextResolver(get_context_cache(), get_store())


@lru_cache
def get_learner() -> FeedbackLearner:
    settings = get_settings()
    return FeedbackLearner(
        get_store(),
        profile_ttl_seconds=settings.PREFERENCE_TTL_SECONDS,
        analysis_limit=settings.PREFERENCE_ANALYSIS_LIMIT,
        window_days=settings.FEEDBACK_WINDOW_DAYS,
    )


@lru_cache
def get_model_client() -> ModelClient:
    return ModelClient(settings=get_settings())


@lru_cache
def get_orchestrator() -> SummaryOrchestrator:
    return SummaryOrchestrator(
        resolver=get_resolver(),
        learner=get_learner(),
        model_client=get_model_client(),
        store=get_store(),
    )
