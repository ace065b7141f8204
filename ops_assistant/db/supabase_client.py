"""Supabase client initialization and query execution."""

from functools import lru_cache
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client, create_client

from ops_assistant.core.config import get_settings
from ops_assistant.core.errors import StorageError


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached singleton).

    Returns:
        Supabase client configured with service role key

    Raises:
        StorageError: If client initialization fails
    """
    try:
        settings = get_settings()
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise StorageError(f"Failed to initialize Supabase client: {e}") from e


def execute(query: Any, table: str) -> list[dict[str, Any]]:
    """
    Execute a postgrest query and return its rows.

    Args:
        query: Built postgrest query (select/insert/update chain)
        table: Table name, for error reporting

    Returns:
        List of row dicts (empty when nothing matched)

    Raises:
        StorageError: On any client or server failure; ``code`` carries the
            PostgreSQL error code when postgrest reports one
    """
    try:
        response = query.execute()
    except APIError as e:
        raise StorageError(
            f"Supabase error on {table}: {e.message}", table=table, code=e.code
        ) from e
    except Exception as e:
        raise StorageError(f"Supabase call on {table} failed: {e}", table=table) from e

    if response is None:
        return []
    return response.data or []
