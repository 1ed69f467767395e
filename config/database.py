"""
Supabase connection for the catalog tables.

Services get the shared client through get_supabase_client(); nothing else in
the code base creates one.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)

# Tables the catalog reads and writes; probed by check_connection()
CATALOG_TABLES = ("institutions", "collections")


class SupabaseConnectionError(Exception):
    """The Supabase client could not be created."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get the cached Supabase client.

    Uses the service role key when configured, since imports write to
    tables an anon key may only read.

    Raises:
        SupabaseConnectionError: If the client cannot be created
    """
    key = settings.supabase_service_key or settings.supabase_key
    logger.info(
        "connecting_to_supabase",
        url=settings.supabase_url[:30] + "...",  # Log partial URL only
        service_role=settings.supabase_service_key is not None,
    )

    try:
        client = create_client(settings.supabase_url, key)
    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise SupabaseConnectionError(f"Failed to connect to Supabase: {e}") from e

    return client


def check_connection() -> dict:
    """
    Count the rows of each catalog table.

    An unhealthy result drops the cached client so the next request
    reconnects.

    Returns:
        dict: status plus "<table>_count" per table, or the error
    """
    status = {"status": "healthy"}
    try:
        client = get_supabase_client()
        for table in CATALOG_TABLES:
            result = client.table(table).select("id", count="exact").limit(1).execute()
            status[f"{table}_count"] = result.count
    except Exception as e:
        reset_connection()
        return {"status": "unhealthy", "error": str(e)}

    return status


def reset_connection() -> None:
    """Drop the cached client; the next get_supabase_client() call reconnects."""
    get_supabase_client.cache_clear()
    logger.info("database_connection_reset")
