"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Cached settings getter
    get_supabase_client: Shared Supabase client
    check_connection: Health probe over the catalog tables
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    CATALOG_TABLES,
    get_supabase_client,
    check_connection,
    reset_connection,
    SupabaseConnectionError,
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "CATALOG_TABLES",
    "get_supabase_client",
    "check_connection",
    "reset_connection",
    "SupabaseConnectionError",
]
