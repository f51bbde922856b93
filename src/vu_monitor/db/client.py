"""
Supabase client initialization.

Provides a configured Supabase client for the supabase document backend.
"""

from functools import lru_cache

from supabase import Client, create_client

from vu_monitor.config import get_settings
from vu_monitor.exceptions import StoreError


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get a cached Supabase client instance.

    Returns:
        Client: Configured Supabase client

    Raises:
        StoreError: If the Supabase credentials are not configured
    """
    settings = get_settings()

    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise StoreError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the supabase backend"
        )

    client = create_client(
        supabase_url=settings.supabase_url,
        supabase_key=settings.supabase_service_role_key,
    )

    return client
