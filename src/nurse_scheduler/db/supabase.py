"""Shared Supabase client for roster, visit and schedule tables."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Process-wide Supabase client, or None when credentials are not set.

    Creating the client does not open a connection; callers still handle
    query failures and fall back to the data files.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.info("Supabase not configured, using data files and the in-memory schedule store")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logger.error(f"Failed to create Supabase client for {settings.supabase_url}: {e}")
        return None
