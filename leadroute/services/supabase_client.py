"""Supabase client wrapper with async context manager support."""

import os
from typing import Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from leadroute.utils.errors import SupabaseError
from leadroute.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", supabase_url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the cached client; supabase-py has no explicit close."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager handing out a Supabase client."""

    def __init__(self, client: Optional[Client] = None):
        self._override = client
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = self._override or get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__,
            )
        return False
