"""Runtime configuration read from environment variables."""

import os


class RoutingConfig:
    """Lead routing configuration."""

    # "memory" or "supabase"
    LEAD_STORE_BACKEND = os.environ.get("LEAD_STORE_BACKEND", "memory").lower()

    RECONCILE_INTERVAL_SECONDS = int(os.environ.get("RECONCILE_INTERVAL_SECONDS", "60"))
    # Must stay below the interval so ticks never overlap
    RECONCILE_TICK_TIMEOUT_SECONDS = int(os.environ.get("RECONCILE_TICK_TIMEOUT_SECONDS", "50"))

    NOTIFICATION_LIST_LIMIT = int(os.environ.get("NOTIFICATION_LIST_LIMIT", "20"))
    LEAD_ID_MAX_ATTEMPTS = int(os.environ.get("LEAD_ID_MAX_ATTEMPTS", "5"))
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "10"))
