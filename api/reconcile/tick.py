"""Coverage reconciliation endpoint (called via Vercel cron)."""

import asyncio
import json

from leadroute.services.routing_service import get_routing_service
from leadroute.utils.errors import LeadRouteError, http_status_for
from leadroute.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


def handler(request):
    """
    Run one reconciliation tick.

    Can be called manually or via Vercel cron job. A tick that finds another
    one still running reports ``skipped`` instead of waiting.
    """
    try:
        report = asyncio.run(get_routing_service().run_reconciliation_tick())

        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"ok": True, **report.model_dump()}),
        }

    except LeadRouteError as e:
        logger.error("Reconciliation tick failed", error=str(e), error_type=type(e).__name__)
        return {
            "statusCode": http_status_for(e),
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": str(e)}),
        }
    except Exception as e:
        logger.error("Error running reconciliation tick", error=str(e), exc_info=True)
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": str(e)}),
        }
