"""Support dashboard notifications endpoint."""

import asyncio
import json

from leadroute.services.routing_service import get_routing_service
from leadroute.utils.errors import LeadRouteError, http_status_for
from leadroute.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


def handler(request):
    """Most recent notifications, newest first. Optional ``limit`` query param."""
    try:
        query_params = request.get("query", {}) or {}
        limit = query_params.get("limit")
        try:
            limit = int(limit) if limit not in (None, "") else None
        except (TypeError, ValueError):
            return {
                "statusCode": 400,
                "headers": {"Content-Type": "application/json"},
                "body": json.dumps({"error": "limit must be an integer"}),
            }

        notifications = asyncio.run(get_routing_service().list_notifications(limit))

        return {
            "statusCode": 200,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({
                "notifications": [n.model_dump(mode="json") for n in notifications],
            }),
        }

    except LeadRouteError as e:
        logger.warning("Notification listing rejected", error=str(e), error_type=type(e).__name__)
        return {
            "statusCode": http_status_for(e),
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": str(e)}),
        }
    except Exception as e:
        logger.error("Error listing notifications", error=str(e), exc_info=True)
        return {
            "statusCode": 500,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps({"error": "internal server error"}),
        }
