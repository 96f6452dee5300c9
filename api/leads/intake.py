"""Lead intake endpoint for Vercel."""

from http.server import BaseHTTPRequestHandler
import asyncio
import json

from leadroute.services.routing_service import get_routing_service
from leadroute.utils.errors import LeadRouteError, http_status_for
from leadroute.utils.logging import correlation_context, get_structured_logger, setup_logging
from leadroute.utils.logging_config import LoggingConfig

setup_logging()
logger = get_structured_logger(__name__)


class handler(BaseHTTPRequestHandler):
    """Creates a pending lead from the intake form payload."""

    def _send_json(self, status: int, payload: dict):
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode('utf-8'))

    def do_POST(self):
        """Handle POST request from the intake form."""
        correlation_id = self.headers.get(LoggingConfig.LOG_CORRELATION_ID_HEADER) if self.headers else None
        with correlation_context(correlation_id):
            try:
                content_length = int(self.headers.get('Content-Length', 0))
                raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""

                try:
                    body = json.loads(raw_body) if raw_body else {}
                except json.JSONDecodeError:
                    self._send_json(400, {"success": False, "error": "invalid JSON body"})
                    return
                if not isinstance(body, dict):
                    self._send_json(400, {"success": False, "error": "body must be a JSON object"})
                    return

                lead = asyncio.run(get_routing_service().create_lead(body))
                self._send_json(201, {"success": True, "lead_id": lead.lead_id})

            except LeadRouteError as e:
                logger.warning("Lead intake rejected", error=str(e), error_type=type(e).__name__)
                self._send_json(http_status_for(e), {"success": False, "error": str(e)})
            except Exception as e:
                logger.error("Error processing lead intake", error=str(e), exc_info=True)
                self._send_json(500, {"success": False, "error": "internal server error"})

    def do_GET(self):
        """Handle GET request (health check)."""
        self._send_json(200, {"status": "ok", "endpoint": "leads/intake"})
