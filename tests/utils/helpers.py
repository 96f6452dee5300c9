"""Test helper functions."""

import json
from io import BytesIO
from typing import Any, Dict, Optional
from unittest.mock import Mock


def create_vercel_request(
    method: str = "GET",
    path: str = "/api/reconcile/tick",
    body: Optional[Dict[str, Any]] = None,
    query: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    return {
        "method": method,
        "path": path,
        "headers": {"content-type": "application/json"},
        "body": json.dumps(body) if body is not None else "",
        "query": query or {},
    }


def build_http_handler(handler_class, body: Any = None, headers: Optional[Dict[str, str]] = None):
    """Instantiate a BaseHTTPRequestHandler subclass without a socket or request parsing."""
    if body is None:
        raw = b""
    elif isinstance(body, bytes):
        raw = body
    else:
        raw = json.dumps(body).encode("utf-8")

    h = handler_class.__new__(handler_class)
    h.rfile = BytesIO(raw)
    h.wfile = BytesIO()
    h.headers = {"Content-Length": str(len(raw)), **(headers or {})}
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


def read_json_response(h) -> Dict[str, Any]:
    """Decode what a handler wrote to its wfile."""
    h.wfile.seek(0)
    return json.loads(h.wfile.read().decode("utf-8"))
