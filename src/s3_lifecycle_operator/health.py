"""Health check and metrics HTTP endpoints."""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Iterable

from prometheus_client import make_wsgi_app
from werkzeug.wrappers import Request, Response

_started_at = time.time()
_ready = False


def set_ready(ready: bool) -> None:
    global _ready
    _ready = ready


def _json(payload: dict[str, Any], status: int) -> Response:
    return Response(json.dumps(payload), status=status, mimetype="application/json")


def create_combined_wsgi_app() -> Callable[..., Iterable[bytes]]:
    """Serve ``/metrics`` from prometheus_client plus ``/healthz`` and ``/readyz``."""
    metrics_app = make_wsgi_app()

    def app(environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        request = Request(environ)
        if request.path == "/healthz":
            response = _json({"status": "ok", "uptime": round(time.time() - _started_at, 1)}, 200)
        elif request.path == "/readyz":
            response = _json({"ready": _ready}, 200 if _ready else 503)
        elif request.path == "/metrics":
            return metrics_app(environ, start_response)
        else:
            response = _json({"error": "not found"}, 404)
        return response(environ, start_response)

    return app
