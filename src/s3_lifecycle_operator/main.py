"""Main entry point for the S3 Lifecycle Operator."""

from __future__ import annotations

import threading
from typing import Any

import kopf
from werkzeug.serving import make_server

from . import handlers  # noqa: F401
from . import health
from . import logging as structured_logging
from .config import get_config


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    config = get_config()

    # Set up structured JSON logging
    structured_logging.setup_structured_logging(config.log_level)

    # Use annotations so progress storage does not collide with our status fields
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = 0
    settings.networking.request_timeout = 30.0
    # Stabilization waits block a worker for minutes at a time
    settings.execution.max_workers = 8

    # Start metrics HTTP server with health check endpoints
    server = make_server("", config.metrics_port, health.create_combined_wsgi_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    health.set_ready(True)


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    health.set_ready(False)


def main() -> None:
    """Run the operator against all namespaces."""
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    main()
