"""Base class shared by resource handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import kopf

from .. import metrics
from ..constants import FINALIZER
from ..utils.conditions import set_provider_not_ready_condition, set_validation_failed_condition


class BaseHandler:
    """Logging, status and finalizer plumbing for one resource kind."""

    def __init__(self, kind: str):
        self.kind = kind
        self.logger = logging.getLogger(f"s3_lifecycle_operator.handlers.{kind.lower()}")

    def _fields(self, meta: dict[str, Any], reason: str | None, **fields: Any) -> dict[str, Any]:
        extra = {
            "kind": self.kind,
            "namespace": meta.get("namespace", "default"),
            "resource_name": meta.get("name", "unknown"),
        }
        if reason:
            extra["reason"] = reason
        extra.update({k: v for k, v in fields.items() if v is not None})
        return extra

    def log_info(self, meta: dict[str, Any], message: str, reason: str | None = None, **fields: Any) -> None:
        self.logger.info(message, extra=self._fields(meta, reason, **fields))

    def log_warning(self, meta: dict[str, Any], message: str, reason: str | None = None, **fields: Any) -> None:
        self.logger.warning(message, extra=self._fields(meta, reason, **fields))

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: BaseException | None = None,
        reason: str | None = None,
        **fields: Any,
    ) -> None:
        if error is not None:
            fields["error"] = str(error)
            fields["error_type"] = type(error).__name__
        self.logger.error(message, extra=self._fields(meta, reason, **fields))

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER not in finalizers:
            finalizers.append(FINALIZER)
            patch.metadata["finalizers"] = finalizers

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER in finalizers:
            finalizers.remove(FINALIZER)
            patch.metadata["finalizers"] = finalizers or None

    def handle_validation_error(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        message: str,
    ) -> None:
        """Record a validation failure and stop retrying until the spec changes."""
        self.log_error(meta, f"Validation failed: {message}", reason="ValidationFailed")
        metrics.reconcile_total.labels(kind=self.kind, result="invalid").inc()
        patch.status.update(
            {
                "conditions": set_validation_failed_condition(status.get("conditions", []), message),
                "observedGeneration": meta.get("generation", 0),
            }
        )
        raise kopf.PermanentError(message)

    def handle_provider_not_ready(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        message: str,
    ) -> None:
        """Record that the provider is missing or unusable and retry later."""
        self.log_warning(meta, message, reason="ProviderNotReady")
        patch.status.update({"conditions": set_provider_not_ready_condition(status.get("conditions", []), message)})
        raise kopf.TemporaryError(message, delay=30)

    def update_resource_status(self, patch: kopf.Patch, meta: dict[str, Any], status_data: dict[str, Any]) -> None:
        status_data = dict(status_data)
        status_data["observedGeneration"] = meta.get("generation", 0)
        patch.status.update(status_data)

    def reconcile_with_metrics(self, meta: dict[str, Any], fn: Callable[[], Any]) -> Any:
        """Run ``fn`` and record its outcome and duration."""
        start_time = time.time()
        try:
            result = fn()
            metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
            return result
        except kopf.PermanentError:
            raise
        except Exception:
            metrics.reconcile_total.labels(kind=self.kind, result="failed").inc()
            raise
        finally:
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(time.time() - start_time)
