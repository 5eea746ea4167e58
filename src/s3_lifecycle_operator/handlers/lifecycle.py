"""Handler for BucketLifecycleConfiguration CRD."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import kopf
from kubernetes import client

from ..builders.lifecycle import create_lifecycle_config_from_spec
from ..builders.provider import create_provider_from_spec
from ..config import get_config
from ..constants import API_GROUP_VERSION, KIND_BUCKET_LIFECYCLE
from ..errors import (
    LifecycleValidationError,
    OperationTimeoutError,
    RemoteFault,
    ResourceIdFormatError,
)
from ..reconciler import LifecycleReconciler
from ..tracing import trace_span
from ..utils.conditions import set_ready_condition, set_stable_condition
from .base import BaseHandler
from .shared import get_core_client, get_k8s_client, get_provider_with_cache, provider_is_ready


class BucketLifecycleHandler(BaseHandler):
    """Handler for BucketLifecycleConfiguration resources."""

    def __init__(self):
        """Initialize lifecycle handler."""
        super().__init__(KIND_BUCKET_LIFECYCLE)

    def build_reconciler(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> LifecycleReconciler:
        """Resolve the referenced Provider and build a reconciler on its S3 client."""
        namespace = meta.get("namespace", "default")
        provider_ref = spec.get("providerRef", {})
        provider_name = provider_ref.get("name")
        if not provider_name:
            self.handle_validation_error(meta, status, patch, "providerRef.name is required")

        provider_ns = provider_ref.get("namespace", namespace)
        api = get_k8s_client()

        try:
            provider_obj = get_provider_with_cache(api, provider_name, provider_ns)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                self.handle_provider_not_ready(
                    meta, status, patch, f"Provider {provider_name} not found in namespace {provider_ns}"
                )
            raise

        if not provider_is_ready(provider_obj):
            self.handle_provider_not_ready(meta, status, patch, f"Provider {provider_name} is not ready")

        try:
            provider_client = create_provider_from_spec(
                provider_obj.get("spec", {}), provider_obj.get("metadata", {}), get_core_client()
            )
        except ValueError as e:
            self.handle_provider_not_ready(meta, status, patch, f"Provider {provider_name} is misconfigured: {e}")

        return LifecycleReconciler(provider_client)

    def reconcile(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Reconcile BucketLifecycleConfiguration resource."""
        bucket_name = spec.get("bucket")
        conditions = status.get("conditions", [])

        with trace_span("reconcile_bucket_lifecycle", kind=self.kind, attributes={"bucket.name": bucket_name}):
            try:
                desired = create_lifecycle_config_from_spec(spec)
            except LifecycleValidationError as e:
                self.handle_validation_error(meta, status, patch, str(e))

            reconciler = self.build_reconciler(spec, meta, status, patch)
            resource_id = status.get("id")

            try:
                try:
                    result = reconciler.reconcile(desired, resource_id=resource_id)
                except ResourceIdFormatError as e:
                    self.log_warning(meta, f"Discarding unreadable tracked ID: {e}", reason="InvalidResourceID",
                                     resource_id=resource_id)
                    result = reconciler.reconcile(desired, resource_id=None)
            except LifecycleValidationError as e:
                self.handle_validation_error(meta, status, patch, str(e))
            except (RemoteFault, OperationTimeoutError) as e:
                self.log_error(meta, f"Failed to reconcile lifecycle configuration for bucket {bucket_name}",
                               error=e, reason="ReconcileFailed", bucket_name=bucket_name)
                patch.status.update({"conditions": set_ready_condition(conditions, False, str(e))})
                raise kopf.TemporaryError(str(e), delay=60) from e

            if not result.stable:
                self.log_warning(meta, f"Lifecycle configuration for bucket {bucket_name} did not stabilize",
                                 reason="StabilizationTimeout", bucket_name=bucket_name)

            conditions = set_ready_condition(conditions, True, f"Lifecycle configuration for bucket {bucket_name} is in sync")
            conditions = set_stable_condition(conditions, result.stable)

            status_data = result.to_status()
            status_data.update(
                {
                    "bucket": desired.bucket,
                    "lastSyncTime": datetime.now(timezone.utc).isoformat(),
                    "conditions": conditions,
                }
            )
            self.update_resource_status(patch, meta, status_data)
            self.log_info(meta, f"Lifecycle configuration for bucket {bucket_name} reconciled",
                          reason="Reconciled", bucket_name=bucket_name, resource_id=result.resource_id)

    def delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Handle BucketLifecycleConfiguration resource deletion."""
        resource_id = status.get("id")
        self.log_info(meta, "Lifecycle configuration is being deleted", reason="Deletion", resource_id=resource_id)

        if not resource_id:
            self.remove_finalizer(meta, patch)
            return

        try:
            reconciler = self.build_reconciler(spec, meta, status, patch)
        except (kopf.TemporaryError, kopf.PermanentError) as e:
            # Without a usable provider there is nothing we can delete
            self.log_warning(meta, f"Skipping remote deletion: {e}", reason="ProviderNotReady", resource_id=resource_id)
            self.remove_finalizer(meta, patch)
            return

        try:
            reconciler.delete(resource_id)
        except ResourceIdFormatError as e:
            self.log_warning(meta, f"Skipping remote deletion: {e}", reason="InvalidResourceID", resource_id=resource_id)
        except (RemoteFault, OperationTimeoutError) as e:
            self.log_error(meta, f"Failed to delete lifecycle configuration ({resource_id})", error=e,
                           reason="DeletionFailed", resource_id=resource_id)
            raise kopf.TemporaryError(str(e), delay=60) from e

        self.log_info(meta, f"Deleted lifecycle configuration ({resource_id})", reason="Deleted", resource_id=resource_id)
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = BucketLifecycleHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_BUCKET_LIFECYCLE)
@kopf.on.update(API_GROUP_VERSION, KIND_BUCKET_LIFECYCLE)
@kopf.on.resume(API_GROUP_VERSION, KIND_BUCKET_LIFECYCLE)
@kopf.timer(API_GROUP_VERSION, KIND_BUCKET_LIFECYCLE, interval=get_config().drift_check_interval)
def handle_bucket_lifecycle(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle BucketLifecycleConfiguration resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(spec, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_BUCKET_LIFECYCLE)
def handle_bucket_lifecycle_delete(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle BucketLifecycleConfiguration resource deletion."""
    _handler.delete(spec, meta, status, patch)
