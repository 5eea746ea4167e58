"""Create/read/update/delete of a bucket lifecycle configuration.

S3 gives no read-after-write guarantee for lifecycle configurations: a
GetBucketLifecycleConfiguration issued right after a put may return the old
rules, no rules, or NoSuchLifecycleConfiguration. Every write is therefore
followed by a stabilization wait that only accepts a value once two
consecutive reads agree.

State machine::

    ABSENT -> CREATING -> STABILIZING -> STABLE
    STABLE -> UPDATING -> STABILIZING -> STABLE
    any    -> DELETING -> ABSENT
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from botocore.exceptions import BotoCoreError, ClientError

from . import metrics
from .builders.lifecycle import expand_lifecycle_rules, flatten_lifecycle_rules, rules_semantically_equal
from .config import OperatorConfig, get_config
from .constants import KIND_BUCKET_LIFECYCLE, NOT_FOUND_CODES, RETRYABLE_WRITE_CODES
from .errors import (
    ImmutableFieldError,
    RemoteFault,
    StabilizationTimeout,
    TransientNotFound,
    is_error_code,
)
from .identity import ResourceIdentity, parse_resource_id
from .models import BucketLifecycleConfig, LifecycleRule
from .provider import S3LifecycleProvider
from .tracing import trace_span
from .utils.polling import Deadline, poll_until, poll_until_stable, retry_on_codes

logger = logging.getLogger(__name__)

RESOURCE_NAME = "S3 Bucket Lifecycle Configuration"


class ReconcileState(str, enum.Enum):
    ABSENT = "Absent"
    CREATING = "Creating"
    STABILIZING = "Stabilizing"
    STABLE = "Stable"
    UPDATING = "Updating"
    DELETING = "Deleting"


@dataclass
class ReconcileResult:
    """Outcome of one reconciler operation."""

    state: ReconcileState
    resource_id: str
    identity: ResourceIdentity | None = None
    rules: list[LifecycleRule] = field(default_factory=list)
    # False when the read path never settled and the last read was accepted
    stable: bool = True

    @property
    def exists(self) -> bool:
        return self.state is not ReconcileState.ABSENT

    def to_status(self) -> dict[str, Any]:
        return {
            "id": self.resource_id or None,
            "state": self.state.value,
            "stable": self.stable,
            "rules": [rule.to_spec() for rule in self.rules] or None,
        }


def _not_found(error: BaseException) -> bool:
    return is_error_code(error, *NOT_FOUND_CODES)


class LifecycleReconciler:
    """Drives a lifecycle configuration towards its desired state.

    The reconciler holds no per-resource state; everything an operation needs
    is passed in, so one instance may serve any number of resources.
    """

    def __init__(
        self,
        provider: S3LifecycleProvider,
        config: OperatorConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or get_config()
        self.clock = clock
        self.sleep = sleep

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        if deadline is not None:
            return deadline
        return Deadline(self.config.operation_timeout, clock=self.clock)

    def _transition(self, resource_id: str, old: ReconcileState, new: ReconcileState) -> None:
        logger.debug(
            "%s (%s): %s -> %s",
            RESOURCE_NAME,
            resource_id,
            old.value,
            new.value,
            extra={"resource_id": resource_id, "from_state": old.value, "to_state": new.value},
        )

    def _put(
        self,
        identity: ResourceIdentity,
        api_rules: list[dict[str, Any]],
        operation: str,
        deadline: Deadline,
    ) -> None:
        """Full-replace write, retried while the bucket or configuration is still propagating."""
        resource_id = identity.encode()
        try:
            retry_on_codes(
                lambda: self.provider.put_bucket_lifecycle(identity, api_rules),
                RETRYABLE_WRITE_CODES,
                timeout=self.config.bucket_propagation_timeout,
                min_delay=self.config.retry_min_delay,
                max_delay=self.config.retry_max_delay,
                deadline=deadline,
                clock=self.clock,
                sleep=self.sleep,
            )
        except (ClientError, BotoCoreError) as e:
            metrics.lifecycle_operations_total.labels(operation=operation, result="failed").inc()
            raise RemoteFault(f"{operation} {RESOURCE_NAME}", resource_id, e) from e
        metrics.lifecycle_operations_total.labels(operation=operation, result="success").inc()

    def wait_for_rules_status(
        self,
        identity: ResourceIdentity,
        api_rules: list[dict[str, Any]],
        deadline: Deadline | None = None,
    ) -> bool:
        """Wait until every written rule is visible with the status it was written with.

        Returns False (after logging a warning) if the statuses did not settle
        within the configured window; only hard remote errors are raised.
        """
        resource_id = identity.encode()
        expected = {rule["ID"]: rule["Status"] for rule in api_rules}

        def ready(observed_rules: list[dict[str, Any]]) -> bool:
            observed = {rule.get("ID"): rule.get("Status") for rule in observed_rules}
            return all(observed.get(rule_id) == status for rule_id, status in expected.items())

        try:
            poll_until(
                lambda: self.provider.get_bucket_lifecycle(identity),
                ready,
                interval=self.config.rules_status_min_interval,
                timeout=self.config.rules_status_timeout,
                continuous_target=self.config.rules_status_continuous_target,
                retryable=_not_found,
                deadline=self._deadline(deadline),
                clock=self.clock,
                sleep=self.sleep,
            )
        except StabilizationTimeout as e:
            logger.warning(
                "%s (%s) rules did not reach their expected status: %s",
                RESOURCE_NAME,
                resource_id,
                e,
                extra={"resource_id": resource_id},
            )
            return False
        except (ClientError, BotoCoreError) as e:
            raise RemoteFault(f"waiting for {RESOURCE_NAME} rules status", resource_id, e) from e
        return True

    def create(
        self,
        config: BucketLifecycleConfig | Mapping[str, Any],
        deadline: Deadline | None = None,
    ) -> ReconcileResult:
        """Write a new lifecycle configuration and wait for it to become readable.

        Raises:
            LifecycleValidationError: Before any remote call, if the configuration is invalid
            RemoteFault: On any non-retryable remote error
            OperationTimeoutError: If ``deadline`` expires or is cancelled
        """
        if not isinstance(config, BucketLifecycleConfig):
            config = BucketLifecycleConfig.from_spec(config)
        config.validate()
        api_rules = expand_lifecycle_rules(config.rules)

        identity = config.identity
        resource_id = identity.encode()
        deadline = self._deadline(deadline)

        with trace_span("create_lifecycle_configuration", attributes={"bucket.name": identity.bucket}):
            self._transition(resource_id, ReconcileState.ABSENT, ReconcileState.CREATING)
            self._put(identity, api_rules, "creating", deadline)
            logger.info(
                "Created %s (%s) with %d rule(s)",
                RESOURCE_NAME,
                resource_id,
                len(api_rules),
                extra={"resource_id": resource_id},
            )

            self._transition(resource_id, ReconcileState.CREATING, ReconcileState.STABILIZING)
            self.wait_for_rules_status(identity, api_rules, deadline)
            return self.read(resource_id, new_resource=True, deadline=deadline)

    def read(
        self,
        resource_id: str,
        new_resource: bool = False,
        deadline: Deadline | None = None,
    ) -> ReconcileResult:
        """Read the configuration once the read path has settled.

        ``new_resource`` marks a configuration written within this operation:
        not-found is then propagation lag and retried. For a configuration that
        existed before, not-found is authoritative and yields an ABSENT result
        with an empty resource ID rather than an error.

        Raises:
            ResourceIdFormatError: If ``resource_id`` is malformed
            TransientNotFound: If a new resource is still not found after the window
            RemoteFault: On any other remote error
            OperationTimeoutError: If ``deadline`` expires or is cancelled
        """
        identity = parse_resource_id(resource_id)
        deadline = self._deadline(deadline)

        attempts = 0

        def fetch() -> list[dict[str, Any]]:
            nonlocal attempts
            attempts += 1
            return self.provider.get_bucket_lifecycle(identity)

        stable = True
        error: Exception | None = None
        api_rules: list[dict[str, Any]] = []

        with trace_span("read_lifecycle_configuration", attributes={"bucket.name": identity.bucket}):
            try:
                api_rules = poll_until_stable(
                    fetch,
                    interval=self.config.extra_retry_delay,
                    timeout=self.config.rules_steady_timeout,
                    retryable=_not_found if new_resource else None,
                    deadline=deadline,
                    clock=self.clock,
                    sleep=self.sleep,
                )
            except StabilizationTimeout as e:
                stable = False
                metrics.stabilization_timeouts_total.inc()
                logger.warning(
                    "%s (%s) has not stabilized, using last read: %s",
                    RESOURCE_NAME,
                    resource_id,
                    e,
                    extra={"resource_id": resource_id},
                )
                try:
                    api_rules = fetch()
                except (ClientError, BotoCoreError) as last_error:
                    error = last_error
            except (ClientError, BotoCoreError) as e:
                error = e

            if error is not None:
                if _not_found(error):
                    if not new_resource:
                        logger.warning(
                            "%s (%s) not found, removing from state",
                            RESOURCE_NAME,
                            resource_id,
                            extra={"resource_id": resource_id},
                        )
                        metrics.drift_detected_total.labels(kind=KIND_BUCKET_LIFECYCLE, resource_type="deleted").inc()
                        return ReconcileResult(state=ReconcileState.ABSENT, resource_id="", identity=identity)
                    raise TransientNotFound(f"reading {RESOURCE_NAME}", resource_id, error) from error
                raise RemoteFault(f"reading {RESOURCE_NAME}", resource_id, error) from error

            metrics.stabilization_attempts.observe(attempts)
            self._transition(resource_id, ReconcileState.STABILIZING, ReconcileState.STABLE)
            return ReconcileResult(
                state=ReconcileState.STABLE,
                resource_id=resource_id,
                identity=identity,
                rules=flatten_lifecycle_rules(api_rules),
                stable=stable,
            )

    def update(
        self,
        resource_id: str,
        config: BucketLifecycleConfig | Mapping[str, Any],
        deadline: Deadline | None = None,
    ) -> ReconcileResult:
        """Replace the whole rule list of an existing configuration.

        Raises:
            ImmutableFieldError: If the bucket or expected owner differ from ``resource_id``
        """
        identity = parse_resource_id(resource_id)
        if not isinstance(config, BucketLifecycleConfig):
            config = BucketLifecycleConfig.from_spec(config)
        config.validate()
        self.check_immutable(identity, config.identity)
        api_rules = expand_lifecycle_rules(config.rules)
        deadline = self._deadline(deadline)

        with trace_span("update_lifecycle_configuration", attributes={"bucket.name": identity.bucket}):
            self._transition(resource_id, ReconcileState.STABLE, ReconcileState.UPDATING)
            self._put(identity, api_rules, "updating", deadline)
            logger.info(
                "Updated %s (%s) with %d rule(s)",
                RESOURCE_NAME,
                resource_id,
                len(api_rules),
                extra={"resource_id": resource_id},
            )

            self._transition(resource_id, ReconcileState.UPDATING, ReconcileState.STABILIZING)
            self.wait_for_rules_status(identity, api_rules, deadline)
            return self.read(resource_id, deadline=deadline)

    def delete(self, resource_id: str, deadline: Deadline | None = None) -> ReconcileResult:
        """Delete the configuration. An already absent configuration or bucket is success."""
        identity = parse_resource_id(resource_id)
        deadline = self._deadline(deadline)
        deadline.check()

        with trace_span("delete_lifecycle_configuration", attributes={"bucket.name": identity.bucket}):
            self._transition(resource_id, ReconcileState.STABLE, ReconcileState.DELETING)
            try:
                self.provider.delete_bucket_lifecycle(identity)
            except ClientError as e:
                if not _not_found(e):
                    metrics.lifecycle_operations_total.labels(operation="deleting", result="failed").inc()
                    raise RemoteFault(f"deleting {RESOURCE_NAME}", resource_id, e) from e
                logger.info(
                    "%s (%s) already absent",
                    RESOURCE_NAME,
                    resource_id,
                    extra={"resource_id": resource_id},
                )
            except BotoCoreError as e:
                metrics.lifecycle_operations_total.labels(operation="deleting", result="failed").inc()
                raise RemoteFault(f"deleting {RESOURCE_NAME}", resource_id, e) from e

            metrics.lifecycle_operations_total.labels(operation="deleting", result="success").inc()
            self._transition(resource_id, ReconcileState.DELETING, ReconcileState.ABSENT)
            return ReconcileResult(state=ReconcileState.ABSENT, resource_id="", identity=identity)

    @staticmethod
    def check_immutable(current: ResourceIdentity, desired: ResourceIdentity) -> None:
        if current.bucket != desired.bucket:
            raise ImmutableFieldError("bucket", current.bucket, desired.bucket)
        if current.expected_bucket_owner != desired.expected_bucket_owner:
            raise ImmutableFieldError(
                "expected_bucket_owner", current.expected_bucket_owner, desired.expected_bucket_owner
            )

    @staticmethod
    def requires_replacement(resource_id: str, config: BucketLifecycleConfig) -> bool:
        """Whether ``config`` names a different bucket or owner than the tracked resource."""
        return parse_resource_id(resource_id) != config.identity

    @staticmethod
    def detect_drift(config: BucketLifecycleConfig, observed: list[LifecycleRule]) -> bool:
        return not rules_semantically_equal(config.rules, observed)

    def reconcile(
        self,
        config: BucketLifecycleConfig | Mapping[str, Any],
        resource_id: str | None = None,
        deadline: Deadline | None = None,
    ) -> ReconcileResult:
        """Bring the remote configuration in line with ``config``.

        ``resource_id`` is the tracked identity from a previous run, if any.
        A configuration deleted out of band is re-created; an identity change
        deletes the old configuration and creates a new one.
        """
        if not isinstance(config, BucketLifecycleConfig):
            config = BucketLifecycleConfig.from_spec(config)
        config.validate()
        deadline = self._deadline(deadline)

        if resource_id and self.requires_replacement(resource_id, config):
            logger.info(
                "%s identity changed (%s -> %s), replacing",
                RESOURCE_NAME,
                resource_id,
                config.identity.encode(),
                extra={"resource_id": resource_id},
            )
            self.delete(resource_id, deadline=deadline)
            resource_id = None

        if not resource_id:
            return self.create(config, deadline=deadline)

        current = self.read(resource_id, deadline=deadline)
        if not current.exists:
            return self.create(config, deadline=deadline)

        if self.detect_drift(config, current.rules):
            logger.info(
                "Drift detected for %s (%s)",
                RESOURCE_NAME,
                resource_id,
                extra={"resource_id": resource_id},
            )
            metrics.drift_detected_total.labels(kind=KIND_BUCKET_LIFECYCLE, resource_type="lifecycle").inc()
            return self.update(resource_id, config, deadline=deadline)

        return current
