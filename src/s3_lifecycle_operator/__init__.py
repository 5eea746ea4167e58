"""S3 Lifecycle Operator - reconciles S3 bucket lifecycle configurations from Kubernetes."""

from .builders.lifecycle import expand_lifecycle_rules, flatten_lifecycle_rules
from .errors import (
    ImmutableFieldError,
    LifecycleOperatorError,
    LifecycleValidationError,
    OperationTimeoutError,
    RemoteFault,
    ResourceIdFormatError,
    StabilizationTimeout,
    TransientNotFound,
)
from .identity import ResourceIdentity, create_resource_id, parse_resource_id
from .models import BucketLifecycleConfig, LifecycleRule
from .reconciler import LifecycleReconciler, ReconcileResult, ReconcileState

__version__ = "0.1.0"

__all__ = [
    "BucketLifecycleConfig",
    "ImmutableFieldError",
    "LifecycleOperatorError",
    "LifecycleReconciler",
    "LifecycleRule",
    "LifecycleValidationError",
    "OperationTimeoutError",
    "ReconcileResult",
    "ReconcileState",
    "RemoteFault",
    "ResourceIdFormatError",
    "ResourceIdentity",
    "StabilizationTimeout",
    "TransientNotFound",
    "create_resource_id",
    "expand_lifecycle_rules",
    "flatten_lifecycle_rules",
    "parse_resource_id",
]
