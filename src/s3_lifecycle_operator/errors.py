"""Structured error types for the S3 Lifecycle Operator."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError


class LifecycleOperatorError(Exception):
    """Base error for all operator errors."""


class LifecycleValidationError(LifecycleOperatorError):
    """Raised when a lifecycle configuration is malformed. Never retried."""

    def __init__(self, message: str, rule_id: str | None = None) -> None:
        self.rule_id = rule_id
        if rule_id:
            message = f"rule ({rule_id}): {message}"
        super().__init__(message)


class ResourceIdFormatError(LifecycleOperatorError):
    """Raised when a persisted resource ID does not have the expected shape."""

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id
        super().__init__(
            f"unexpected format for ID ({resource_id}), expected BUCKET,EXPECTED_BUCKET_OWNER"
        )


class ImmutableFieldError(LifecycleOperatorError):
    """Raised when an identity field changes on an existing resource."""

    def __init__(self, field_name: str, old: Any, new: Any) -> None:
        self.field_name = field_name
        self.old = old
        self.new = new
        super().__init__(f"{field_name} cannot be changed in place ({old!r} -> {new!r}); resource must be replaced")


class StabilizationTimeout(LifecycleOperatorError):
    """Polling never observed two consecutive equal reads within the budget."""

    def __init__(self, attempts: int, timeout: float, last_value: Any = None, last_error: Exception | None = None) -> None:
        self.attempts = attempts
        self.timeout = timeout
        self.last_value = last_value
        self.last_error = last_error
        message = f"not stable after {attempts} attempt(s) in {timeout:g}s"
        if last_error is not None:
            message = f"{message}: last error: {last_error}"
        super().__init__(message)


class OperationTimeoutError(LifecycleOperatorError):
    """Raised when an operation deadline elapses or is cancelled."""

    def __init__(self, message: str = "operation deadline exceeded", cancelled: bool = False) -> None:
        self.cancelled = cancelled
        super().__init__(message)


class RemoteFault(LifecycleOperatorError):
    """Any other remote error, wrapped with operation context."""

    def __init__(self, operation: str, resource_id: str, error: Exception) -> None:
        self.operation = operation
        self.resource_id = resource_id
        self.error = error
        self.code = error_code(error)
        super().__init__(f"error {operation} ({resource_id}): {error}")


class TransientNotFound(RemoteFault):
    """Remote kept reporting absence of a new resource past the propagation window.

    Inside the window the condition is retried; this is only raised once the
    window has elapsed.
    """


def error_code(error: BaseException | None) -> str:
    """Return the AWS error code of a botocore ClientError, or an empty string."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


def is_error_code(error: BaseException | None, *codes: str) -> bool:
    """Check whether ``error`` is a ClientError carrying one of ``codes``."""
    code = error_code(error)
    return bool(code) and code in codes

