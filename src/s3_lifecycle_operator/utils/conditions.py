"""Status condition helpers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import CONDITION_READY, CONDITION_STABLE


def update_condition(
    conditions: list[dict[str, Any]] | None,
    condition_type: str,
    status: bool,
    reason: str,
    message: str,
) -> list[dict[str, Any]]:
    """Return ``conditions`` with ``condition_type`` set.

    ``lastTransitionTime`` only moves when the status actually changes.
    """
    status_str = "True" if status else "False"
    now = datetime.now(timezone.utc).isoformat()
    result = [dict(c) for c in conditions or []]

    for condition in result:
        if condition.get("type") == condition_type:
            if condition.get("status") != status_str:
                condition["lastTransitionTime"] = now
            condition.update({"status": status_str, "reason": reason, "message": message})
            return result

    result.append(
        {
            "type": condition_type,
            "status": status_str,
            "reason": reason,
            "message": message,
            "lastTransitionTime": now,
        }
    )
    return result


def set_ready_condition(conditions: list[dict[str, Any]] | None, ready: bool, message: str) -> list[dict[str, Any]]:
    reason = "ReconcileSucceeded" if ready else "ReconcileFailed"
    return update_condition(conditions, CONDITION_READY, ready, reason, message)


def set_validation_failed_condition(conditions: list[dict[str, Any]] | None, message: str) -> list[dict[str, Any]]:
    return update_condition(conditions, CONDITION_READY, False, "ValidationFailed", message)


def set_provider_not_ready_condition(conditions: list[dict[str, Any]] | None, message: str) -> list[dict[str, Any]]:
    return update_condition(conditions, CONDITION_READY, False, "ProviderNotReady", message)


def set_stable_condition(conditions: list[dict[str, Any]] | None, stable: bool) -> list[dict[str, Any]]:
    if stable:
        return update_condition(conditions, CONDITION_STABLE, True, "Stabilized", "Two consecutive reads agreed")
    return update_condition(
        conditions, CONDITION_STABLE, False, "StabilizationTimeout", "Read path did not settle; using last read"
    )
