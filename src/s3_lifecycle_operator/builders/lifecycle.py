"""Mapping between lifecycle rules and the S3 API's rule representation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from ..errors import LifecycleValidationError
from ..models import (
    AbortIncompleteMultipartUpload,
    BucketLifecycleConfig,
    Expiration,
    LifecycleRule,
    NoncurrentVersionExpiration,
    NoncurrentVersionTransition,
    RuleAndOperator,
    RuleFilter,
    Tag,
    Transition,
    normalize_date,
)


def create_lifecycle_config_from_spec(spec: Mapping[str, Any]) -> BucketLifecycleConfig:
    """Create a validated lifecycle configuration from a CRD spec.

    Args:
        spec: BucketLifecycleConfiguration spec

    Returns:
        Validated configuration

    Raises:
        LifecycleValidationError: If the spec is malformed
    """
    return BucketLifecycleConfig.from_spec(spec)


def _to_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def expand_lifecycle_rules(rules: Sequence[LifecycleRule | Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Convert rules to the ``Rules`` list of PutBucketLifecycleConfiguration.

    Every rule is validated before any of them is converted, so a structural
    violation anywhere yields no payload at all.

    Raises:
        LifecycleValidationError: On the first invalid rule, naming its id
    """
    parsed = [r if isinstance(r, LifecycleRule) else LifecycleRule.from_spec(r) for r in rules]

    seen: set[str] = set()
    for rule in parsed:
        rule.validate()
        if rule.id in seen:
            raise LifecycleValidationError("duplicate rule id", rule.id)
        seen.add(rule.id)

    return [_expand_rule(rule) for rule in parsed]


def _expand_rule(rule: LifecycleRule) -> dict[str, Any]:
    result: dict[str, Any] = {"ID": rule.id, "Status": rule.status}

    if rule.filter is not None and not rule.filter.is_empty():
        result["Filter"] = _expand_filter(rule.filter)
    elif rule.prefix:
        result["Prefix"] = rule.prefix
    else:
        # No filter and no prefix means "all objects"
        result["Filter"] = {"Prefix": ""}

    if rule.expiration is not None:
        result["Expiration"] = _expand_expiration(rule.expiration)

    if rule.noncurrent_version_expiration is not None:
        nve = rule.noncurrent_version_expiration
        expanded: dict[str, Any] = {}
        if nve.noncurrent_days is not None:
            expanded["NoncurrentDays"] = nve.noncurrent_days
        if nve.newer_noncurrent_versions is not None:
            expanded["NewerNoncurrentVersions"] = nve.newer_noncurrent_versions
        result["NoncurrentVersionExpiration"] = expanded

    if rule.noncurrent_version_transitions:
        result["NoncurrentVersionTransitions"] = [
            _expand_noncurrent_transition(t) for t in rule.noncurrent_version_transitions
        ]

    if rule.transitions:
        result["Transitions"] = [_expand_transition(t) for t in rule.transitions]

    abort = rule.abort_incomplete_multipart_upload
    if abort is not None and abort.days_after_initiation is not None:
        result["AbortIncompleteMultipartUpload"] = {"DaysAfterInitiation": abort.days_after_initiation}

    return result


def _expand_filter(rule_filter: RuleFilter) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if rule_filter.and_ is not None:
        result["And"] = _expand_and(rule_filter.and_)
    if rule_filter.object_size_greater_than is not None:
        result["ObjectSizeGreaterThan"] = rule_filter.object_size_greater_than
    if rule_filter.object_size_less_than is not None:
        result["ObjectSizeLessThan"] = rule_filter.object_size_less_than
    if rule_filter.prefix:
        result["Prefix"] = rule_filter.prefix
    if rule_filter.tag is not None:
        result["Tag"] = {"Key": rule_filter.tag.key, "Value": rule_filter.tag.value}
    return result


def _expand_and(operator: RuleAndOperator) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if operator.object_size_greater_than is not None:
        result["ObjectSizeGreaterThan"] = operator.object_size_greater_than
    if operator.object_size_less_than is not None:
        result["ObjectSizeLessThan"] = operator.object_size_less_than
    if operator.prefix:
        result["Prefix"] = operator.prefix
    if operator.tags:
        result["Tags"] = [{"Key": k, "Value": v} for k, v in sorted(operator.tags.items())]
    return result


def _expand_expiration(expiration: Expiration) -> dict[str, Any]:
    if expiration.date is not None:
        return {"Date": _to_datetime(expiration.date)}
    if expiration.days is not None:
        return {"Days": expiration.days}
    return {"ExpiredObjectDeleteMarker": expiration.expired_object_delete_marker}


def _expand_noncurrent_transition(transition: NoncurrentVersionTransition) -> dict[str, Any]:
    result: dict[str, Any] = {"StorageClass": transition.storage_class}
    if transition.noncurrent_days is not None:
        result["NoncurrentDays"] = transition.noncurrent_days
    if transition.newer_noncurrent_versions is not None:
        result["NewerNoncurrentVersions"] = transition.newer_noncurrent_versions
    return result


def _expand_transition(transition: Transition) -> dict[str, Any]:
    result: dict[str, Any] = {"StorageClass": transition.storage_class}
    if transition.date is not None:
        result["Date"] = _to_datetime(transition.date)
    else:
        result["Days"] = transition.days or 0
    return result


def flatten_lifecycle_rules(api_rules: Sequence[Mapping[str, Any]] | None) -> list[LifecycleRule]:
    """Convert the ``Rules`` of GetBucketLifecycleConfiguration back to rules.

    No validation is applied; whatever the API returned is represented.
    """
    return [_flatten_rule(rule) for rule in api_rules or []]


def _flatten_rule(rule: Mapping[str, Any]) -> LifecycleRule:
    rule_filter = rule.get("Filter")
    expiration = rule.get("Expiration")
    nve = rule.get("NoncurrentVersionExpiration")
    abort = rule.get("AbortIncompleteMultipartUpload")

    return LifecycleRule(
        id=rule.get("ID", ""),
        status=rule.get("Status", ""),
        prefix=rule.get("Prefix"),
        filter=_flatten_filter(rule_filter) if rule_filter is not None else None,
        expiration=_flatten_expiration(expiration) if expiration else None,
        noncurrent_version_expiration=(
            NoncurrentVersionExpiration(
                noncurrent_days=nve.get("NoncurrentDays") or None,
                newer_noncurrent_versions=nve.get("NewerNoncurrentVersions"),
            )
            if nve
            else None
        ),
        noncurrent_version_transitions=[
            NoncurrentVersionTransition(
                storage_class=t.get("StorageClass", ""),
                noncurrent_days=t.get("NoncurrentDays") or 0,
                newer_noncurrent_versions=t.get("NewerNoncurrentVersions"),
            )
            for t in rule.get("NoncurrentVersionTransitions") or []
        ],
        transitions=[
            Transition(
                storage_class=t.get("StorageClass", ""),
                date=normalize_date(t.get("Date")),
                days=(t.get("Days") or 0) if t.get("Date") is None else None,
            )
            for t in rule.get("Transitions") or []
        ],
        abort_incomplete_multipart_upload=(
            AbortIncompleteMultipartUpload(days_after_initiation=abort.get("DaysAfterInitiation")) if abort else None
        ),
    )


def _flatten_filter(rule_filter: Mapping[str, Any]) -> RuleFilter:
    and_ = rule_filter.get("And")
    tag = rule_filter.get("Tag")
    return RuleFilter(
        prefix=rule_filter.get("Prefix"),
        tag=Tag(key=tag.get("Key", ""), value=tag.get("Value", "")) if tag else None,
        object_size_greater_than=rule_filter.get("ObjectSizeGreaterThan"),
        object_size_less_than=rule_filter.get("ObjectSizeLessThan"),
        and_=(
            RuleAndOperator(
                prefix=and_.get("Prefix") or None,
                tags={t["Key"]: t.get("Value", "") for t in and_.get("Tags") or []},
                object_size_greater_than=and_.get("ObjectSizeGreaterThan"),
                object_size_less_than=and_.get("ObjectSizeLessThan"),
            )
            if and_
            else None
        ),
    )


def _flatten_expiration(expiration: Mapping[str, Any]) -> Expiration:
    return Expiration(
        date=normalize_date(expiration.get("Date")),
        # The API reports Days=0 when the expiration is date or marker based
        days=expiration.get("Days") or None,
        expired_object_delete_marker=bool(expiration.get("ExpiredObjectDeleteMarker", False)),
    )


def rules_semantically_equal(desired: Sequence[LifecycleRule], observed: Sequence[LifecycleRule]) -> bool:
    """Compare two rule lists ignoring rule order and prefix placement."""
    def key(rules: Sequence[LifecycleRule]) -> list[dict[str, Any]]:
        return sorted((r.semantic_spec() for r in rules), key=lambda s: s["id"])

    return key(desired) == key(observed)
