"""Typed lifecycle configuration built from a BucketLifecycleConfiguration spec.

Each block of the user-facing spec maps to a dataclass with explicit optional
fields. ``from_spec`` constructors convert and type-check the raw dict (keys are
accepted in camelCase or snake_case); ``validate`` enforces the constraints the
S3 API would otherwise reject. Validation errors name the offending rule.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from .constants import RULE_STATUSES, TRANSITION_STORAGE_CLASSES
from .errors import LifecycleValidationError
from .identity import ResourceIdentity, validate_account_id, validate_bucket_name

MAX_RULE_ID_LENGTH = 255

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def _get(spec: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Look up ``key`` in camelCase first, then its snake_case form."""
    if key in spec:
        return spec[key]
    return spec.get(_snake(key), default)


def _block(spec: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    """Return a nested block, accepting a single-element list as well as a dict."""
    value = _get(spec, key)
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise LifecycleValidationError(f"{key} must be an object")
    return value


def _int(value: Any, name: str, rule_id: str | None) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise LifecycleValidationError(f"{name} must be an integer", rule_id)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise LifecycleValidationError(f"{name} must be an integer, got {value!r}", rule_id) from None


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def normalize_date(value: Any, rule_id: str | None = None) -> str | None:
    """Normalise a timestamp to RFC 3339 UTC (``YYYY-MM-DDTHH:MM:SSZ``)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise LifecycleValidationError(f"date ({value}) must be an RFC 3339 UTC timestamp", rule_id) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_storage_class(storage_class: str, rule_id: str) -> None:
    if storage_class not in TRANSITION_STORAGE_CLASSES:
        raise LifecycleValidationError(
            f"storageClass ({storage_class}) must be one of {', '.join(TRANSITION_STORAGE_CLASSES)}",
            rule_id,
        )


def _check_size_bounds(greater_than: int | None, less_than: int | None, where: str, rule_id: str) -> None:
    if greater_than is not None and greater_than < 0:
        raise LifecycleValidationError(f"{where}.objectSizeGreaterThan must be at least 0", rule_id)
    if less_than is not None and less_than < 1:
        raise LifecycleValidationError(f"{where}.objectSizeLessThan must be at least 1", rule_id)
    if greater_than is not None and less_than is not None and greater_than >= less_than:
        raise LifecycleValidationError(
            f"{where}.objectSizeGreaterThan ({greater_than}) must be less than objectSizeLessThan ({less_than})",
            rule_id,
        )


@dataclass
class Tag:
    key: str
    value: str

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "Tag":
        key = _get(spec, "key")
        if not key:
            raise LifecycleValidationError("filter.tag.key is required", rule_id)
        value = _get(spec, "value")
        if value is None:
            raise LifecycleValidationError("filter.tag.value is required", rule_id)
        return cls(key=str(key), value=str(value))

    def to_spec(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value}


@dataclass
class RuleAndOperator:
    """Conjunction of filter predicates. At least two must be set."""

    prefix: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    object_size_greater_than: int | None = None
    object_size_less_than: int | None = None

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "RuleAndOperator":
        tags = _get(spec, "tags") or {}
        if not isinstance(tags, Mapping):
            raise LifecycleValidationError("filter.and.tags must be a map", rule_id)
        prefix = _get(spec, "prefix")
        return cls(
            prefix=str(prefix) if prefix else None,
            tags={str(k): str(v) for k, v in tags.items()},
            object_size_greater_than=_int(_get(spec, "objectSizeGreaterThan"), "filter.and.objectSizeGreaterThan", rule_id),
            object_size_less_than=_int(_get(spec, "objectSizeLessThan"), "filter.and.objectSizeLessThan", rule_id),
        )

    def members_set(self) -> int:
        # each tag is a predicate of its own
        return sum(
            [
                bool(self.prefix),
                len(self.tags),
                self.object_size_greater_than is not None,
                self.object_size_less_than is not None,
            ]
        )

    def validate(self, rule_id: str) -> None:
        _check_size_bounds(self.object_size_greater_than, self.object_size_less_than, "filter.and", rule_id)
        if self.members_set() < 2:
            raise LifecycleValidationError(
                "filter.and requires at least two of prefix, tags, objectSizeGreaterThan, objectSizeLessThan",
                rule_id,
            )

    def to_spec(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.prefix:
            result["prefix"] = self.prefix
        if self.tags:
            result["tags"] = dict(sorted(self.tags.items()))
        if self.object_size_greater_than is not None:
            result["objectSizeGreaterThan"] = self.object_size_greater_than
        if self.object_size_less_than is not None:
            result["objectSizeLessThan"] = self.object_size_less_than
        return result


@dataclass
class RuleFilter:
    """Which objects a rule applies to. The S3 filter is a union of its members."""

    prefix: str | None = None
    tag: Tag | None = None
    object_size_greater_than: int | None = None
    object_size_less_than: int | None = None
    and_: RuleAndOperator | None = None

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "RuleFilter":
        and_spec = _block(spec, "and")
        tag_spec = _block(spec, "tag")
        prefix = _get(spec, "prefix")
        return cls(
            prefix=str(prefix) if prefix is not None else None,
            tag=Tag.from_spec(tag_spec, rule_id) if tag_spec else None,
            object_size_greater_than=_int(_get(spec, "objectSizeGreaterThan"), "filter.objectSizeGreaterThan", rule_id),
            object_size_less_than=_int(_get(spec, "objectSizeLessThan"), "filter.objectSizeLessThan", rule_id),
            and_=RuleAndOperator.from_spec(and_spec, rule_id) if and_spec else None,
        )

    def is_empty(self) -> bool:
        return self.members_set() == 0

    def members_set(self) -> int:
        return sum(
            [
                bool(self.prefix),
                self.tag is not None,
                self.object_size_greater_than is not None,
                self.object_size_less_than is not None,
                self.and_ is not None,
            ]
        )

    def validate(self, rule_id: str) -> None:
        _check_size_bounds(self.object_size_greater_than, self.object_size_less_than, "filter", rule_id)
        if self.and_ is not None:
            self.and_.validate(rule_id)
        if self.members_set() > 1:
            raise LifecycleValidationError(
                "filter accepts only one of prefix, tag, objectSizeGreaterThan, objectSizeLessThan, and; "
                "use filter.and to combine predicates",
                rule_id,
            )

    def to_spec(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.prefix is not None:
            result["prefix"] = self.prefix
        if self.tag is not None:
            result["tag"] = self.tag.to_spec()
        if self.object_size_greater_than is not None:
            result["objectSizeGreaterThan"] = self.object_size_greater_than
        if self.object_size_less_than is not None:
            result["objectSizeLessThan"] = self.object_size_less_than
        if self.and_ is not None:
            result["and"] = self.and_.to_spec()
        return result


@dataclass
class Expiration:
    """Exactly one of ``date``, ``days`` or ``expired_object_delete_marker``."""

    date: str | None = None
    days: int | None = None
    expired_object_delete_marker: bool = False

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "Expiration":
        return cls(
            date=normalize_date(_get(spec, "date"), rule_id),
            days=_int(_get(spec, "days"), "expiration.days", rule_id),
            expired_object_delete_marker=_bool(_get(spec, "expiredObjectDeleteMarker", False)),
        )

    def validate(self, rule_id: str) -> None:
        if self.days is not None and self.days < 1:
            raise LifecycleValidationError("expiration.days must be a positive integer", rule_id)
        chosen = [
            name
            for name, is_set in (
                ("date", self.date is not None),
                ("days", self.days is not None),
                ("expiredObjectDeleteMarker", self.expired_object_delete_marker),
            )
            if is_set
        ]
        if len(chosen) > 1:
            raise LifecycleValidationError(
                f"expiration accepts only one of date, days, expiredObjectDeleteMarker; got {', '.join(chosen)}",
                rule_id,
            )
        if not chosen:
            raise LifecycleValidationError(
                "expiration requires one of date, days or expiredObjectDeleteMarker=true", rule_id
            )

    def to_spec(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.date is not None:
            result["date"] = self.date
        if self.days is not None:
            result["days"] = self.days
        if self.expired_object_delete_marker:
            result["expiredObjectDeleteMarker"] = True
        return result


@dataclass
class NoncurrentVersionExpiration:
    noncurrent_days: int | None = None
    newer_noncurrent_versions: int | None = None

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "NoncurrentVersionExpiration":
        return cls(
            noncurrent_days=_int(
                _get(spec, "noncurrentDays", _get(spec, "days")), "noncurrentVersionExpiration.noncurrentDays", rule_id
            ),
            newer_noncurrent_versions=_int(
                _get(spec, "newerNoncurrentVersions", _get(spec, "newerVersionsToKeep")),
                "noncurrentVersionExpiration.newerNoncurrentVersions",
                rule_id,
            ),
        )

    def validate(self, rule_id: str) -> None:
        if self.noncurrent_days is None and self.newer_noncurrent_versions is None:
            raise LifecycleValidationError(
                "noncurrentVersionExpiration requires noncurrentDays or newerNoncurrentVersions", rule_id
            )
        if self.noncurrent_days is not None and self.noncurrent_days < 1:
            raise LifecycleValidationError("noncurrentVersionExpiration.noncurrentDays must be at least 1", rule_id)
        if self.newer_noncurrent_versions is not None and self.newer_noncurrent_versions < 1:
            raise LifecycleValidationError(
                "noncurrentVersionExpiration.newerNoncurrentVersions must be at least 1", rule_id
            )

    def to_spec(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.noncurrent_days is not None:
            result["noncurrentDays"] = self.noncurrent_days
        if self.newer_noncurrent_versions is not None:
            result["newerNoncurrentVersions"] = self.newer_noncurrent_versions
        return result


@dataclass
class NoncurrentVersionTransition:
    storage_class: str
    noncurrent_days: int | None = None
    newer_noncurrent_versions: int | None = None

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "NoncurrentVersionTransition":
        noncurrent_days = _int(
            _get(spec, "noncurrentDays", _get(spec, "days")), "noncurrentVersionTransitions.noncurrentDays", rule_id
        )
        return cls(
            storage_class=str(_get(spec, "storageClass") or ""),
            # the API reports an unset NoncurrentDays as 0
            noncurrent_days=0 if noncurrent_days is None else noncurrent_days,
            newer_noncurrent_versions=_int(
                _get(spec, "newerNoncurrentVersions"), "noncurrentVersionTransitions.newerNoncurrentVersions", rule_id
            ),
        )

    def sort_key(self) -> tuple:
        return (self.noncurrent_days or 0, self.storage_class, self.newer_noncurrent_versions or 0)

    def validate(self, rule_id: str) -> None:
        _check_storage_class(self.storage_class, rule_id)
        if self.noncurrent_days is not None and self.noncurrent_days < 0:
            raise LifecycleValidationError("noncurrentVersionTransitions.noncurrentDays must be at least 0", rule_id)
        if self.newer_noncurrent_versions is not None and self.newer_noncurrent_versions < 1:
            raise LifecycleValidationError(
                "noncurrentVersionTransitions.newerNoncurrentVersions must be at least 1", rule_id
            )

    def to_spec(self) -> dict[str, Any]:
        result: dict[str, Any] = {"storageClass": self.storage_class}
        if self.noncurrent_days is not None:
            result["noncurrentDays"] = self.noncurrent_days
        if self.newer_noncurrent_versions is not None:
            result["newerNoncurrentVersions"] = self.newer_noncurrent_versions
        return result


@dataclass
class Transition:
    storage_class: str
    date: str | None = None
    days: int | None = None

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "Transition":
        date = normalize_date(_get(spec, "date"), rule_id)
        days = _int(_get(spec, "days"), "transitions.days", rule_id)
        if date is None and days is None:
            # sent as Days=0, and read back that way
            days = 0
        return cls(storage_class=str(_get(spec, "storageClass") or ""), date=date, days=days)

    def sort_key(self) -> tuple:
        return (self.date or "", self.days if self.days is not None else -1, self.storage_class)

    def validate(self, rule_id: str) -> None:
        _check_storage_class(self.storage_class, rule_id)
        if self.date is not None and self.days is not None:
            raise LifecycleValidationError("transitions accept only one of date, days", rule_id)
        if self.days is not None and self.days < 0:
            raise LifecycleValidationError("transitions.days must be at least 0", rule_id)

    def to_spec(self) -> dict[str, Any]:
        result: dict[str, Any] = {"storageClass": self.storage_class}
        if self.date is not None:
            result["date"] = self.date
        if self.days is not None:
            result["days"] = self.days
        return result


@dataclass
class AbortIncompleteMultipartUpload:
    days_after_initiation: int | None = None

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any], rule_id: str | None = None) -> "AbortIncompleteMultipartUpload":
        return cls(
            days_after_initiation=_int(
                _get(spec, "daysAfterInitiation"), "abortIncompleteMultipartUpload.daysAfterInitiation", rule_id
            )
        )

    def validate(self, rule_id: str) -> None:
        if self.days_after_initiation is None:
            raise LifecycleValidationError("abortIncompleteMultipartUpload.daysAfterInitiation is required", rule_id)
        if self.days_after_initiation < 1:
            raise LifecycleValidationError("abortIncompleteMultipartUpload.daysAfterInitiation must be at least 1", rule_id)

    def to_spec(self) -> dict[str, Any]:
        if self.days_after_initiation is None:
            return {}
        return {"daysAfterInitiation": self.days_after_initiation}


@dataclass
class LifecycleRule:
    """A single lifecycle rule in its user-facing shape."""

    id: str
    status: str
    prefix: str | None = None
    filter: RuleFilter | None = None
    expiration: Expiration | None = None
    noncurrent_version_expiration: NoncurrentVersionExpiration | None = None
    noncurrent_version_transitions: list[NoncurrentVersionTransition] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    abort_incomplete_multipart_upload: AbortIncompleteMultipartUpload | None = None

    def __post_init__(self) -> None:
        # Transition blocks are sets; keep them in a stable order
        self.transitions = sorted(self.transitions, key=Transition.sort_key)
        self.noncurrent_version_transitions = sorted(
            self.noncurrent_version_transitions, key=NoncurrentVersionTransition.sort_key
        )

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any]) -> "LifecycleRule":
        if not isinstance(spec, Mapping):
            raise LifecycleValidationError("each rule must be an object")
        rule_id = str(_get(spec, "id") or "")

        filter_spec = _block(spec, "filter")
        expiration_spec = _block(spec, "expiration")
        nve_spec = _block(spec, "noncurrentVersionExpiration")
        abort_spec = _block(spec, "abortIncompleteMultipartUpload")
        prefix = _get(spec, "prefix")

        return cls(
            id=rule_id,
            status=str(_get(spec, "status") or ""),
            prefix=str(prefix) if prefix is not None else None,
            filter=RuleFilter.from_spec(filter_spec, rule_id) if filter_spec is not None else None,
            expiration=Expiration.from_spec(expiration_spec, rule_id) if expiration_spec is not None else None,
            noncurrent_version_expiration=(
                NoncurrentVersionExpiration.from_spec(nve_spec, rule_id) if nve_spec is not None else None
            ),
            noncurrent_version_transitions=[
                NoncurrentVersionTransition.from_spec(t, rule_id)
                for t in _get(spec, "noncurrentVersionTransitions", _get(spec, "noncurrentVersionTransition")) or []
            ],
            transitions=[Transition.from_spec(t, rule_id) for t in _get(spec, "transitions", _get(spec, "transition")) or []],
            abort_incomplete_multipart_upload=(
                AbortIncompleteMultipartUpload.from_spec(abort_spec, rule_id) if abort_spec is not None else None
            ),
        )

    def validate(self) -> None:
        if not self.id or len(self.id) > MAX_RULE_ID_LENGTH:
            raise LifecycleValidationError(
                f"id must be between 1 and {MAX_RULE_ID_LENGTH} characters", self.id or None
            )
        if self.status not in RULE_STATUSES:
            raise LifecycleValidationError(
                f"status ({self.status}) must be one of {', '.join(RULE_STATUSES)}", self.id
            )
        if self.filter is not None:
            self.filter.validate(self.id)
            if self.prefix and not self.filter.is_empty():
                raise LifecycleValidationError(
                    "prefix cannot be combined with filter; use filter.prefix or filter.and.prefix", self.id
                )
        if self.expiration is not None:
            self.expiration.validate(self.id)
        if self.noncurrent_version_expiration is not None:
            self.noncurrent_version_expiration.validate(self.id)
        for nvt in self.noncurrent_version_transitions:
            nvt.validate(self.id)
        for transition in self.transitions:
            transition.validate(self.id)
        if self.abort_incomplete_multipart_upload is not None:
            self.abort_incomplete_multipart_upload.validate(self.id)

    def to_spec(self) -> dict[str, Any]:
        """Render the rule in its camelCase spec shape, omitting unset fields."""
        result: dict[str, Any] = {"id": self.id, "status": self.status}
        if self.prefix:
            result["prefix"] = self.prefix
        if self.filter is not None:
            result["filter"] = self.filter.to_spec()
        if self.expiration is not None:
            result["expiration"] = self.expiration.to_spec()
        if self.noncurrent_version_expiration is not None:
            result["noncurrentVersionExpiration"] = self.noncurrent_version_expiration.to_spec()
        if self.noncurrent_version_transitions:
            result["noncurrentVersionTransitions"] = [t.to_spec() for t in self.noncurrent_version_transitions]
        if self.transitions:
            result["transitions"] = [t.to_spec() for t in self.transitions]
        if self.abort_incomplete_multipart_upload is not None:
            result["abortIncompleteMultipartUpload"] = self.abort_incomplete_multipart_upload.to_spec()
        return result

    def effective_prefix(self) -> str:
        """Prefix the rule applies to, whichever of the two prefix fields holds it."""
        if self.filter is not None and self.filter.prefix:
            return self.filter.prefix
        return self.prefix or ""

    def semantic_spec(self) -> dict[str, Any]:
        """Spec shape with the prefix folded into one place.

        A prefix may round-trip through the API as either the deprecated
        top-level ``prefix`` or ``filter.prefix``; two rules with equal
        semantic specs select and act on the same objects.
        """
        result = self.to_spec()
        result.pop("prefix", None)
        filter_spec = result.pop("filter", {})
        filter_spec.pop("prefix", None)
        result["prefix"] = self.effective_prefix()
        if filter_spec:
            result["filter"] = filter_spec
        return result


@dataclass
class BucketLifecycleConfig:
    """Desired lifecycle policy for one bucket."""

    bucket: str
    rules: list[LifecycleRule]
    expected_bucket_owner: str = ""

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any]) -> "BucketLifecycleConfig":
        rules_spec = _get(spec, "rules", _get(spec, "rule"))
        if rules_spec is None:
            raise LifecycleValidationError("rules is required")
        if not isinstance(rules_spec, list):
            raise LifecycleValidationError("rules must be a list")
        config = cls(
            bucket=str(_get(spec, "bucket") or ""),
            expected_bucket_owner=str(_get(spec, "expectedBucketOwner") or ""),
            rules=[LifecycleRule.from_spec(r) for r in rules_spec],
        )
        config.validate()
        return config

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(bucket=self.bucket, expected_bucket_owner=self.expected_bucket_owner)

    def validate(self) -> None:
        validate_bucket_name(self.bucket)
        validate_account_id(self.expected_bucket_owner)
        if not self.rules:
            raise LifecycleValidationError("at least one rule is required")
        seen: set[str] = set()
        for rule in self.rules:
            rule.validate()
            if rule.id in seen:
                raise LifecycleValidationError("duplicate rule id", rule.id)
            seen.add(rule.id)

    def rules_spec(self) -> list[dict[str, Any]]:
        return [rule.to_spec() for rule in self.rules]
