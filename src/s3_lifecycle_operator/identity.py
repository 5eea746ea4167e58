"""Encoding of the (bucket, expected owner) pair into a single resource ID."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .constants import RESOURCE_ID_SEPARATOR
from .errors import LifecycleValidationError, ResourceIdFormatError

MAX_BUCKET_NAME_LENGTH = 63

_ACCOUNT_ID_RE = re.compile(r"^\d{12}$")


@dataclass(frozen=True)
class ResourceIdentity:
    """Identity of a lifecycle configuration. Immutable once created."""

    bucket: str
    expected_bucket_owner: str = ""

    def encode(self) -> str:
        return create_resource_id(self.bucket, self.expected_bucket_owner)

    @classmethod
    def decode(cls, resource_id: str) -> "ResourceIdentity":
        return parse_resource_id(resource_id)

    def api_params(self) -> dict[str, str]:
        """Keyword arguments identifying the bucket on every S3 call."""
        params = {"Bucket": self.bucket}
        if self.expected_bucket_owner:
            params["ExpectedBucketOwner"] = self.expected_bucket_owner
        return params


def validate_bucket_name(bucket: str) -> None:
    if not bucket or len(bucket) > MAX_BUCKET_NAME_LENGTH:
        raise LifecycleValidationError(
            f"bucket must be between 1 and {MAX_BUCKET_NAME_LENGTH} characters, got {len(bucket or '')}"
        )
    if RESOURCE_ID_SEPARATOR in bucket:
        raise LifecycleValidationError(f"bucket ({bucket}) must not contain {RESOURCE_ID_SEPARATOR!r}")


def validate_account_id(account_id: str) -> None:
    if account_id and not _ACCOUNT_ID_RE.match(account_id):
        raise LifecycleValidationError(f"expected_bucket_owner ({account_id}) must be a 12-digit AWS account ID")


def create_resource_id(bucket: str, expected_bucket_owner: str = "") -> str:
    """Build the persisted ID: ``BUCKET,EXPECTED_BUCKET_OWNER``.

    The separator is always present so an ID without an owner (``BUCKET,``)
    is distinguishable from a truncated or foreign value.
    """
    return RESOURCE_ID_SEPARATOR.join([bucket, expected_bucket_owner or ""])


def parse_resource_id(resource_id: str) -> ResourceIdentity:
    """Split a persisted ID back into its parts.

    Raises:
        ResourceIdFormatError: If the ID has no separator, more than one, or an empty bucket.
    """
    if not resource_id:
        raise ResourceIdFormatError(resource_id)

    parts = resource_id.split(RESOURCE_ID_SEPARATOR)
    if len(parts) != 2 or not parts[0]:
        raise ResourceIdFormatError(resource_id)

    bucket, expected_bucket_owner = parts
    return ResourceIdentity(bucket=bucket, expected_bucket_owner=expected_bucket_owner)
