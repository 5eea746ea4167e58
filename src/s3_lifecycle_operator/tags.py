"""Bucket and object tag synchronisation that preserves system-managed tags.

A stored tag set mixes tags the user manages with tags set by the provider
(``aws:``-prefixed, or simply tags the user never declared). Updates must only
touch the user's tags: system tags are always written back.
"""

from __future__ import annotations

import logging
from typing import Mapping

from botocore.exceptions import ClientError

from .constants import AWS_TAG_PREFIX, ERR_CODE_NO_SUCH_TAG_SET, ERR_CODE_NO_SUCH_TAG_SET_ERROR
from .errors import RemoteFault, is_error_code
from .provider import S3LifecycleProvider

logger = logging.getLogger(__name__)

TagSet = dict[str, str]


def tags_from_api(tag_set: list[dict[str, str]] | None) -> TagSet:
    return {t["Key"]: t.get("Value", "") for t in tag_set or []}


def tags_to_api(tags: Mapping[str, str]) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def ignore_system(tags: Mapping[str, str]) -> TagSet:
    """Drop ``aws:``-prefixed tags, which users may not write."""
    return {k: v for k, v in tags.items() if not k.startswith(AWS_TAG_PREFIX)}


def system_tags(stored: Mapping[str, str], old_tags: Mapping[str, str], new_tags: Mapping[str, str]) -> TagSet:
    """Stored tags that did not originate from the user's configuration."""
    known = set(old_tags) | set(new_tags)
    return {k: v for k, v in stored.items() if k.startswith(AWS_TAG_PREFIX) or k not in known}


def list_bucket_tags(provider: S3LifecycleProvider, bucket: str) -> TagSet:
    """List bucket tags. A bucket without a tag set has no tags."""
    try:
        return tags_from_api(provider.get_bucket_tagging(bucket))
    except ClientError as e:
        if is_error_code(e, ERR_CODE_NO_SUCH_TAG_SET, ERR_CODE_NO_SUCH_TAG_SET_ERROR):
            return {}
        raise RemoteFault("listing resource tags", bucket, e) from e


def update_bucket_tags(
    provider: S3LifecycleProvider,
    bucket: str,
    old_tags: Mapping[str, str] | None,
    new_tags: Mapping[str, str] | None,
) -> None:
    """Replace the user's bucket tags, keeping system tags.

    Writes new user tags merged with system tags; if both are empty and the
    user previously had tags, deletes the tag set; otherwise does nothing.
    """
    old_tags = dict(old_tags or {})
    new_tags = ignore_system(new_tags or {})

    stored = list_bucket_tags(provider, bucket)
    sys_tags = system_tags(stored, old_tags, new_tags)
    merged = {**sys_tags, **new_tags}

    try:
        if merged:
            provider.put_bucket_tagging(bucket, tags_to_api(merged))
            logger.debug("Set %d tag(s) on bucket %s (%d system)", len(merged), bucket, len(sys_tags))
        elif old_tags or stored:
            provider.delete_bucket_tagging(bucket)
            logger.debug("Deleted tag set of bucket %s", bucket)
    except ClientError as e:
        raise RemoteFault("setting resource tags", bucket, e) from e


def list_object_tags(provider: S3LifecycleProvider, bucket: str, key: str) -> TagSet:
    identifier = f"{bucket}/{key}"
    try:
        return tags_from_api(provider.get_object_tagging(bucket, key))
    except ClientError as e:
        if is_error_code(e, ERR_CODE_NO_SUCH_TAG_SET, ERR_CODE_NO_SUCH_TAG_SET_ERROR):
            return {}
        raise RemoteFault("listing resource tags", identifier, e) from e


def update_object_tags(
    provider: S3LifecycleProvider,
    bucket: str,
    key: str,
    old_tags: Mapping[str, str] | None,
    new_tags: Mapping[str, str] | None,
) -> None:
    """Replace the user's object tags, keeping system tags."""
    identifier = f"{bucket}/{key}"
    old_tags = dict(old_tags or {})
    new_tags = ignore_system(new_tags or {})

    stored = list_object_tags(provider, bucket, key)
    sys_tags = system_tags(stored, old_tags, new_tags)
    merged = {**sys_tags, **new_tags}

    try:
        if merged:
            provider.put_object_tagging(bucket, key, tags_to_api(merged))
        elif old_tags or stored:
            provider.delete_object_tagging(bucket, key)
    except ClientError as e:
        raise RemoteFault("setting resource tags", identifier, e) from e
