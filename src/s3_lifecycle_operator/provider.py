"""S3 client wrapper for the lifecycle and tagging control-plane calls."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator

from . import metrics
from .identity import ResourceIdentity

logger = logging.getLogger(__name__)


class S3LifecycleProvider:
    """Thin instrumented wrapper around a boto3 S3 client.

    Errors from botocore propagate unchanged; callers classify them.
    """

    def __init__(self, s3_client: Any) -> None:
        self.client = s3_client

    @contextmanager
    def _instrument(self, operation: str) -> Iterator[None]:
        start_time = time.time()
        try:
            yield
            metrics.api_call_total.labels(api_type="s3", operation=operation, result="success").inc()
        except Exception:
            metrics.api_call_total.labels(api_type="s3", operation=operation, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="s3", operation=operation).observe(duration)

    def put_bucket_lifecycle(self, identity: ResourceIdentity, rules: list[dict[str, Any]]) -> None:
        with self._instrument("put_bucket_lifecycle_configuration"):
            self.client.put_bucket_lifecycle_configuration(
                LifecycleConfiguration={"Rules": rules},
                **identity.api_params(),
            )

    def get_bucket_lifecycle(self, identity: ResourceIdentity) -> list[dict[str, Any]]:
        """Return the raw ``Rules`` list of the bucket's lifecycle configuration."""
        with self._instrument("get_bucket_lifecycle_configuration"):
            response = self.client.get_bucket_lifecycle_configuration(**identity.api_params())
        return response.get("Rules", [])

    def delete_bucket_lifecycle(self, identity: ResourceIdentity) -> None:
        with self._instrument("delete_bucket_lifecycle"):
            self.client.delete_bucket_lifecycle(**identity.api_params())

    def get_bucket_tagging(self, bucket: str) -> list[dict[str, str]]:
        with self._instrument("get_bucket_tagging"):
            response = self.client.get_bucket_tagging(Bucket=bucket)
        return response.get("TagSet", [])

    def put_bucket_tagging(self, bucket: str, tag_set: list[dict[str, str]]) -> None:
        with self._instrument("put_bucket_tagging"):
            self.client.put_bucket_tagging(Bucket=bucket, Tagging={"TagSet": tag_set})

    def delete_bucket_tagging(self, bucket: str) -> None:
        with self._instrument("delete_bucket_tagging"):
            self.client.delete_bucket_tagging(Bucket=bucket)

    def get_object_tagging(self, bucket: str, key: str) -> list[dict[str, str]]:
        with self._instrument("get_object_tagging"):
            response = self.client.get_object_tagging(Bucket=bucket, Key=key)
        return response.get("TagSet", [])

    def put_object_tagging(self, bucket: str, key: str, tag_set: list[dict[str, str]]) -> None:
        with self._instrument("put_object_tagging"):
            self.client.put_object_tagging(Bucket=bucket, Key=key, Tagging={"TagSet": tag_set})

    def delete_object_tagging(self, bucket: str, key: str) -> None:
        with self._instrument("delete_object_tagging"):
            self.client.delete_object_tagging(Bucket=bucket, Key=key)
