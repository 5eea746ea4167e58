"""Shared fixtures: a fake clock and an in-memory S3 lifecycle provider."""

from __future__ import annotations

import copy
from collections import deque
from typing import Any

import boto3
import pytest
from botocore.exceptions import ClientError

from s3_lifecycle_operator.config import OperatorConfig
from s3_lifecycle_operator.identity import ResourceIdentity
from s3_lifecycle_operator.reconciler import LifecycleReconciler

# Valid rules whose optional fields the API fills in or relocates on read.
EDGE_RULES = [
    {"id": "dayless-transition", "status": "Enabled", "transitions": [{"storageClass": "GLACIER"}]},
    {"id": "dayless-nvt", "status": "Enabled", "noncurrentVersionTransitions": [{"storageClass": "GLACIER"}]},
    {"id": "newer-only", "status": "Enabled", "noncurrentVersionExpiration": {"newerNoncurrentVersions": 2}},
    {"id": "top-prefix", "status": "Enabled", "prefix": "logs/", "expiration": {"days": 3}},
    {"id": "empty-filter", "status": "Enabled", "filter": {}, "expiration": {"days": 3}},
    {"id": "blank-prefix", "status": "Enabled", "filter": {"prefix": ""}, "expiration": {"days": 3}},
    {
        "id": "dated-transition",
        "status": "Enabled",
        "transitions": [{"storageClass": "GLACIER", "date": "2030-01-01T00:00:00Z"}],
    },
    {"id": "abort-only", "status": "Enabled", "abortIncompleteMultipartUpload": {"daysAfterInitiation": 7}},
    {
        "id": "two-tags",
        "status": "Enabled",
        "filter": {"and": {"tags": {"team": "core", "env": "prod"}}},
        "expiration": {"days": 3},
    },
    {"id": "markers", "status": "Enabled", "expiration": {"expiredObjectDeleteMarker": True}},
]


def client_error(code: str, operation: str = "GetBucketLifecycleConfiguration") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider:
    """Stands in for S3LifecycleProvider.

    ``gets``/``puts``/``deletes`` are queues of scripted outcomes: a value is
    returned, an exception is raised. Once a queue is empty, gets return the
    last written rules (or raise NoSuchLifecycleConfiguration) and writes succeed.
    """

    def __init__(self) -> None:
        self.gets: deque[Any] = deque()
        self.puts: deque[Any] = deque()
        self.deletes: deque[Any] = deque()
        self.put_calls: list[tuple[ResourceIdentity, list[dict[str, Any]]]] = []
        self.get_calls: list[ResourceIdentity] = []
        self.delete_calls: list[ResourceIdentity] = []
        self.stored: list[dict[str, Any]] | None = None

    @staticmethod
    def _outcome(queue: deque[Any]) -> Any:
        outcome = queue.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def put_bucket_lifecycle(self, identity: ResourceIdentity, rules: list[dict[str, Any]]) -> None:
        self.put_calls.append((identity, copy.deepcopy(rules)))
        if self.puts:
            self._outcome(self.puts)
        self.stored = copy.deepcopy(rules)

    def get_bucket_lifecycle(self, identity: ResourceIdentity) -> list[dict[str, Any]]:
        self.get_calls.append(identity)
        if self.gets:
            return copy.deepcopy(self._outcome(self.gets))
        if self.stored is None:
            raise client_error("NoSuchLifecycleConfiguration")
        return copy.deepcopy(self.stored)

    def delete_bucket_lifecycle(self, identity: ResourceIdentity) -> None:
        self.delete_calls.append(identity)
        if self.deletes:
            self._outcome(self.deletes)
        self.stored = None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_config() -> OperatorConfig:
    return OperatorConfig(
        bucket_propagation_timeout=30.0,
        rules_steady_timeout=20.0,
        extra_retry_delay=5.0,
        rules_status_timeout=30.0,
        rules_status_min_interval=10.0,
        rules_status_continuous_target=1,
        operation_timeout=600.0,
        retry_min_delay=1.0,
        retry_max_delay=4.0,
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def reconciler(provider: FakeProvider, fast_config: OperatorConfig, clock: FakeClock) -> LifecycleReconciler:
    return LifecycleReconciler(provider, fast_config, clock=clock, sleep=clock.sleep)


@pytest.fixture
def s3_client() -> Any:
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
