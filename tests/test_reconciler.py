from __future__ import annotations

import pytest

from s3_lifecycle_operator.errors import (
    ImmutableFieldError,
    LifecycleValidationError,
    OperationTimeoutError,
    RemoteFault,
    ResourceIdFormatError,
    TransientNotFound,
)
from s3_lifecycle_operator.identity import ResourceIdentity
from s3_lifecycle_operator.models import BucketLifecycleConfig
from s3_lifecycle_operator.reconciler import LifecycleReconciler, ReconcileState
from s3_lifecycle_operator.utils.polling import Deadline

from .conftest import EDGE_RULES, FakeClock, FakeProvider, client_error

LOGS_RULE = {"id": "r1", "status": "Enabled", "filter": {"prefix": "logs/"}, "expiration": {"days": 30}}
LOGS_API_RULE = {"ID": "r1", "Status": "Enabled", "Filter": {"Prefix": "logs/"}, "Expiration": {"Days": 30}}


def lifecycle_spec(bucket: str = "my-bucket", owner: str = "", rules: list | None = None) -> dict:
    spec = {"bucket": bucket, "rules": rules or [LOGS_RULE]}
    if owner:
        spec["expectedBucketOwner"] = owner
    return spec


def test_create_writes_rules_and_waits_for_stable_read(
    reconciler: LifecycleReconciler, provider: FakeProvider
) -> None:
    result = reconciler.create(lifecycle_spec())

    assert result.state is ReconcileState.STABLE
    assert result.resource_id == "my-bucket,"
    assert result.stable
    assert [r.to_spec() for r in result.rules] == [LOGS_RULE]

    (identity, rules), = provider.put_calls
    assert identity == ResourceIdentity("my-bucket")
    assert rules == [LOGS_API_RULE]
    # one read for the status wait, then two agreeing reads
    assert len(provider.get_calls) == 3


def test_create_with_owner_tracks_owner_in_id(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    result = reconciler.create(lifecycle_spec(owner="123456789012"))

    assert result.resource_id == "my-bucket,123456789012"
    assert provider.put_calls[0][0].expected_bucket_owner == "123456789012"


def test_create_validates_before_any_remote_call(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    bad = dict(LOGS_RULE, expiration={"date": "2030-01-01T00:00:00Z", "days": 30})

    with pytest.raises(LifecycleValidationError, match=r"rule \(r1\)"):
        reconciler.create(lifecycle_spec(rules=[bad]))

    assert provider.put_calls == []
    assert provider.get_calls == []


def test_create_retries_while_bucket_is_propagating(
    reconciler: LifecycleReconciler, provider: FakeProvider, clock: FakeClock
) -> None:
    provider.puts.extend(
        [
            client_error("NoSuchBucket", "PutBucketLifecycleConfiguration"),
            client_error("NoSuchBucket", "PutBucketLifecycleConfiguration"),
            None,
        ]
    )

    result = reconciler.create(lifecycle_spec())

    assert result.state is ReconcileState.STABLE
    assert len(provider.put_calls) == 3
    assert clock.sleeps[:2] == [1.0, 2.0]


def test_create_gives_up_when_bucket_never_appears(
    reconciler: LifecycleReconciler, provider: FakeProvider
) -> None:
    provider.puts.extend(client_error("NoSuchBucket", "PutBucketLifecycleConfiguration") for _ in range(50))

    with pytest.raises(RemoteFault) as excinfo:
        reconciler.create(lifecycle_spec())

    assert excinfo.value.code == "NoSuchBucket"
    assert "creating S3 Bucket Lifecycle Configuration" in str(excinfo.value)


def test_create_does_not_retry_other_errors(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.puts.append(client_error("AccessDenied", "PutBucketLifecycleConfiguration"))

    with pytest.raises(RemoteFault) as excinfo:
        reconciler.create(lifecycle_spec())

    assert excinfo.value.code == "AccessDenied"
    assert len(provider.put_calls) == 1


def test_create_rides_out_stale_reads(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    old_rule = dict(LOGS_API_RULE, Expiration={"Days": 7})
    provider.gets.extend(
        [
            [LOGS_API_RULE],  # status wait
            [old_rule],
            [LOGS_API_RULE],
            [LOGS_API_RULE],
        ]
    )

    result = reconciler.create(lifecycle_spec())

    assert result.rules[0].expiration.days == 30
    assert len(provider.get_calls) == 4


def test_new_resource_that_never_becomes_readable_is_transient_not_found(
    reconciler: LifecycleReconciler, provider: FakeProvider
) -> None:
    provider.gets.extend(client_error("NoSuchLifecycleConfiguration") for _ in range(50))

    with pytest.raises(TransientNotFound) as excinfo:
        reconciler.create(lifecycle_spec())

    assert excinfo.value.code == "NoSuchLifecycleConfiguration"


def test_rules_status_wait_failure_is_not_fatal(
    reconciler: LifecycleReconciler, provider: FakeProvider
) -> None:
    disabled = dict(LOGS_API_RULE, Status="Disabled")
    # status wait sees the stale status until its window closes, then the read path settles
    provider.gets.extend([[disabled]] * 4)

    result = reconciler.create(lifecycle_spec())

    assert result.state is ReconcileState.STABLE
    assert result.rules[0].status == "Enabled"


def test_read_of_deleted_configuration_is_absent(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    result = reconciler.read("my-bucket,")

    assert result.state is ReconcileState.ABSENT
    assert not result.exists
    assert result.resource_id == ""


def test_read_of_deleted_bucket_is_absent(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.gets.append(client_error("NoSuchBucket"))

    result = reconciler.read("my-bucket,")

    assert result.state is ReconcileState.ABSENT


def test_read_wraps_other_errors(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.gets.append(client_error("AccessDenied"))

    with pytest.raises(RemoteFault) as excinfo:
        reconciler.read("my-bucket,")

    assert str(excinfo.value).startswith("error reading S3 Bucket Lifecycle Configuration (my-bucket,)")


def test_read_rejects_malformed_id(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    with pytest.raises(ResourceIdFormatError):
        reconciler.read("my-bucket")
    assert provider.get_calls == []


def test_read_falls_back_to_last_read_when_unstable(
    reconciler: LifecycleReconciler, provider: FakeProvider
) -> None:
    seven = dict(LOGS_API_RULE, Expiration={"Days": 7})
    provider.gets.extend([[LOGS_API_RULE], [seven], [LOGS_API_RULE], [seven]])
    provider.stored = [dict(LOGS_API_RULE, Expiration={"Days": 90})]

    result = reconciler.read("my-bucket,")

    assert result.state is ReconcileState.STABLE
    assert not result.stable
    assert result.rules[0].expiration.days == 90
    assert result.to_status()["stable"] is False


def test_update_replaces_rules(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.stored = [LOGS_API_RULE]
    new_rule = dict(LOGS_RULE, expiration={"days": 60})

    result = reconciler.update("my-bucket,", lifecycle_spec(rules=[new_rule]))

    assert result.rules[0].expiration.days == 60
    assert provider.put_calls[-1][1][0]["Expiration"] == {"Days": 60}


@pytest.mark.parametrize(
    ("spec", "field_name"),
    [
        (lifecycle_spec(bucket="other-bucket"), "bucket"),
        (lifecycle_spec(owner="123456789012"), "expected_bucket_owner"),
    ],
)
def test_update_refuses_identity_changes(
    reconciler: LifecycleReconciler, provider: FakeProvider, spec: dict, field_name: str
) -> None:
    with pytest.raises(ImmutableFieldError) as excinfo:
        reconciler.update("my-bucket,", spec)

    assert excinfo.value.field_name == field_name
    assert provider.put_calls == []


def test_delete_removes_configuration(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.stored = [LOGS_API_RULE]

    result = reconciler.delete("my-bucket,123456789012")

    assert result.state is ReconcileState.ABSENT
    assert provider.delete_calls == [ResourceIdentity("my-bucket", "123456789012")]


@pytest.mark.parametrize("code", ["NoSuchLifecycleConfiguration", "NoSuchBucket"])
def test_delete_of_absent_configuration_succeeds(
    reconciler: LifecycleReconciler, provider: FakeProvider, code: str
) -> None:
    provider.deletes.append(client_error(code, "DeleteBucketLifecycle"))

    result = reconciler.delete("my-bucket,")

    assert result.state is ReconcileState.ABSENT


def test_delete_wraps_other_errors(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.deletes.append(client_error("AccessDenied", "DeleteBucketLifecycle"))

    with pytest.raises(RemoteFault) as excinfo:
        reconciler.delete("my-bucket,")

    assert excinfo.value.code == "AccessDenied"
    assert "deleting" in str(excinfo.value)


def test_cancelled_deadline_aborts_create(
    reconciler: LifecycleReconciler, provider: FakeProvider, clock: FakeClock
) -> None:
    deadline = Deadline(600, clock=clock)
    deadline.cancel()

    with pytest.raises(OperationTimeoutError) as excinfo:
        reconciler.create(lifecycle_spec(), deadline=deadline)

    assert excinfo.value.cancelled
    assert provider.put_calls == []


def test_reconcile_without_id_creates(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    result = reconciler.reconcile(lifecycle_spec())

    assert result.resource_id == "my-bucket,"
    assert len(provider.put_calls) == 1


def test_reconcile_in_sync_does_not_write(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.stored = [LOGS_API_RULE]

    result = reconciler.reconcile(lifecycle_spec(), resource_id="my-bucket,")

    assert result.stable
    assert provider.put_calls == []


@pytest.mark.parametrize("rule", EDGE_RULES, ids=[r["id"] for r in EDGE_RULES])
def test_second_reconcile_of_unchanged_spec_does_not_write(
    reconciler: LifecycleReconciler, provider: FakeProvider, rule: dict
) -> None:
    spec = lifecycle_spec(rules=[rule])

    first = reconciler.reconcile(spec)
    second = reconciler.reconcile(spec, resource_id=first.resource_id)

    assert second.stable
    assert len(provider.put_calls) == 1


def test_all_objects_rule_end_to_end(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    spec = {"bucket": "my-bucket", "rules": [{"id": "expire-old", "status": "Enabled", "expiration": {"days": 30}}]}

    result = reconciler.reconcile(spec)

    assert result.resource_id == "my-bucket,"
    (_, rules), = provider.put_calls
    assert rules == [
        {"ID": "expire-old", "Status": "Enabled", "Filter": {"Prefix": ""}, "Expiration": {"Days": 30}}
    ]

    read = reconciler.read("my-bucket,")
    assert read.rules[0].id == "expire-old"
    assert read.rules[0].expiration.days == 30


def test_reconcile_corrects_drift(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.stored = [dict(LOGS_API_RULE, Expiration={"Days": 1})]

    result = reconciler.reconcile(lifecycle_spec(), resource_id="my-bucket,")

    assert len(provider.put_calls) == 1
    assert result.rules[0].expiration.days == 30


def test_reconcile_recreates_configuration_deleted_out_of_band(
    reconciler: LifecycleReconciler, provider: FakeProvider
) -> None:
    result = reconciler.reconcile(lifecycle_spec(), resource_id="my-bucket,")

    assert result.state is ReconcileState.STABLE
    assert len(provider.put_calls) == 1


def test_reconcile_replaces_on_bucket_change(reconciler: LifecycleReconciler, provider: FakeProvider) -> None:
    provider.stored = [LOGS_API_RULE]

    result = reconciler.reconcile(lifecycle_spec(bucket="new-bucket"), resource_id="old-bucket,")

    assert provider.delete_calls == [ResourceIdentity("old-bucket")]
    assert provider.put_calls[0][0] == ResourceIdentity("new-bucket")
    assert result.resource_id == "new-bucket,"


def test_reconciler_accepts_typed_config(reconciler: LifecycleReconciler) -> None:
    config = BucketLifecycleConfig.from_spec(lifecycle_spec())

    assert reconciler.create(config).identity == config.identity
