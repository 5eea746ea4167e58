from __future__ import annotations

import pytest

from s3_lifecycle_operator.errors import LifecycleValidationError, ResourceIdFormatError
from s3_lifecycle_operator.identity import (
    ResourceIdentity,
    create_resource_id,
    parse_resource_id,
    validate_account_id,
    validate_bucket_name,
)


@pytest.mark.parametrize(
    ("bucket", "owner"),
    [
        ("my-bucket", ""),
        ("my-bucket", "123456789012"),
        ("a", ""),
        ("b" * 63, "000000000000"),
        ("with.dots.bucket", "111122223333"),
    ],
)
def test_resource_id_round_trips(bucket: str, owner: str) -> None:
    identity = parse_resource_id(create_resource_id(bucket, owner))
    assert identity == ResourceIdentity(bucket=bucket, expected_bucket_owner=owner)


def test_resource_id_with_and_without_owner_are_distinct() -> None:
    assert create_resource_id("my-bucket") != create_resource_id("my-bucket", "123456789012")
    assert create_resource_id("my-bucket", "123456789012") == "my-bucket,123456789012"


def test_absent_owner_decodes_to_empty_string() -> None:
    identity = ResourceIdentity.decode(ResourceIdentity("my-bucket").encode())
    assert identity.expected_bucket_owner == ""


@pytest.mark.parametrize("bad_id", ["", "my-bucket", ",123456789012", "a,b,c", ",,"])
def test_malformed_resource_id_raises_format_error(bad_id: str) -> None:
    with pytest.raises(ResourceIdFormatError) as excinfo:
        parse_resource_id(bad_id)
    assert "unexpected format for ID" in str(excinfo.value)


def test_api_params_include_owner_only_when_set() -> None:
    assert ResourceIdentity("b").api_params() == {"Bucket": "b"}
    assert ResourceIdentity("b", "123456789012").api_params() == {
        "Bucket": "b",
        "ExpectedBucketOwner": "123456789012",
    }


def test_bucket_and_owner_validation() -> None:
    validate_bucket_name("my-bucket")
    validate_account_id("")
    validate_account_id("123456789012")

    with pytest.raises(LifecycleValidationError):
        validate_bucket_name("")
    with pytest.raises(LifecycleValidationError):
        validate_bucket_name("x" * 64)
    with pytest.raises(LifecycleValidationError):
        validate_bucket_name("a,b")
    with pytest.raises(LifecycleValidationError):
        validate_account_id("12345")
    with pytest.raises(LifecycleValidationError):
        validate_account_id("12345678901a")
