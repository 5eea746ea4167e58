"""Build an S3 provider client from a Provider CRD spec."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from kubernetes import client

from ..provider import S3LifecycleProvider
from ..utils.secrets import get_secret_value


def create_provider_from_spec(
    provider_spec: dict[str, Any],
    provider_meta: dict[str, Any],
    core_api: client.CoreV1Api | None = None,
) -> S3LifecycleProvider:
    """Create a provider client from a Provider CRD.

    Args:
        provider_spec: Provider spec (endpoint, region, auth secret references)
        provider_meta: Provider metadata, used to default secret namespaces
        core_api: CoreV1Api used to read credentials secrets

    Returns:
        Provider client

    Raises:
        ValueError: If required fields or secret keys are missing
    """
    endpoint = provider_spec.get("endpoint")
    region = provider_spec.get("region", "us-east-1")
    if not endpoint:
        raise ValueError("Provider spec.endpoint is required")

    auth = provider_spec.get("auth", {})
    access_key_ref = auth.get("accessKeySecretRef", {})
    secret_key_ref = auth.get("secretKeySecretRef", {})
    if not access_key_ref.get("name") or not secret_key_ref.get("name"):
        raise ValueError("Provider spec.auth.accessKeySecretRef and spec.auth.secretKeySecretRef are required")

    provider_ns = provider_meta.get("namespace", "default")
    core_api = core_api or client.CoreV1Api()

    access_key = get_secret_value(
        core_api,
        access_key_ref.get("namespace", provider_ns),
        access_key_ref["name"],
        access_key_ref.get("key", "access-key"),
    )
    secret_key = get_secret_value(
        core_api,
        secret_key_ref.get("namespace", provider_ns),
        secret_key_ref["name"],
        secret_key_ref.get("key", "secret-key"),
    )

    s3_client = boto3.client(
        "s3",
        endpoint_url=endpoint,
        region_name=region,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        config=BotoConfig(
            retries={"max_attempts": 3, "mode": "standard"},
            s3={"addressing_style": provider_spec.get("addressingStyle", "auto")},
        ),
    )
    return S3LifecycleProvider(s3_client)
