"""Kubernetes secret helpers."""

from __future__ import annotations

import base64
from typing import Any

from kubernetes import client


def get_secret_value(core_api: Any, namespace: str, name: str, key: str) -> str:
    """Read and decode a single key from a Secret.

    Raises:
        ValueError: If the secret does not exist or lacks the key
    """
    try:
        secret = core_api.read_namespaced_secret(name=name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret {namespace}/{name} not found") from e
        raise

    data = secret.data or {}
    if key not in data:
        raise ValueError(f"Secret {namespace}/{name} has no key {key!r}")
    return base64.b64decode(data[key]).decode("utf-8")
