"""Utility functions for the S3 Lifecycle Operator."""

from .cache import (
    get_cached_object,
    invalidate_cache,
    make_cache_key,
    set_cached_object,
)
from .conditions import (
    set_provider_not_ready_condition,
    set_ready_condition,
    set_stable_condition,
    update_condition,
)
from .polling import Deadline, poll_until, poll_until_stable, retry_on_codes
from .secrets import get_secret_value

__all__ = [
    "update_condition",
    "set_ready_condition",
    "set_stable_condition",
    "set_provider_not_ready_condition",
    "get_secret_value",
    "get_cached_object",
    "set_cached_object",
    "invalidate_cache",
    "make_cache_key",
    "Deadline",
    "poll_until",
    "poll_until_stable",
    "retry_on_codes",
]
