"""Utilities shared by the controller services."""

from .clock import Clock, utcnow
from .labels import (
    matches_selector,
    mismatched_labels,
    parse_selector,
    strip_label_prefix,
    validate_label_key,
    validate_label_value,
    validate_labels,
)
from .locks import AsyncRWLock
from .retry import RetryConfig, retry_async

__all__ = [
    "AsyncRWLock",
    "Clock",
    "RetryConfig",
    "matches_selector",
    "mismatched_labels",
    "parse_selector",
    "retry_async",
    "strip_label_prefix",
    "utcnow",
    "validate_label_key",
    "validate_label_value",
    "validate_labels",
]
