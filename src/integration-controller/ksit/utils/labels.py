"""Kubernetes label validation and matching helpers."""

from __future__ import annotations

import re

LABEL_NAME_MAX_LENGTH = 63
LABEL_VALUE_MAX_LENGTH = 63
LABEL_PREFIX_MAX_LENGTH = 253

LABEL_KEY_RE = re.compile(
    r"^([a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*/)?"
    r"[a-zA-Z0-9]([-a-zA-Z0-9_.]*[a-zA-Z0-9])?$"
)
LABEL_VALUE_RE = re.compile(r"^([a-zA-Z0-9]([-a-zA-Z0-9_.]*[a-zA-Z0-9])?)?$")


def validate_label_key(key: str) -> list[str]:
    """Return validation errors for a label key (empty when valid)."""
    if not key:
        return ["label key cannot be empty"]

    errors = []
    prefix, sep, name = key.partition("/")
    if sep:
        if len(prefix) > LABEL_PREFIX_MAX_LENGTH:
            errors.append("label key prefix exceeds maximum length")
        if len(name) > LABEL_NAME_MAX_LENGTH:
            errors.append("label key name exceeds maximum length")
    elif len(key) > LABEL_NAME_MAX_LENGTH:
        errors.append("label key exceeds maximum length")

    if not LABEL_KEY_RE.match(key):
        errors.append("label key contains invalid characters")
    return errors


def validate_label_value(value: str) -> list[str]:
    """Return validation errors for a label value (empty when valid)."""
    errors = []
    if len(value) > LABEL_VALUE_MAX_LENGTH:
        errors.append("label value exceeds maximum length")
    if value and not LABEL_VALUE_RE.match(value):
        errors.append("label value contains invalid characters")
    return errors


def validate_labels(labels: dict[str, str]) -> list[str]:
    """Validate every key and value of a label map."""
    errors = []
    for key, value in sorted(labels.items()):
        errors.extend(f"{e} for key: {key}" for e in validate_label_key(key))
        errors.extend(f"{e} for value: {value}" for e in validate_label_value(value))
    return errors


def strip_label_prefix(labels: dict[str, str], prefix: str) -> dict[str, str]:
    """Keep labels starting with ``prefix`` and drop the prefix from their keys."""
    return {k[len(prefix):]: v for k, v in labels.items() if k.startswith(prefix) and k != prefix}


def matches_selector(labels: dict[str, str], selector: dict[str, str]) -> bool:
    """True when every selector pair is present in ``labels``."""
    return all(labels.get(k) == v for k, v in selector.items())


def mismatched_labels(labels: dict[str, str], selector: dict[str, str]) -> list[str]:
    """Selector pairs not satisfied by ``labels``, as sorted ``k=v`` strings."""
    return [f"{k}={v}" for k, v in sorted(selector.items()) if labels.get(k) != v]


def parse_selector(selector: str) -> dict[str, str]:
    """Parse an equality-based selector such as ``app=x,tier=web``."""
    result = {}
    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        key, sep, value = term.partition("=")
        if not sep:
            raise ValueError(f"Unsupported selector term: {term!r}")
        result[key.strip()] = value.lstrip("=").strip()
    return result
