"""
Settings loader (``unifund_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen dataclasses of
``unifund_config.schema``.  Runtime callers use
``unifund_config.get_active_settings()`` instead of this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range values -> ``ValueError`` naming the key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from unifund_config.schema import RbacSettings, RetrySettings, WorkflowSettings


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    settings = RetrySettings(
        max_attempts=int(data.get("max_attempts", 3)),
        base_delay_seconds=float(data.get("base_delay_seconds", 1.5)),
        multiplier=float(data.get("multiplier", 2.0)),
        max_delay_seconds=float(data.get("max_delay_seconds", 30.0)),
        attempt_timeout_seconds=float(data.get("attempt_timeout_seconds", 45.0)),
    )
    if settings.max_attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1")
    if settings.base_delay_seconds < 0 or settings.max_delay_seconds < 0:
        raise ValueError("retry delays must not be negative")
    if settings.multiplier < 1:
        raise ValueError("retry.multiplier must be >= 1")
    if settings.attempt_timeout_seconds <= 0:
        raise ValueError("retry.attempt_timeout_seconds must be positive")
    return settings


def parse_rbac(data: dict[str, Any]) -> RbacSettings:
    roles = data.get("roles", {}) or {}
    return RbacSettings(
        role_permissions={
            str(role): frozenset(str(p) for p in (perms or ()))
            for role, perms in roles.items()
        }
    )


def parse_settings(data: dict[str, Any]) -> WorkflowSettings:
    """Build WorkflowSettings from a parsed YAML mapping."""
    workflow = data.get("workflow", {}) or {}
    grace = int(workflow.get("grace_period_days", 60))
    if grace <= 0:
        raise ValueError("workflow.grace_period_days must be positive")
    ttl = int(workflow.get("signed_url_ttl_seconds", 3600))
    if ttl <= 0:
        raise ValueError("workflow.signed_url_ttl_seconds must be positive")
    currency = str(workflow.get("default_currency", "ZAR")).upper()
    if len(currency) != 3:
        raise ValueError(f"workflow.default_currency {currency!r} is not an ISO 4217 code")

    return WorkflowSettings(
        grace_period_days=grace,
        signed_url_ttl_seconds=ttl,
        default_currency=currency,
        document_bucket=str(workflow.get("document_bucket", "documents")),
        retry=parse_retry(data.get("retry", {}) or {}),
        rbac=parse_rbac(data.get("rbac", {}) or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
