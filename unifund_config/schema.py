"""
Workflow settings schema.

The YAML file in ``defaults/`` (or an override passed to
``get_active_settings``) is parsed by the loader into these frozen
dataclasses.  Nothing downstream reads YAML or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RetrySettings:
    """Bounded exponential backoff for transient failures."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.5
    multiplier: float = 2.0
    max_delay_seconds: float = 30.0
    attempt_timeout_seconds: float = 45.0


@dataclass(frozen=True)
class RbacSettings:
    """Role -> permission grants."""

    role_permissions: dict[str, frozenset[str]] = field(default_factory=dict)

    def permissions_for(self, role: str) -> frozenset[str]:
        return self.role_permissions.get(role, frozenset())


@dataclass(frozen=True)
class WorkflowSettings:
    """Everything the workflow engine takes from configuration."""

    grace_period_days: int = 60
    signed_url_ttl_seconds: int = 3600
    default_currency: str = "ZAR"
    document_bucket: str = "documents"
    retry: RetrySettings = field(default_factory=RetrySettings)
    rbac: RbacSettings = field(default_factory=RbacSettings)
    checksum: str = ""
