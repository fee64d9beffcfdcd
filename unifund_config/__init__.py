"""
unifund_config -- single public entrypoint for workflow settings.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_settings()``.  Returns a frozen ``WorkflowSettings``.

Architecture position:
    Configuration.  Sits above ``unifund_kernel`` and below
    ``unifund_services``.  The kernel never imports from here; the
    coordinator hands plain values (grace period, retry policy) down.

Audit relevance:
    Every call emits a ``UNIFUND_CONFIG_TRACE`` log entry with the
    settings checksum, tying workflow actions to the settings that
    governed them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from unifund_config.loader import compute_checksum, load_yaml_file, parse_settings
from unifund_config.schema import RbacSettings, RetrySettings, WorkflowSettings

_logger = logging.getLogger("unifund_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults" / "unifund.yaml"


def get_active_settings(path: Path | str | None = None) -> WorkflowSettings:
    """
    The only public configuration entrypoint.

    Args:
        path: Override YAML file.  Defaults to the packaged
            ``defaults/unifund.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a value is out of range.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = parse_settings(load_yaml_file(source))

    _logger.info(
        "UNIFUND_CONFIG_TRACE",
        extra={
            "trace_type": "UNIFUND_CONFIG_TRACE",
            "source": str(source),
            "checksum": settings.checksum,
            "grace_period_days": settings.grace_period_days,
            "retry_max_attempts": settings.retry.max_attempts,
            "role_count": len(settings.rbac.role_permissions),
        },
    )
    return settings


__all__ = [
    "RbacSettings",
    "RetrySettings",
    "WorkflowSettings",
    "compute_checksum",
    "get_active_settings",
]
