"""
validation_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime:
    ``get_default_ladders()`` for the built-in threshold ladders and
    ``get_settings()`` for runtime settings.  No other component reads the
    YAML files or the environment directly.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  Sits above
    ``validation_kernel`` and ``validation_engines`` and below
    ``validation_services``.  The kernel MUST NEVER import from
    ``validation_config``; the gateway hands parsed values to kernel
    services.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``ValueError`` / ``KeyError`` -- schema or ladder validation failures.

Audit relevance:
    Every successful load emits a ``VALIDATION_CONFIG_TRACE`` log entry with
    the file, version and checksum.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from validation_config.loader import (
    load_yaml_file,
    parse_ladder_defaults,
    parse_settings,
)
from validation_config.schema import LadderDefault, LadderDefaults, Settings

_logger = logging.getLogger("validation_kernel.config")

_CONFIG_DIR = Path(__file__).parent
DEFAULTS_FILE = _CONFIG_DIR / "defaults.yaml"
SETTINGS_FILE = _CONFIG_DIR / "settings.yaml"


def get_default_ladders(config_path: Path | None = None) -> LadderDefaults:
    """Built-in threshold ladders, one per entity type plus ``default``.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if any ladder violates the ordering invariant.
    """
    path = config_path or DEFAULTS_FILE
    defaults = parse_ladder_defaults(load_yaml_file(path))
    _logger.info(
        "VALIDATION_CONFIG_TRACE",
        extra={
            "trace_type": "VALIDATION_CONFIG_TRACE",
            "config_file": str(path),
            "config_version": defaults.version,
            "checksum": defaults.checksum,
            "ladder_count": len(defaults.ladders),
        },
    )
    return defaults


def get_settings(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Runtime settings.  ``env`` defaults to ``os.environ``."""
    path = config_path or SETTINGS_FILE
    settings = parse_settings(load_yaml_file(path), os.environ if env is None else env)
    _logger.info(
        "VALIDATION_CONFIG_TRACE",
        extra={
            "trace_type": "VALIDATION_CONFIG_TRACE",
            "config_file": str(path),
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "LadderDefault",
    "LadderDefaults",
    "Settings",
    "get_default_ladders",
    "get_settings",
]
