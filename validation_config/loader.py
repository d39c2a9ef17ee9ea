"""
Configuration Loader (``validation_config.loader``).

Responsibility
--------------
Loads the YAML configuration files and parses them into the frozen
dataclasses of ``validation_config.schema``.  Callers use the entrypoints
in ``validation_config`` rather than this module.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every default ladder satisfies the ladder ordering invariant; a bad
  ladder in YAML fails loading, it is never clamped.
* ``compute_checksum`` produces a deterministic SHA-256 hash for change
  detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid ladder or settings values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from validation_config.schema import (
    GEOCODER_KINDS,
    DatabaseSettings,
    GatewaySettings,
    GeocoderSettings,
    LadderDefault,
    LadderDefaults,
    LoggingSettings,
    NotificationSettings,
    Settings,
)
from validation_engines.ladder import check_ladder

DATABASE_URL_ENV = "VALIDATION_DATABASE_URL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a YAML number into Decimal without going through float."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: expected a number, got {value!r}") from exc


def parse_ladder_default(entity_type: str, data: dict[str, Any]) -> LadderDefault:
    """
    Parse one default ladder.

    Raises:
        KeyError: if a rung is missing.
        ValueError: if the ladder violates the ordering invariant.
    """
    ladder = LadderDefault(
        entity_type=entity_type,
        level1=parse_decimal(data["level1"], f"{entity_type}.level1"),
        level2=parse_decimal(data["level2"], f"{entity_type}.level2"),
        level3=parse_decimal(data["level3"], f"{entity_type}.level3"),
        auto_approve_below=parse_decimal(
            data.get("auto_approve_below", 0), f"{entity_type}.auto_approve_below",
        ),
        require_all_levels=bool(data.get("require_all_levels", False)),
        description=data.get("description"),
    )
    violations = check_ladder(ladder.to_ladder())
    if violations:
        raise ValueError(
            f"Default ladder {entity_type!r} is invalid:\n"
            + "\n".join(f"  - {v}" for v in violations)
        )
    return ladder


def parse_ladder_defaults(data: dict[str, Any]) -> LadderDefaults:
    """Parse ``defaults.yaml`` contents."""
    ladders_data = data.get("ladders")
    if not isinstance(ladders_data, dict) or not ladders_data:
        raise ValueError("defaults: 'ladders' must be a non-empty mapping")

    ladders = tuple(
        parse_ladder_default(entity_type, body or {})
        for entity_type, body in sorted(ladders_data.items())
    )
    return LadderDefaults(
        version=int(data.get("version", 1)),
        ladders=ladders,
        checksum=compute_checksum(data),
    )


def parse_settings(
    data: dict[str, Any],
    env: Mapping[str, str] | None = None,
) -> Settings:
    """
    Parse ``settings.yaml`` contents.

    ``env`` (for example ``os.environ``) may override the database url
    through ``VALIDATION_DATABASE_URL``.
    """
    db_data = dict(data.get("database") or {})
    if env and env.get(DATABASE_URL_ENV):
        db_data["url"] = env[DATABASE_URL_ENV]
    if not db_data.get("url"):
        raise KeyError("database.url")

    geo_data = data.get("geocoder") or {}
    kind = geo_data.get("kind", "coordinates")
    if kind not in GEOCODER_KINDS:
        raise ValueError(
            f"geocoder.kind must be one of {sorted(GEOCODER_KINDS)}, got {kind!r}"
        )

    notif_data = data.get("notifications") or {}
    max_workers = int(notif_data.get("max_workers", 2))
    if max_workers < 1:
        raise ValueError("notifications.max_workers must be >= 1")

    gateway_data = data.get("gateway") or {}
    max_retries = int(gateway_data.get("max_retries", 1))
    if max_retries < 0:
        raise ValueError("gateway.max_retries must be >= 0")

    log_data = data.get("logging") or {}

    return Settings(
        database=DatabaseSettings(
            url=db_data["url"],
            pool_size=int(db_data.get("pool_size", 5)),
            max_overflow=int(db_data.get("max_overflow", 10)),
            pool_timeout=int(db_data.get("pool_timeout", 30)),
            echo=bool(db_data.get("echo", False)),
        ),
        notifications=NotificationSettings(
            enabled=bool(notif_data.get("enabled", True)),
            max_workers=max_workers,
        ),
        geocoder=GeocoderSettings(
            kind=kind,
            base_url=geo_data.get("base_url", GeocoderSettings.base_url),
            timeout_seconds=float(geo_data.get("timeout_seconds", 2.0)),
            user_agent=geo_data.get("user_agent", GeocoderSettings.user_agent),
        ),
        gateway=GatewaySettings(max_retries=max_retries),
        logging=LoggingSettings(
            level=str(log_data.get("level", "INFO")).upper(),
        ),
        threshold_cache_enabled=bool((data.get("threshold_cache") or {}).get("enabled", True)),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
