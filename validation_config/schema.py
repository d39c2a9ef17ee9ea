"""
Configuration schema.

Frozen dataclasses the YAML files are parsed into by ``loader.py``.  Nothing
here reads files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from validation_kernel.domain.thresholds import ThresholdLadder

FALLBACK_KEY = "default"

GEOCODER_KINDS = frozenset({"none", "coordinates", "nominatim"})


# ---------------------------------------------------------------------------
# Default ladders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LadderDefault:
    """Built-in ladder for one entity type."""

    entity_type: str
    level1: Decimal
    level2: Decimal
    level3: Decimal
    auto_approve_below: Decimal = Decimal("0")
    require_all_levels: bool = False
    description: str | None = None

    def to_ladder(self) -> ThresholdLadder:
        return ThresholdLadder(
            level1=self.level1,
            level2=self.level2,
            level3=self.level3,
            auto_approve_below=self.auto_approve_below,
            require_all_levels=self.require_all_levels,
        )


@dataclass(frozen=True)
class LadderDefaults:
    """All built-in ladders, keyed by entity type, plus the fallback."""

    version: int
    ladders: tuple[LadderDefault, ...]
    checksum: str = ""

    def get(self, entity_type: str) -> LadderDefault | None:
        for ladder in self.ladders:
            if ladder.entity_type == entity_type:
                return ladder
        return None

    def for_entity_type(self, entity_type: str) -> LadderDefault:
        """Dedicated ladder, or the fallback ladder for unknown entity types."""
        found = self.get(entity_type) or self.get(FALLBACK_KEY)
        if found is None:
            raise KeyError(f"No default ladder for {entity_type!r} and no {FALLBACK_KEY!r}")
        return found

    def as_mapping(self) -> dict[str, ThresholdLadder]:
        """Entity type -> ladder, in the shape ThresholdService accepts."""
        return {d.entity_type: d.to_ladder() for d in self.ladders}


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False


@dataclass(frozen=True)
class NotificationSettings:
    enabled: bool = True
    max_workers: int = 2


@dataclass(frozen=True)
class GeocoderSettings:
    kind: str = "coordinates"  # none, coordinates, nominatim
    base_url: str = "https://nominatim.openstreetmap.org"
    timeout_seconds: float = 2.0
    user_agent: str = "validation-workflow"


@dataclass(frozen=True)
class GatewaySettings:
    max_retries: int = 1


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class Settings:
    database: DatabaseSettings
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    geocoder: GeocoderSettings = field(default_factory=GeocoderSettings)
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    threshold_cache_enabled: bool = True
    checksum: str = ""
