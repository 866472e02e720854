"""
Configuration Dataclasses

Type-safe configuration structures for the telemetry service.
Loaded from an optional YAML file, with environment variable overrides
for the settings that differ between deployments.
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from paws_server.common.exceptions import ValidationError

DAY_S = 24 * 3600

DEFAULT_CONFIG_PATHS = (
    Path("/etc/paws/config.yaml"),
    Path("/opt/paws/config.yaml"),
)


class SampleMode(str, Enum):
    """How a sampled history handles uploads inside its minimum interval"""
    NONE = "none"
    SKIP = "skip"            # drop the new value (weight-history)
    OVERWRITE = "overwrite"  # merge into the newest entry (environment-history)


@dataclass
class LogPolicy:
    """Retention policy for one event log"""
    window_s: float
    max_count: int
    min_interval_s: float = 0.0
    epsilon: float = 0.0
    mode: SampleMode = SampleMode.NONE


def default_log_policies() -> dict[str, LogPolicy]:
    return {
        "water-events": LogPolicy(window_s=7 * DAY_S, max_count=500),
        "motion-events": LogPolicy(window_s=DAY_S, max_count=500),
        "bark-events": LogPolicy(window_s=DAY_S, max_count=500),
        "feeder-events": LogPolicy(window_s=7 * DAY_S, max_count=500),
        "activity-history": LogPolicy(window_s=7 * DAY_S, max_count=1000),
        "feeding-history": LogPolicy(window_s=7 * DAY_S, max_count=500),
        "weight-history": LogPolicy(
            window_s=31 * DAY_S,
            max_count=1000,
            min_interval_s=600,
            epsilon=0.05,
            mode=SampleMode.SKIP,
        ),
        "environment-history": LogPolicy(
            window_s=DAY_S,
            max_count=1440,
            min_interval_s=60,
            mode=SampleMode.OVERWRITE,
        ),
        "actions": LogPolicy(window_s=31 * DAY_S, max_count=1000),
    }


@dataclass
class ServerSettings:
    """HTTP listener"""
    host: str = "0.0.0.0"  # LAN clients (phone, firmware) connect directly
    port: int = 3000


@dataclass
class StoreSettings:
    """Document storage location"""
    data_dir: Path = field(default_factory=lambda: Path("/opt/paws/data"))


@dataclass
class RetentionSettings:
    """Retention sweep configuration"""
    max_age_days: int = 31
    interval_s: int = 3600
    run_on_start: bool = True


@dataclass
class NotificationSettings:
    """Notification dedup and size cap"""
    suppression_hours: float = 6.0
    max_entries: int = 100


@dataclass
class AnalyticsSettings:
    """Derived analytics thresholds"""
    cluster_tolerance_min: int = 15
    water_stale_hours: float = 12.0
    default_meals: int = 2
    default_meal_amount_g: float = 200.0
    food_warning_ratio: float = 0.6
    timezone: str = "UTC"  # IANA zone used for time-of-day and calendar days
    refresh_interval_s: int = 900


@dataclass
class DetectorSettings:
    """Snapshot detector thresholds"""
    water_drop_threshold: float = 5.0
    water_low_level: float = 20.0
    water_high_level: float = 80.0
    proximity_cm: float = 30.0
    weight_change_kg: float = 0.05
    chart_points: int = 48
    dispense_amount_g: float = 20.0


@dataclass
class ServiceConfig:
    """Complete service configuration"""
    server: ServerSettings = field(default_factory=ServerSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    analytics: AnalyticsSettings = field(default_factory=AnalyticsSettings)
    detectors: DetectorSettings = field(default_factory=DetectorSettings)
    logs: dict[str, LogPolicy] = field(default_factory=default_log_policies)


def _section(data: dict, key: str) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValidationError(f"Config section '{key}' must be a mapping", field=key)
    return value


def load_service_config(data: dict[str, Any] | None) -> ServiceConfig:
    """Load ServiceConfig from a dictionary (e.g., parsed YAML)"""
    data = data or {}

    server_data = _section(data, "server")
    server = ServerSettings(
        host=server_data.get("host", "0.0.0.0"),
        port=int(server_data.get("port", 3000)),
    )

    store_data = _section(data, "store")
    store = StoreSettings(
        data_dir=Path(store_data.get("data_dir", "/opt/paws/data")),
    )

    retention_data = _section(data, "retention")
    retention = RetentionSettings(
        max_age_days=int(retention_data.get("max_age_days", 31)),
        interval_s=int(retention_data.get("interval_s", 3600)),
        run_on_start=bool(retention_data.get("run_on_start", True)),
    )

    notification_data = _section(data, "notifications")
    notifications = NotificationSettings(
        suppression_hours=float(notification_data.get("suppression_hours", 6.0)),
        max_entries=int(notification_data.get("max_entries", 100)),
    )

    analytics_data = _section(data, "analytics")
    analytics = AnalyticsSettings(
        cluster_tolerance_min=int(analytics_data.get("cluster_tolerance_min", 15)),
        water_stale_hours=float(analytics_data.get("water_stale_hours", 12.0)),
        default_meals=int(analytics_data.get("default_meals", 2)),
        default_meal_amount_g=float(analytics_data.get("default_meal_amount_g", 200.0)),
        food_warning_ratio=float(analytics_data.get("food_warning_ratio", 0.6)),
        timezone=analytics_data.get("timezone", "UTC"),
        refresh_interval_s=int(analytics_data.get("refresh_interval_s", 900)),
    )

    detector_data = _section(data, "detectors")
    defaults = DetectorSettings()
    detectors = DetectorSettings(**{
        name: float(detector_data.get(name, getattr(defaults, name)))
        for name in (
            "water_drop_threshold",
            "water_low_level",
            "water_high_level",
            "proximity_cm",
            "weight_change_kg",
            "dispense_amount_g",
        )
    }, chart_points=int(detector_data.get("chart_points", defaults.chart_points)))

    logs = default_log_policies()
    for name, overrides in _section(data, "logs").items():
        base = logs.get(name) or LogPolicy(window_s=31 * DAY_S, max_count=1000)
        overrides = overrides or {}
        logs[name] = replace(
            base,
            window_s=float(overrides.get("window_s", base.window_s)),
            max_count=int(overrides.get("max_count", base.max_count)),
            min_interval_s=float(overrides.get("min_interval_s", base.min_interval_s)),
            epsilon=float(overrides.get("epsilon", base.epsilon)),
            mode=SampleMode(overrides.get("mode", base.mode.value)),
        )

    return ServiceConfig(
        server=server,
        store=store,
        retention=retention,
        notifications=notifications,
        analytics=analytics,
        detectors=detectors,
        logs=logs,
    )


def apply_env_overrides(config: ServiceConfig) -> ServiceConfig:
    """Apply PAWS_* environment variable overrides"""
    if os.environ.get("PAWS_DATA_DIR"):
        config.store.data_dir = Path(os.environ["PAWS_DATA_DIR"])
    if os.environ.get("PAWS_HOST"):
        config.server.host = os.environ["PAWS_HOST"]
    if os.environ.get("PAWS_PORT"):
        config.server.port = int(os.environ["PAWS_PORT"])
    if os.environ.get("PAWS_TIMEZONE"):
        config.analytics.timezone = os.environ["PAWS_TIMEZONE"]
    return config


def find_config_path() -> Path | None:
    """First existing file among the standard config locations"""
    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return path
    return None


def load_config_file(config_path: str | Path | None = None) -> ServiceConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML file. Defaults to $PAWS_CONFIG, then the
            standard locations; a missing file means "all defaults".

    Returns:
        ServiceConfig with environment overrides applied
    """
    config_path = config_path or os.environ.get("PAWS_CONFIG") or find_config_path()
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValidationError(f"Config file {path} must contain a mapping")

    return apply_env_overrides(load_service_config(data))
