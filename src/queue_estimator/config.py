"""
Configuration for the queue estimator.

``EstimatorConfig`` is the mutable, host-owned settings record. Every value
is clamped to its documented range on construction and by the setters.
``FitSettings`` is the frozen snapshot handed to a single fit pass.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .types import ModelType

logger = logging.getLogger("queue_estimator.config")


def _clamp(value, low, high):
    return max(low, min(high, value))


@dataclass(frozen=True)
class FitSettings:
    """Immutable settings snapshot read by one ``FitEngine.fit_all`` call."""

    enabled_models: Tuple[ModelType, ...]
    # Linear trimming; fewer than 3 remaining samples falls back to the full snapshot
    ignore_first_minutes: int = 10
    linear_window_hours: int = 0

    def is_enabled(self, model: ModelType) -> bool:
        return model in self.enabled_models


@dataclass
class EstimatorConfig:
    """Configuration for fitting, display and rate tracking."""

    # Model toggles - all enabled by default
    linear_enabled: bool = True
    quadratic_enabled: bool = True
    logarithmic_enabled: bool = True
    exponential_enabled: bool = True
    power_law_enabled: bool = True
    tangent_enabled: bool = True
    hyperbolic_enabled: bool = True

    # Display settings
    show_all_results: bool = True          # Show every usable fit or just the best one
    min_data_points_before_fit: int = 5    # [3, 20]

    # Linear baseline trimming; Linear uses every sample when fewer than 3 survive
    ignore_first_minutes: int = 10         # [0, 60] warm-up excluded from Linear
    linear_window_hours: int = 0           # [0, 24], 0 = unbounded

    # Rate tracking cadence
    rate_tracking_interval_hours: float = 1.0  # [0.5, 6.0]

    MIN_DATA_POINTS_RANGE = (3, 20)
    IGNORE_FIRST_MINUTES_RANGE = (0, 60)
    LINEAR_WINDOW_HOURS_RANGE = (0, 24)
    RATE_INTERVAL_HOURS_RANGE = (0.5, 6.0)

    def __post_init__(self):
        self.set_min_data_points(self.min_data_points_before_fit)
        self.set_ignore_first_minutes(self.ignore_first_minutes)
        self.set_linear_window_hours(self.linear_window_hours)
        self.set_rate_tracking_interval_hours(self.rate_tracking_interval_hours)

    # Clamping setters

    def set_min_data_points(self, value: int):
        self.min_data_points_before_fit = int(_clamp(int(value), *self.MIN_DATA_POINTS_RANGE))

    def set_ignore_first_minutes(self, value: int):
        self.ignore_first_minutes = int(_clamp(int(value), *self.IGNORE_FIRST_MINUTES_RANGE))

    def set_linear_window_hours(self, value: int):
        self.linear_window_hours = int(_clamp(int(value), *self.LINEAR_WINDOW_HOURS_RANGE))

    def set_rate_tracking_interval_hours(self, value: float):
        self.rate_tracking_interval_hours = float(
            _clamp(float(value), *self.RATE_INTERVAL_HOURS_RANGE)
        )

    def set_model_enabled(self, model: ModelType, enabled: bool):
        setattr(self, f"{model.key}_enabled", bool(enabled))

    def is_model_enabled(self, model: ModelType) -> bool:
        return bool(getattr(self, f"{model.key}_enabled"))

    def enabled_models(self) -> Tuple[ModelType, ...]:
        """Enabled models in enumeration order."""
        return tuple(m for m in ModelType if self.is_model_enabled(m))

    def has_any_model_enabled(self) -> bool:
        return bool(self.enabled_models())

    @property
    def rate_interval_ms(self) -> float:
        return self.rate_tracking_interval_hours * 3600 * 1000

    def snapshot(self) -> FitSettings:
        """Freeze the settings a fit pass needs."""
        return FitSettings(
            enabled_models=self.enabled_models(),
            ignore_first_minutes=self.ignore_first_minutes,
            linear_window_hours=self.linear_window_hours,
        )

    # Persistence

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EstimatorConfig":
        """Build a config from a mapping, ignoring unknown keys and clamping values."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, path: Path) -> "EstimatorConfig":
        """
        Load configuration from a JSON file.

        Falls back to defaults if the file is missing, unreadable or corrupt.
        """
        path = Path(path)
        try:
            if path.exists():
                data = json.loads(path.read_text())
                if isinstance(data, dict):
                    logger.info(f"Loaded config from {path}")
                    return cls.from_dict(data)
                logger.warning(f"Ignoring malformed config in {path}")
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")

        logger.info("Using default config")
        return cls()

    def save(self, path: Path) -> bool:
        """Write configuration as pretty-printed JSON. Returns False on I/O failure."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.to_dict(), indent=2))
        except OSError as e:
            logger.warning(f"Failed to save config to {path}: {e}")
            return False

        logger.info(f"Saved config to {path}")
        return True


def default_config_path(base_dir: Optional[Path] = None) -> Path:
    """Default location of the config file, ``config/queue_estimator.json``."""
    base = Path(base_dir) if base_dir else Path.cwd()
    return base / "config" / "queue_estimator.json"
