"""Configuration management for the coding engine."""

import logging
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class EngineConfig:
    """
    Tunable defaults used by engine operations.

    Every operation that reads one of these also accepts an explicit
    argument; the config only supplies the fallback.

    Properties:
        ticks_per_second: Clock rate of the legacy text format
        smoothing_tolerance_ms: Gap below which smooth_column closes cells
        reliability_time_tolerance_ms: Onset/offset slack for check_reliability
        continuous_time_threshold_ms: Minimum single-coder slice length flagged
            by check_reliability_continuous
        disagreement_column_name: Name of the continuous-reliability result
        legacy_ignored_columns: Legacy declarations never imported
    """

    ticks_per_second: int = 60
    smoothing_tolerance_ms: int = 33
    reliability_time_tolerance_ms: int = 100
    continuous_time_threshold_ms: int = 100
    disagreement_column_name: str = "disagreements"
    legacy_ignored_columns: List[str] = field(
        default_factory=lambda: ["###QueryVar###", "div", "qnotes"]
    )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown configuration key: {key}")
        return cls(**values)


DEFAULT_CONFIG = EngineConfig()


def load_config(config_path) -> EngineConfig:
    """
    Load engine configuration from a YAML file.

    The file may hold the settings at top level or under an `engine` key.

    Args:
        config_path: Path to YAML configuration file (str or Path)

    Returns:
        EngineConfig with file values over the defaults

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    section = get_nested_config(raw, "engine", default=raw)
    if not isinstance(section, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    logger.debug(f"Loaded config keys: {list(section.keys())}")

    return EngineConfig.from_dict(section)


def get_nested_config(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get nested configuration value using dot notation.

    Example:
        get_nested_config(config, 'engine.ticks_per_second', default=60)
    """
    value = config
    for key in key_path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configure root logging for scripts using the engine.

    The library itself never installs handlers.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)
