"""
Configuration management system.

Supports:
- YAML configuration files
- Environment variable overrides
- Documented defaults for every scoring factor
- Validation of the learning factors
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class EngineConfig:
    """Analysis and suggestion limits."""
    confidence_threshold: float = 0.5
    max_suggestions: int = 5
    max_code_size: int = 10 * 1024  # bytes
    supported_languages: list[str] = field(
        default_factory=lambda: ["javascript", "typescript", "python", "rust"]
    )
    parse_timeout: float = 2.0  # seconds per parse call


@dataclass
class LearningConfig:
    """Scoring, feedback and forgetting factors."""
    smoothing_alpha: float = 0.3
    base_score: float = 0.5
    gain: float = 0.2
    penalty: float = 0.7
    modify_factor: float = 0.9
    decay_factor: float = 0.9
    recency_window_hours: float = 168.0  # one week
    forgetting_floor: float = 0.1
    ignore_streak_threshold: int = 5
    weight_step: float = 0.05
    min_weight: float = 0.5
    max_weight: float = 2.0
    preference_boost: float = 1.2
    avoidance_penalty: float = 0.8
    preference_threshold: int = 2


@dataclass
class StorageConfig:
    """Snapshot persistence."""
    path: str = ".codewhisper/patterns.json"
    enabled: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_file: Optional[str] = None
    console: bool = True
    json_format: bool = False


@dataclass
class Config:
    """Main configuration object."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Raise ValueError when factors are out of range or inconsistent."""
        engine = self.engine
        learning = self.learning

        if not 0.0 <= engine.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if engine.max_suggestions < 1:
            raise ValueError("max_suggestions must be at least 1")
        if engine.max_code_size < 1:
            raise ValueError("max_code_size must be positive")
        if engine.parse_timeout <= 0:
            raise ValueError("parse_timeout must be positive")

        for name in ("smoothing_alpha", "base_score", "gain", "forgetting_floor"):
            value = getattr(learning, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1]")
        if not 0.0 < learning.penalty < learning.modify_factor <= 1.0:
            raise ValueError("expected 0 < penalty < modify_factor <= 1")
        if not 0.0 < learning.decay_factor < 1.0:
            raise ValueError("decay_factor must be within (0, 1)")
        if learning.recency_window_hours < 0:
            raise ValueError("recency_window_hours must not be negative")
        if learning.ignore_streak_threshold < 1:
            raise ValueError("ignore_streak_threshold must be at least 1")
        if not 0.0 < learning.min_weight <= 1.0 <= learning.max_weight:
            raise ValueError("expected 0 < min_weight <= 1 <= max_weight")
        if learning.preference_threshold < 1:
            raise ValueError("preference_threshold must be at least 1")


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file with environment variable overrides.

    Args:
        config_path: Path to a YAML file. If None, looks for codewhisper.yaml
                    in the current directory, then ~/.config/codewhisper/config.yaml

    Returns:
        Validated configuration object
    """
    config_dict: dict[str, Any] = {}

    if config_path is None:
        if Path("codewhisper.yaml").exists():
            config_path = Path("codewhisper.yaml")
        elif Path.home().joinpath(".config", "codewhisper", "config.yaml").exists():
            config_path = Path.home().joinpath(".config", "codewhisper", "config.yaml")

    if config_path and config_path.exists():
        with open(config_path) as f:
            file_config = yaml.safe_load(f) or {}
            config_dict.update(file_config)

    env_overrides = {
        "engine": {
            "confidence_threshold": _parse_float(os.getenv("CODEWHISPER_CONFIDENCE_THRESHOLD")),
            "max_suggestions": _parse_int(os.getenv("CODEWHISPER_MAX_SUGGESTIONS")),
            "max_code_size": _parse_int(os.getenv("CODEWHISPER_MAX_CODE_SIZE")),
            "supported_languages": _parse_list(os.getenv("CODEWHISPER_SUPPORTED_LANGUAGES")),
            "parse_timeout": _parse_float(os.getenv("CODEWHISPER_PARSE_TIMEOUT")),
        },
        "learning": {
            "decay_factor": _parse_float(os.getenv("CODEWHISPER_DECAY_FACTOR")),
            "recency_window_hours": _parse_float(os.getenv("CODEWHISPER_RECENCY_WINDOW_HOURS")),
            "forgetting_floor": _parse_float(os.getenv("CODEWHISPER_FORGETTING_FLOOR")),
        },
        "storage": {
            "path": os.getenv("CODEWHISPER_STORAGE_PATH"),
            "enabled": _parse_bool(os.getenv("CODEWHISPER_STORAGE_ENABLED")),
        },
        "logging": {
            "level": os.getenv("CODEWHISPER_LOG_LEVEL"),
            "log_file": os.getenv("CODEWHISPER_LOG_FILE"),
            "console": _parse_bool(os.getenv("CODEWHISPER_LOG_CONSOLE")),
            "json_format": _parse_bool(os.getenv("CODEWHISPER_LOG_JSON")),
        },
    }

    # Only set values override the file
    for section, values in env_overrides.items():
        if not isinstance(config_dict.get(section), dict):
            config_dict[section] = {}
        for key, value in values.items():
            if value is not None:
                config_dict[section][key] = value

    config = Config(
        engine=EngineConfig(**config_dict.get("engine", {})),
        learning=LearningConfig(**config_dict.get("learning", {})),
        storage=StorageConfig(**config_dict.get("storage", {})),
        logging=LoggingConfig(**config_dict.get("logging", {})),
    )
    config.validate()
    return config


def _parse_int(value: Optional[str]) -> Optional[int]:
    """Parse string to int, return None if invalid."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_float(value: Optional[str]) -> Optional[float]:
    """Parse string to float, return None if invalid."""
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    """Parse string to bool, return None if invalid."""
    if value is None:
        return None
    return value.lower() in ("true", "1", "yes", "y")


def _parse_list(value: Optional[str]) -> Optional[list[str]]:
    """Parse a comma separated string to a list of lowercase names."""
    if value is None:
        return None
    items = [item.strip().lower() for item in value.split(",")]
    return [item for item in items if item]
