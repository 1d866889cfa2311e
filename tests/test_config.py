"""
Tests for configuration loading.

Run with: pytest tests/
"""

from pathlib import Path

import pytest
import yaml

from codewhisper.core.config import Config, LearningConfig, load_config


class TestConfig:
    """Tests for Config defaults and validation."""

    def test_defaults(self) -> None:
        config = Config()

        assert config.engine.confidence_threshold == 0.5
        assert config.engine.max_suggestions == 5
        assert config.engine.max_code_size == 10240
        assert config.learning.gain == 0.2
        assert config.learning.penalty == 0.7
        assert config.learning.recency_window_hours == 168.0
        config.validate()

    @pytest.mark.parametrize("learning", [
        LearningConfig(penalty=0.95, modify_factor=0.9),
        LearningConfig(decay_factor=1.0),
        LearningConfig(min_weight=1.5),
        LearningConfig(gain=1.5),
    ])
    def test_invalid_factors(self, learning: LearningConfig) -> None:
        """Should reject inconsistent learning factors."""
        with pytest.raises(ValueError):
            Config(learning=learning).validate()


class TestLoadConfig:
    """Tests for load_config."""

    def test_yaml_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({
            "engine": {"max_suggestions": 9},
            "learning": {"gain": 0.3},
            "storage": {"enabled": False},
        }))

        config = load_config(path)

        assert config.engine.max_suggestions == 9
        assert config.learning.gain == 0.3
        assert config.storage.enabled is False

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should let environment variables win over the file."""
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"engine": {"max_suggestions": 9}}))
        monkeypatch.setenv("CODEWHISPER_MAX_SUGGESTIONS", "3")
        monkeypatch.setenv("CODEWHISPER_SUPPORTED_LANGUAGES", "Python, Go")

        config = load_config(path)

        assert config.engine.max_suggestions == 3
        assert config.engine.supported_languages == ["python", "go"]

    def test_invalid_file_values(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump({"engine": {"confidence_threshold": 2.0}}))

        with pytest.raises(ValueError):
            load_config(path)
