"""Tests for engine configuration and the YAML loader."""

import pytest
import yaml
from pydantic import ValidationError

from faultline.chaos.config import ARM_CONFIRMATION_CODE, EngineConfig
from faultline.chaos.loader import load_engine_config


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.max_concurrent_strategies == 3
        assert config.health_check_interval_seconds == 5.0
        assert config.kill_switch_enabled is True
        assert config.log_level == "INFO"

    def test_log_level_normalised(self):
        assert EngineConfig(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_concurrent_strategies": 0},
            {"health_check_interval_seconds": 0},
            {"log_level": "chatty"},
            {"unknown_setting": True},
        ],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValidationError):
            EngineConfig(**kwargs)

    def test_frozen(self):
        config = EngineConfig()
        with pytest.raises(ValidationError):
            config.max_concurrent_strategies = 10

    def test_confirmation_code(self):
        assert ARM_CONFIRMATION_CODE == "CHAOS_ENABLED_I_KNOW_WHAT_IM_DOING"


class TestLoader:
    def test_load_engine_section(self, tmp_path):
        path = tmp_path / "faultline.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "engine": {
                        "max_concurrent_strategies": 5,
                        "health_check_interval_seconds": 1.5,
                        "kill_switch_enabled": False,
                        "log_level": "warning",
                    }
                }
            )
        )
        config = load_engine_config(path)
        assert config.max_concurrent_strategies == 5
        assert config.health_check_interval_seconds == 1.5
        assert config.kill_switch_enabled is False
        assert config.log_level == "WARNING"

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_engine_config(str(path)) == EngineConfig()

    def test_missing_engine_key(self, tmp_path):
        path = tmp_path / "other.yaml"
        path.write_text("alerts: {}\n")
        assert load_engine_config(path) == EngineConfig()

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("engine:\n  max_concurrent_strategies: -1\n")
        with pytest.raises(ValidationError):
            load_engine_config(path)

    def test_top_level_list_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- engine\n- alerts\n")
        with pytest.raises(ValueError, match="expected a mapping"):
            load_engine_config(path)

    def test_engine_section_not_a_mapping(self, tmp_path):
        path = tmp_path / "scalar.yaml"
        path.write_text("engine: fast\n")
        with pytest.raises(ValidationError):
            load_engine_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "nope.yaml")
