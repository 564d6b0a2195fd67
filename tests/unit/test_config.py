"""
Tests for configuration loading and validation.
"""

import pytest
import yaml
from pydantic import ValidationError

from scoutcore.config import Config, MonitoringConfig, StrategySettings, find_config_file


@pytest.mark.unit
class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.pipeline.quorum == 2
        assert config.strategies.order == ["direct_api", "browser_dom", "proxy", "ai_dom"]
        assert config.ai.enabled is False
        assert config.catalog_file is None

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "scoutcore.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "pipeline": {"quorum": 3, "global_timeout": 12},
                    "strategies": {"order": ["direct_api", "proxy"], "proxy_url_template": None},
                    "fallback": {"exchange_rate": 18.1},
                }
            )
        )

        config = Config.from_yaml(path)

        assert config.pipeline.quorum == 3
        assert config.pipeline.global_timeout == 12.0
        assert config.strategies.order == ["direct_api", "proxy"]
        assert config.strategies.proxy_url_template is None
        assert config.fallback.exchange_rate == 18.1

    def test_empty_yaml_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.from_yaml(path).pipeline.quorum == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SCOUT_PIPELINE__QUORUM", "4")
        monkeypatch.setenv("SCOUT_AI__ENABLED", "true")
        config = Config()
        assert config.pipeline.quorum == 4
        assert config.ai.enabled is True

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError, match="Unknown strategies"):
            StrategySettings(order=["direct_api", "carrier_pigeon"])

    def test_empty_order_rejected(self):
        with pytest.raises(ValidationError):
            StrategySettings(order=[])

    def test_quorum_must_be_positive(self):
        with pytest.raises(ValidationError):
            Config.model_validate({"pipeline": {"quorum": 0}})

    def test_log_file_parent_created(self, tmp_path):
        log_file = tmp_path / "logs" / "nested" / "scout.log"
        config = MonitoringConfig(log_file=log_file)
        assert config.log_file == str(log_file)
        assert log_file.parent.is_dir()

    def test_find_config_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_config_file() is None

        (tmp_path / "scoutcore.yaml").write_text("pipeline:\n  quorum: 3\n")
        assert find_config_file() == tmp_path / "scoutcore.yaml"

