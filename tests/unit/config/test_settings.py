# tests/unit/config/test_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

from pathlib import Path

import pytest

from infralib_agent.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_provider(self):
        s = Settings(_env_file=None)
        assert s.provider_type == "local"
        assert s.account_id == ""

    def test_default_pipeline(self):
        s = Settings(_env_file=None)
        assert s.pipeline_type == "dry-run"
        assert s.allow_parallel is True

    def test_default_paths(self):
        s = Settings(_env_file=None)
        assert s.config_file == Path("config.yaml")
        assert s.base_config_file is None
        assert s.parameters_file is None
        assert s.parameter_root == "/entigo-infralib"

    def test_default_logging(self):
        s = Settings(_env_file=None)
        assert s.log_level == "INFO"
        assert s.log_format == "text"
        assert s.log_file is None


class TestSettingsValidation:
    def test_local_pipeline_without_command(self):
        with pytest.raises(ConfigurationError, match="PIPELINE_COMMAND"):
            Settings(_env_file=None, pipeline_type="local")

    def test_cloud_provider_without_account(self):
        with pytest.raises(ConfigurationError, match="ACCOUNT_ID"):
            Settings(_env_file=None, provider_type="aws")

    def test_bad_rotation(self):
        with pytest.raises(ConfigurationError, match="LOG_ROTATION"):
            Settings(_env_file=None, log_rotation="lots")

    def test_errors_are_collected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            Settings(_env_file=None, pipeline_type="local", provider_type="google")
        assert "PIPELINE_COMMAND" in str(exc_info.value)
        assert "ACCOUNT_ID" in str(exc_info.value)

    def test_valid_local_pipeline(self):
        s = Settings(_env_file=None, pipeline_type="local", pipeline_command="./run.sh")
        assert s.pipeline_command == "./run.sh"

    def test_lower_case_log_level(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_negative_retention(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, log_retention=-1)


class TestSettingsHelpers:
    def test_steps_list(self):
        s = Settings(_env_file=None, steps="net, apps,,")
        assert s.steps_list == ["net", "apps"]

    def test_steps_list_empty(self):
        assert Settings(_env_file=None).steps_list == []


class TestEnvironment:
    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PREFIX", "prod")
        monkeypatch.setenv("ALLOW_PARALLEL", "false")
        s = Settings(_env_file=None)
        assert s.prefix == "prod"
        assert s.allow_parallel is False

    def test_load_settings_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        s = load_settings(steps="net")
        assert s.steps_list == ["net"]
