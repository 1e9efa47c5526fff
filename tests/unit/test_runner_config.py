"""Unit tests for runner settings loading."""

import json
from pathlib import Path

import pytest

from dataconnect_runner.config import (
    DEFAULT_WARMUP_URL,
    RunnerSettings,
    SettingsLoader,
    default_system_profile_root,
    home_directory,
)
from dataconnect_runner.errors import ConfigurationError


class TestHomeDirectory:
    """Tests for home and profile root discovery."""

    def test_home_prefers_home_variable(self):
        assert home_directory({"HOME": "/home/alice", "USERPROFILE": "C:\\Users\\bob"}) == Path("/home/alice")

    def test_home_falls_back_to_userprofile(self):
        assert home_directory({"USERPROFILE": "C:\\Users\\bob"}) == Path("C:\\Users\\bob")

    def test_system_profile_root_per_platform(self):
        environ = {"HOME": "/home/alice", "LOCALAPPDATA": "C:\\Local"}

        assert default_system_profile_root("linux", environ) == Path("/home/alice/.config/google-chrome")
        assert default_system_profile_root("darwin", environ) == Path(
            "/home/alice/Library/Application Support/Google/Chrome"
        )
        assert default_system_profile_root("win32", environ) == Path("C:\\Local") / "Google" / "Chrome" / "User Data"

    def test_windows_without_localappdata_has_no_profile_root(self):
        assert default_system_profile_root("win32", {"HOME": "/h"}) is None


class TestSettingsLoader:
    """Tests for SettingsLoader precedence handling."""

    def test_defaults(self):
        settings = SettingsLoader(environ={"HOME": "/home/alice"}, platform="linux").load()

        assert settings.data_dir == Path("/home/alice/.dataconnect")
        assert settings.profiles_dir == Path("/home/alice/.dataconnect/browser-profiles")
        assert settings.browser_cache_dir == Path("/home/alice/.dataconnect/browsers")
        assert settings.warmup_url == DEFAULT_WARMUP_URL
        assert settings.http_timeout_ms == 30000
        assert settings.prompt_interval_ms == 2000
        assert settings.exit_on_run_finished is True
        assert settings.simulate_no_chrome is False
        assert settings.loaded_from == ["defaults"]

    def test_legacy_environment_variables(self):
        environ = {
            "HOME": "/home/alice",
            "PLAYWRIGHT_BROWSERS_PATH": "/opt/browsers",
            "DATACONNECT_SIMULATE_NO_CHROME": "1",
        }
        settings = SettingsLoader(environ=environ, platform="linux").load()

        assert settings.browser_cache_dir == Path("/opt/browsers")
        assert settings.simulate_no_chrome is True

    def test_prefixed_environment_variables(self):
        environ = {
            "HOME": "/home/alice",
            "DATACONNECT_RUNNER_HTTP_TIMEOUT_MS": "5000",
            "DATACONNECT_RUNNER_EXIT_ON_RUN_FINISHED": "false",
            "DATACONNECT_RUNNER_LOG_LEVEL": "debug",
            "DATACONNECT_RUNNER_LAUNCH_ARGS": "--foo --bar",
        }
        settings = SettingsLoader(environ=environ, platform="linux").load()

        assert settings.http_timeout_ms == 5000
        assert settings.exit_on_run_finished is False
        assert settings.log_level == "DEBUG"
        assert settings.launch_args == ["--foo", "--bar"]

    def test_precedence_cli_over_env_over_file(self, tmp_path):
        config_file = tmp_path / "runner.yaml"
        config_file.write_text("http_timeout_ms: 1000\nprompt_interval_ms: 500\nwarmup_url: https://a.example/\n")
        environ = {"HOME": "/home/alice", "DATACONNECT_RUNNER_PROMPT_INTERVAL_MS": "750"}

        settings = SettingsLoader(environ=environ, platform="linux").load(
            config_file=config_file,
            cli_overrides={"warmup_url": "https://cli.example/", "data_dir": None},
        )

        assert settings.http_timeout_ms == 1000
        assert settings.prompt_interval_ms == 750
        assert settings.warmup_url == "https://cli.example/"
        assert settings.data_dir == Path("/home/alice/.dataconnect")
        assert settings.loaded_from[0] == "defaults"
        assert "environment variables" in settings.loaded_from
        assert settings.loaded_from[-1] == "CLI flags"

    def test_json_config_from_environment(self, tmp_path):
        config_file = tmp_path / "runner.json"
        config_file.write_text(json.dumps({"completion_linger_ms": 0}))
        environ = {"HOME": "/home/alice", "DATACONNECT_RUNNER_CONFIG": str(config_file)}

        settings = SettingsLoader(environ=environ, platform="linux").load()

        assert settings.completion_linger_ms == 0

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            SettingsLoader(environ={"HOME": "/h"}).load(config_file=tmp_path / "missing.yaml")

    def test_unsupported_config_format(self, tmp_path):
        config_file = tmp_path / "runner.toml"
        config_file.write_text("x = 1")

        with pytest.raises(ConfigurationError, match="Unsupported"):
            SettingsLoader(environ={"HOME": "/h"}).load(config_file=config_file)

    def test_non_mapping_config(self, tmp_path):
        config_file = tmp_path / "runner.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            SettingsLoader(environ={"HOME": "/h"}).load(config_file=config_file)

    def test_invalid_integer_env(self):
        environ = {"HOME": "/h", "DATACONNECT_RUNNER_HTTP_TIMEOUT_MS": "soon"}

        with pytest.raises(ConfigurationError, match="integer"):
            SettingsLoader(environ=environ).load()

    def test_invalid_value_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            SettingsLoader(environ={"HOME": "/h"}).load(cli_overrides={"log_level": "chatty"})


class TestRunnerSettings:
    """Tests for derived settings properties."""

    def test_viewport(self, tmp_path):
        settings = RunnerSettings(data_dir=tmp_path, viewport_width=1024, viewport_height=768)
        assert settings.viewport == {"width": 1024, "height": 768}

    def test_explicit_browsers_path(self, tmp_path):
        settings = RunnerSettings(data_dir=tmp_path, browsers_path=tmp_path / "cache")
        assert settings.browser_cache_dir == tmp_path / "cache"
