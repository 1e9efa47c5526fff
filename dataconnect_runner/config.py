"""Configuration system for the DataConnect browser runner.

Settings are merged from several sources with the following precedence:
CLI flags > environment variables > config file > defaults

The runner is normally started by the desktop app with nothing but
environment variables, so every setting has a usable default derived from
the user's home directory.
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled"]
DEFAULT_WARMUP_URL = "https://chatgpt.com/"


def home_directory(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Resolve the user's home directory from HOME or USERPROFILE."""
    environ = os.environ if environ is None else environ
    home = environ.get("HOME") or environ.get("USERPROFILE") or ""
    return Path(home) if home else Path.home()


def default_system_profile_root(
    platform: str = sys.platform,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[Path]:
    """Locate the system Chrome user-data root for a platform."""
    environ = os.environ if environ is None else environ
    home = home_directory(environ)
    if platform == "darwin":
        return home / "Library" / "Application Support" / "Google" / "Chrome"
    if platform == "win32":
        local_app_data = environ.get("LOCALAPPDATA", "")
        return Path(local_app_data) / "Google" / "Chrome" / "User Data" if local_app_data else None
    if platform.startswith("linux"):
        return home / ".config" / "google-chrome"
    return None


class RunnerSettings(BaseModel):
    """Complete runner configuration."""

    # Filesystem layout
    data_dir: Path = Field(description="Root for profiles and fetched browsers")
    browsers_path: Optional[Path] = Field(
        default=None,
        description="Browser cache directory (PLAYWRIGHT_BROWSERS_PATH)"
    )
    system_profile_root: Optional[Path] = Field(
        default=None,
        description="System Chrome user-data root used as the cookie import source"
    )
    local_app_data: Optional[Path] = Field(default=None, description="Windows LOCALAPPDATA")

    # Browser resolution / launch
    simulate_no_chrome: bool = Field(
        default=False,
        description="Skip system browser detection (exercises the cached-browser path)"
    )
    viewport_width: int = Field(default=1280, ge=200)
    viewport_height: int = Field(default=800, ge=200)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    launch_args: List[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))
    warmup_url: str = Field(default=DEFAULT_WARMUP_URL, description="Page loaded after go_headless()")

    # Page API timing
    http_timeout_ms: int = Field(default=30000, ge=1, description="Default http_fetch timeout")
    prompt_interval_ms: int = Field(default=2000, ge=1, description="Default prompt_user poll interval")
    completion_linger_ms: int = Field(
        default=2000,
        ge=0,
        description="Time the browser stays open after a run completes"
    )

    # Process policy
    exit_on_run_finished: bool = Field(default=True, description="Exit the process when a run finishes")
    log_level: str = Field(default="INFO")

    loaded_from: List[str] = Field(default_factory=list, description="Configuration sources")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return level

    @property
    def profiles_dir(self) -> Path:
        """Directory holding one persistent browser profile per connector."""
        return self.data_dir / "browser-profiles"

    @property
    def browser_cache_dir(self) -> Path:
        """Directory scanned for previously fetched browsers."""
        return self.browsers_path or (self.data_dir / "browsers")

    @property
    def viewport(self) -> Dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}


class SettingsLoader:
    """Loads and merges runner settings from multiple sources."""

    ENV_PREFIX = "DATACONNECT_RUNNER_"
    CONFIG_ENV_VAR = "DATACONNECT_RUNNER_CONFIG"

    BOOL_FIELDS = {"simulate_no_chrome", "exit_on_run_finished"}
    INT_FIELDS = {
        "viewport_width", "viewport_height", "http_timeout_ms",
        "prompt_interval_ms", "completion_linger_ms",
    }
    PATH_FIELDS = {"data_dir", "browsers_path", "system_profile_root", "local_app_data"}

    def __init__(self, environ: Optional[Mapping[str, str]] = None, platform: str = sys.platform):
        self.environ = os.environ if environ is None else environ
        self.platform = platform
        self.loaded_sources: List[str] = []

    def load(
        self,
        config_file: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
    ) -> RunnerSettings:
        """Load settings with proper precedence.

        Args:
            config_file: Explicit YAML/JSON config file (falls back to
                DATACONNECT_RUNNER_CONFIG when not given)
            cli_overrides: Values from CLI flags; ``None`` entries are ignored

        Returns:
            Validated settings

        Raises:
            ConfigurationError: If a source cannot be read or validation fails
        """
        self.loaded_sources = ["defaults"]
        config_data: Dict[str, Any] = self._defaults()

        if config_file is None and self.environ.get(self.CONFIG_ENV_VAR):
            config_file = Path(self.environ[self.CONFIG_ENV_VAR])

        if config_file is not None:
            if not config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {config_file}")
            config_data.update(self._load_config_file(config_file))
            self.loaded_sources.append(f"config file: {config_file}")

        env_config = self._load_environment_variables()
        if env_config:
            config_data.update(env_config)
            self.loaded_sources.append("environment variables")

        overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
        if overrides:
            config_data.update(overrides)
            self.loaded_sources.append("CLI flags")

        config_data["loaded_from"] = self.loaded_sources
        try:
            return RunnerSettings(**config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid runner configuration: {e}") from e

    def _defaults(self) -> Dict[str, Any]:
        local_app_data = self.environ.get("LOCALAPPDATA")
        return {
            "data_dir": home_directory(self.environ) / ".dataconnect",
            "system_profile_root": default_system_profile_root(self.platform, self.environ),
            "local_app_data": Path(local_app_data) if local_app_data else None,
        }

    def _load_config_file(self, config_path: Path) -> Dict[str, Any]:
        """Load settings from a YAML or JSON file."""
        try:
            content = config_path.read_text(encoding="utf-8")
            if config_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif config_path.suffix.lower() == ".json":
                data = json.loads(content)
            else:
                raise ConfigurationError(f"Unsupported config file format: {config_path.suffix}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error loading config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """Load settings from environment variables.

        Besides the ``DATACONNECT_RUNNER_*`` names, the variables the desktop
        app already sets for the sidecar are honoured.
        """
        config: Dict[str, Any] = {}

        legacy_mapping = {
            "PLAYWRIGHT_BROWSERS_PATH": "browsers_path",
            "DATACONNECT_SIMULATE_NO_CHROME": "simulate_no_chrome",
        }
        for env_var, field_name in legacy_mapping.items():
            value = self.environ.get(env_var)
            if value:
                config[field_name] = self._convert_env_value(value, field_name)

        for field_name in RunnerSettings.model_fields:
            if field_name == "loaded_from":
                continue
            value = self.environ.get(f"{self.ENV_PREFIX}{field_name.upper()}")
            if value is not None:
                config[field_name] = self._convert_env_value(value, field_name)

        return config

    def _convert_env_value(self, value: str, field_name: str) -> Any:
        """Convert an environment variable string to the field's type."""
        if field_name in self.BOOL_FIELDS:
            # Any non-empty value switches the simulation flag on.
            if field_name == "simulate_no_chrome":
                return value.lower() not in ("", "0", "false", "no", "off")
            return value.lower() in ("true", "1", "yes", "on")

        if field_name in self.INT_FIELDS:
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{field_name} must be an integer, got {value!r}") from e

        if field_name in self.PATH_FIELDS:
            return Path(value) if value else None

        if field_name == "launch_args":
            return [arg for arg in value.split() if arg]

        return value


def load_settings(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunnerSettings:
    """Convenience function to load runner settings."""
    return SettingsLoader(environ=environ).load(config_file, cli_overrides)
