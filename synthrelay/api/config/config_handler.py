from __future__ import annotations

import os
import tomllib
from pathlib import Path

from loguru import logger

import synthrelay.core.constants as constants
from synthrelay.api.models.config_model import Config

ENV_PREFIX = "SYNTHRELAY_"


def _coerce(raw_value: str, fallback: object) -> object:
    """Cast an env var string to the type of its fallback value."""
    if isinstance(fallback, bool):
        return raw_value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(fallback, int):
        try:
            return int(raw_value)
        except ValueError:
            return fallback
    if isinstance(fallback, float):
        try:
            return float(raw_value)
        except ValueError:
            return fallback
    if isinstance(fallback, list):
        return [item.strip() for item in raw_value.split(",") if item.strip()]
    return raw_value


class ConfigHandler:
    """Load the relay config from config.toml and the environment."""

    def __init__(self, root_state_dir: Path | None = None) -> None:
        """Initialize configuration directory paths."""
        self.root_state_dir = root_state_dir or Path(f"{constants.HOME}/.synthrelay")
        self.config_toml_path = self.root_state_dir / "config.toml"

    def _load_config_toml(self) -> dict[str, object]:
        """Load config.toml from the state directory."""
        if not self.config_toml_path.exists():
            return {}

        try:
            with open(self.config_toml_path, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Failed to load config.toml | Path: {self.config_toml_path} | Error: {str(e)}")
            return {}

    def check_config(self) -> bool:
        """Check whether a config.toml exists."""
        return self.config_toml_path.exists()

    def build_config(self) -> Config:
        """
        Build the runtime config.

        Loads from (in priority order): config.toml, environment variables
        (`SYNTHRELAY_<ATTRIBUTE>`), defaults.
        """
        config = Config()

        for name in [name for name in Config.__annotations__ if name.isupper()]:
            raw_value = os.getenv(f"{ENV_PREFIX}{name}", "").strip()
            if raw_value:
                setattr(config, name, _coerce(raw_value, getattr(config, name)))

        config_toml = self._load_config_toml()
        if config_toml:
            config.set_attr_from_config(config_toml)

        config.validate()
        return config

    def write_config_toml(self, config: Config) -> None:
        """
        Write config.toml from a `Config` instance.

        Args:
            config (Config): The config to persist.
        """
        self.root_state_dir.mkdir(parents=True, exist_ok=True)
        self.config_toml_path.write_text(config.export_toml(), encoding="utf-8")
        self.config_toml_path.chmod(0o600)  # Restrict to owner only
