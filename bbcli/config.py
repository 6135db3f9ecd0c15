"""Configuration module for bbcli.

This module provides configuration management for the application, loading
settings from the bb config file (KEY=value format) with environment
variables taking precedence over file values.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from bbcli.instance import DEFAULT_HOSTNAME, Instance, hostname_validator
from bbcli.logger import get_logger

logger = get_logger(__name__)

CONFIG_FILE = "config"
HOSTS_FILE = "hosts.yml"

DEFAULT_HTTP_TIMEOUT = 30

# Values treated as "off" for boolean-ish environment variables
FALSEY_VALUES = ("", "0", "false", "no")


class ConfigError(Exception):
    """Raised when the configuration file or environment holds invalid values."""

    pass


@dataclass
class Config:
    """Application configuration.

    Attributes:
        config_dir: Directory holding the config and hosts files
        default_hostname: Hostname of the public Bitbucket instance
        http_timeout: Overall request timeout in seconds
        prompt_disabled: Never prompt, even on a terminal
        log_level: Log level name passed to the logger module
        log_file: Optional path of a rotating log file
    """

    config_dir: str
    default_hostname: str = DEFAULT_HOSTNAME
    http_timeout: int = DEFAULT_HTTP_TIMEOUT
    prompt_disabled: bool = False
    log_level: str = "WARNING"
    log_file: str | None = None

    @property
    def hosts_path(self) -> Path:
        return Path(self.config_dir) / HOSTS_FILE

    @property
    def instance(self) -> Instance:
        """The Bitbucket instance described by this configuration."""
        return Instance(hostname=self.default_hostname)


def config_dir() -> Path:
    """Determine the bb configuration directory.

    Priority:
    1. BB_CONFIG_DIR
    2. $XDG_CONFIG_HOME/bb
    3. ~/.config/bb
    """
    if path := os.environ.get("BB_CONFIG_DIR"):
        return Path(path)
    if xdg := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg) / "bb"
    return Path.home() / ".config" / "bb"


def parse_config_file(config_path: Path) -> dict[str, str]:
    """Parse a KEY=value config file.

    Args:
        config_path: Path to the config file

    Returns:
        Dictionary of key-value pairs
    """
    config = {}
    with open(config_path) as f:
        for line in f:
            line = line.strip()
            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                # Remove surrounding quotes if present
                if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                    value = value[1:-1]
                config[key] = value
    return config


def _parse_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got '{value}'") from e
    if parsed <= 0:
        raise ConfigError(f"{name} must be positive, got {parsed}")
    return parsed


def is_truthy_env(name: str) -> bool:
    """Return True if the environment variable is set to a non-falsey value."""
    return os.environ.get(name, "").strip().lower() not in FALSEY_VALUES


def is_debug_enabled() -> tuple[bool, str]:
    """Check BB_DEBUG, then DEBUG, for a debug mode request.

    Returns:
        Tuple of (enabled, raw value). A value containing "api" additionally
        requests verbose HTTP logging.
    """
    value = os.environ.get("BB_DEBUG")
    if value is None:
        value = os.environ.get("DEBUG", "")
    return value.strip().lower() not in FALSEY_VALUES, value


def load_config(directory: Path | None = None) -> Config:
    """Load configuration from the config file and environment variables.

    Environment variables override values from <config_dir>/config:
        BB_DEFAULT_HOST  -> DEFAULT_HOST
        BB_HTTP_TIMEOUT  -> HTTP_TIMEOUT
        BB_PROMPT_DISABLED -> PROMPT=disabled
        LOG_LEVEL        -> LOG_LEVEL
        BB_LOG_FILE      -> LOG_FILE

    Args:
        directory: Config directory. Defaults to config_dir().

    Returns:
        Config: A Config instance

    Raises:
        ConfigError: If a value is invalid
    """
    directory = directory or config_dir()
    config_path = directory / CONFIG_FILE

    data: dict[str, str] = {}
    if config_path.exists():
        try:
            data = parse_config_file(config_path)
        except OSError as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e
        logger.debug(f"Loaded config from {config_path}")

    default_hostname = os.environ.get("BB_DEFAULT_HOST") or data.get(
        "DEFAULT_HOST", DEFAULT_HOSTNAME
    )
    try:
        hostname_validator(default_hostname)
    except ValueError as e:
        raise ConfigError(f"DEFAULT_HOST is not a valid hostname: '{default_hostname}' ({e})") from e

    timeout_str = os.environ.get("BB_HTTP_TIMEOUT") or data.get("HTTP_TIMEOUT")
    http_timeout = (
        _parse_int("HTTP_TIMEOUT", timeout_str) if timeout_str else DEFAULT_HTTP_TIMEOUT
    )

    if "BB_PROMPT_DISABLED" in os.environ:
        prompt_disabled = is_truthy_env("BB_PROMPT_DISABLED")
    else:
        prompt_disabled = data.get("PROMPT", "enabled").lower() == "disabled"

    log_level = (os.environ.get("LOG_LEVEL") or data.get("LOG_LEVEL", "WARNING")).upper()
    os.environ["LOG_LEVEL"] = log_level  # Set for logger module

    log_file = os.environ.get("BB_LOG_FILE") or data.get("LOG_FILE") or None

    return Config(
        config_dir=str(directory),
        default_hostname=default_hostname.lower(),
        http_timeout=http_timeout,
        prompt_disabled=prompt_disabled,
        log_level=log_level,
        log_file=log_file,
    )
