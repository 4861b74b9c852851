"""
Client configuration module.

Manages the portal API base URL, access token and runtime settings for the
notification client. Configuration can be loaded from a YAML file or
environment variables.
"""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from platformdirs import user_config_dir


# ============================================================================
# Constants
# ============================================================================

APP_NAME = "fieldlink"
APP_AUTHOR = "FieldLink"
CONFIG_FILENAME = "portal-config.yaml"

# Environment variable names
ENV_API_BASE_URL = "FIELDLINK_API_BASE_URL"
ENV_ACCESS_TOKEN = "FIELDLINK_ACCESS_TOKEN"
ENV_LOG_LEVEL = "FIELDLINK_LOG_LEVEL"
ENV_CONFIG_PATH = "FIELDLINK_CONFIG_PATH"

# Default values
DEFAULT_API_BASE_URL = "http://localhost:5000/api/v1"
DEFAULT_NOTIFICATION_LIMIT = 10
MAX_NOTIFICATION_LIMIT = 10  # the engine never holds more
DEFAULT_UPCOMING_WINDOW_DAYS = 7
DEFAULT_POLL_INTERVAL_SECONDS = 30
DEFAULT_LOG_LEVEL = "INFO"

DEFAULTS = {
    "api_base_url": DEFAULT_API_BASE_URL,
    "access_token": "",
    "notification_limit": DEFAULT_NOTIFICATION_LIMIT,
    "upcoming_window_days": DEFAULT_UPCOMING_WINDOW_DAYS,
    "poll_interval_seconds": DEFAULT_POLL_INTERVAL_SECONDS,
    "log_level": DEFAULT_LOG_LEVEL,
}

# URL validation regex
URL_PATTERN = re.compile(
    r"^https?://"  # http:// or https://
    r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,6}\.?|"  # domain
    r"localhost|"  # localhost
    r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
    r"(?::\d+)?"  # optional port
    r"(?:/?|[/?]\S+)$",
    re.IGNORECASE,
)

# Keys accepted by `fieldlink config set`
SETTABLE_KEYS = (
    "api_base_url",
    "access_token",
    "log_level",
    "notification_limit",
    "upcoming_window_days",
    "poll_interval_seconds",
)


# ============================================================================
# Exceptions
# ============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    pass


# ============================================================================
# Helper Functions
# ============================================================================


def get_default_config_path() -> Path:
    """Config file under the per-user config directory for this platform."""
    return Path(user_config_dir(APP_NAME, APP_AUTHOR)) / CONFIG_FILENAME


def resolve_config_path(
    config_path: Optional[Path] = None,
    config_dir: Optional[Path] = None,
) -> Path:
    """
    Pick the config file location.

    An explicit file wins over a directory, which wins over
    FIELDLINK_CONFIG_PATH, which wins over the platform default.
    """
    if config_path:
        return Path(config_path)
    if config_dir:
        return Path(config_dir) / CONFIG_FILENAME
    env_path = os.environ.get(ENV_CONFIG_PATH)
    return Path(env_path) if env_path else get_default_config_path()


# ============================================================================
# PortalConfig Class
# ============================================================================


class PortalConfig:
    """
    Portal client configuration manager.

    Values come from environment variables first (URL, token and log level
    only), then the YAML file, then built-in defaults.

    Attributes:
        api_base_url: REST API base URL (including the /api/v1 suffix)
        access_token: Bearer token of the signed-in user
        notification_limit: Size of the pulled notification snapshot (at most 10)
        upcoming_window_days: Window used by the bulk payment alert list
        poll_interval_seconds: Seconds between background re-pulls while watching
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config_dir: Optional[Path] = None,
    ):
        """
        Args:
            config_path: Config file to use
            config_dir: Directory holding portal-config.yaml
        """
        self._config_path = resolve_config_path(config_path, config_dir)
        self._values: dict = dict(DEFAULTS)
        self._load()

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def config_dir(self) -> Path:
        return self._config_path.parent

    # -------------------------------------------------------------------------
    # Configuration Properties
    # -------------------------------------------------------------------------

    @property
    def api_base_url(self) -> str:
        """REST API base URL, FIELDLINK_API_BASE_URL taking precedence."""
        return os.environ.get(ENV_API_BASE_URL, self._values["api_base_url"])

    @api_base_url.setter
    def api_base_url(self, value: str) -> None:
        self._values["api_base_url"] = value

    @property
    def access_token(self) -> str:
        """Bearer token, FIELDLINK_ACCESS_TOKEN taking precedence."""
        return os.environ.get(ENV_ACCESS_TOKEN, self._values["access_token"])

    @access_token.setter
    def access_token(self, value: str) -> None:
        self._values["access_token"] = value

    @property
    def notification_limit(self) -> int:
        return self._values["notification_limit"]

    @notification_limit.setter
    def notification_limit(self, value: int) -> None:
        self._values["notification_limit"] = int(value)

    @property
    def upcoming_window_days(self) -> int:
        return self._values["upcoming_window_days"]

    @upcoming_window_days.setter
    def upcoming_window_days(self, value: int) -> None:
        self._values["upcoming_window_days"] = int(value)

    @property
    def poll_interval_seconds(self) -> int:
        return self._values["poll_interval_seconds"]

    @poll_interval_seconds.setter
    def poll_interval_seconds(self, value: int) -> None:
        self._values["poll_interval_seconds"] = int(value)

    @property
    def log_level(self) -> str:
        return os.environ.get(ENV_LOG_LEVEL, self._values["log_level"])

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._values["log_level"] = value

    @property
    def is_authenticated(self) -> bool:
        """True when an access token is available from any source."""
        return bool(self.access_token)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        if not self._config_path.exists():
            return

        try:
            with open(self._config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {self._config_path}: {e}")

        for key in DEFAULTS:
            if data.get(key) is not None:
                self._values[key] = data[key]

    def save(self) -> None:
        """Write the file-backed values (not environment overrides) to disk."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self._config_path, "w") as f:
            yaml.safe_dump(self._values, f, default_flow_style=False)

    def validate(self) -> None:
        """
        Check the effective configuration.

        Raises:
            ConfigValidationError: On a malformed URL, a notification limit
                outside 1..MAX_NOTIFICATION_LIMIT, a negative upcoming window
                or a non-positive poll interval
        """
        if not self.api_base_url or not URL_PATTERN.match(self.api_base_url):
            raise ConfigValidationError(
                f"Invalid api_base_url format: {self.api_base_url}"
            )

        if self.notification_limit <= 0:
            raise ConfigValidationError(
                f"notification_limit must be positive, got: {self.notification_limit}"
            )

        if self.notification_limit > MAX_NOTIFICATION_LIMIT:
            raise ConfigValidationError(
                f"notification_limit cannot exceed {MAX_NOTIFICATION_LIMIT}, got: {self.notification_limit}"
            )

        if self.upcoming_window_days < 0:
            raise ConfigValidationError(
                f"upcoming_window_days must be non-negative, got: {self.upcoming_window_days}"
            )

        if self.poll_interval_seconds <= 0:
            raise ConfigValidationError(
                f"poll_interval_seconds must be positive, got: {self.poll_interval_seconds}"
            )

    def set_value(self, key: str, value: str) -> None:
        """
        Set a configuration key from its string form.

        Args:
            key: One of SETTABLE_KEYS
            value: Raw value as typed on the command line

        Raises:
            ConfigError: If the key is unknown or the value is not a number
                where one is required
        """
        if key not in SETTABLE_KEYS:
            raise ConfigError(
                f"Unknown config key '{key}'. Must be one of: {', '.join(SETTABLE_KEYS)}"
            )
        if key in ("notification_limit", "upcoming_window_days", "poll_interval_seconds"):
            try:
                value = int(value)
            except ValueError:
                raise ConfigError(f"{key} must be an integer, got: {value}")
        setattr(self, key, value)

    def as_dict(self, mask_token: bool = True) -> dict:
        """Return the effective configuration, with the token masked by default."""
        token = self.access_token
        if mask_token and token:
            token = token[:4] + "..." if len(token) > 8 else "***"
        return {
            "api_base_url": self.api_base_url,
            "access_token": token,
            "notification_limit": self.notification_limit,
            "upcoming_window_days": self.upcoming_window_days,
            "poll_interval_seconds": self.poll_interval_seconds,
            "log_level": self.log_level,
        }
