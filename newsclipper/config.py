"""
Configuration constants and settings for News Clipper.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
import os

from newsclipper.errors import ConfigError


class HandlerKind(str, Enum):
    """Handler kinds, one subdirectory per kind under each handler root."""
    ACQUISITION = "Acquisition"
    FILTER = "Filter"
    OUTPUT = "Output"

    @classmethod
    def parse(cls, value: str) -> "HandlerKind":
        """Parse a kind name case-insensitively."""
        for kind in cls:
            if kind.value.lower() == value.strip().lower():
                return kind
        raise ValueError(f"Unknown handler kind: {value!r}")


# Kind directories are searched in this order when loading a handler
HANDLER_KIND_ORDER = (HandlerKind.ACQUISITION, HandlerKind.FILTER, HandlerKind.OUTPUT)

# Handler code must declare this protocol version to be loaded
COMPATIBLE_PROTOCOL_VERSION = "1.18"

# Minimum time between update checks of each kind (seconds)
FUNCTIONAL_CHECK_INTERVAL = 24 * 60 * 60
BUGFIX_CHECK_INTERVAL = 8 * 60 * 60

# Timezone assumed for update times that do not name one
REFERENCE_TIMEZONE = "PST"

DEFAULT_UPDATE_TIMES = ["2,5,8,11,14,17,20,23"]

DEFAULT_REGISTRY_URL = "http://handlers.newsclipper.com/cgi-bin"

MEGABYTE = 1048576

ENV_PREFIX = "NEWSCLIPPER_"


def _default_home() -> Path:
    return Path(os.path.expanduser("~")) / ".NewsClipper"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "y", "yes", "true", "on")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def load_config_file(config_file: Path) -> Dict[str, str]:
    """
    Read a KEY="value" configuration file.

    Blank lines and lines starting with '#' are ignored. Keys are
    returned upper-cased with surrounding quotes stripped from values.

    Args:
        config_file: Path to the configuration file

    Returns:
        Mapping of key to raw string value
    """
    values: Dict[str, str] = {}
    for line in config_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, value = line.split("=", 1)
            values[key.strip().upper()] = value.strip().strip('"').strip("'")
    return values


@dataclass
class ClipperConfig:
    """Global configuration for a News Clipper run."""

    # Directories
    handler_locations: List[Path] = field(
        default_factory=lambda: [_default_home() / "handlers"]
    )
    cache_dir: Path = field(default_factory=lambda: _default_home() / "cache")
    state_file: Path = field(default_factory=lambda: _default_home() / "state.json")
    log_file: Optional[Path] = None

    # Content cache size limit in bytes
    max_cache_size: int = 5 * MEGABYTE

    # Handler registry
    registry_url: str = DEFAULT_REGISTRY_URL
    protocol_version: str = COMPATIBLE_PROTOCOL_VERSION

    # Network settings
    socket_timeout: int = 30
    socket_tries: int = 3
    proxy: str = ""
    proxy_username: str = ""
    proxy_password: str = ""

    # Total time allowed for one run (0 disables the deadline)
    script_timeout: int = 300

    # Update policy
    check_for_updates: bool = False
    auto_download_all: bool = False
    auto_download_bugfix_updates: bool = True
    interactive: Optional[bool] = None

    default_update_times: List[str] = field(
        default_factory=lambda: list(DEFAULT_UPDATE_TIMES)
    )

    @classmethod
    def from_mapping(cls, values: Dict[str, str]) -> "ClipperConfig":
        """Create configuration from upper-case string settings."""
        config = cls()

        if "HANDLER_LOCATIONS" in values:
            config.handler_locations = [
                Path(os.path.expanduser(p)) for p in _parse_list(values["HANDLER_LOCATIONS"])
            ]
        if "CACHE_DIR" in values:
            config.cache_dir = Path(os.path.expanduser(values["CACHE_DIR"]))
        if "STATE_FILE" in values:
            config.state_file = Path(os.path.expanduser(values["STATE_FILE"]))
        if "LOG_FILE" in values:
            config.log_file = Path(os.path.expanduser(values["LOG_FILE"]))
        if "MAX_CACHE_SIZE" in values:
            # Configured in megabytes
            config.max_cache_size = int(float(values["MAX_CACHE_SIZE"]) * MEGABYTE)
        if "REGISTRY_URL" in values:
            config.registry_url = values["REGISTRY_URL"].rstrip("/")
        if "PROTOCOL_VERSION" in values:
            config.protocol_version = values["PROTOCOL_VERSION"]
        if "SOCKET_TIMEOUT" in values:
            config.socket_timeout = int(values["SOCKET_TIMEOUT"])
        if "SOCKET_TRIES" in values:
            config.socket_tries = int(values["SOCKET_TRIES"])
        if "PROXY" in values:
            config.proxy = values["PROXY"]
        if "PROXY_USERNAME" in values:
            config.proxy_username = values["PROXY_USERNAME"]
        if "PROXY_PASSWORD" in values:
            config.proxy_password = values["PROXY_PASSWORD"]
        if "SCRIPT_TIMEOUT" in values:
            config.script_timeout = int(values["SCRIPT_TIMEOUT"])
        if "CHECK_FOR_UPDATES" in values:
            config.check_for_updates = _parse_bool(values["CHECK_FOR_UPDATES"])
        if "AUTO_DOWNLOAD_ALL" in values:
            config.auto_download_all = _parse_bool(values["AUTO_DOWNLOAD_ALL"])
        if "AUTO_DOWNLOAD_BUGFIX_UPDATES" in values:
            config.auto_download_bugfix_updates = _parse_bool(
                values["AUTO_DOWNLOAD_BUGFIX_UPDATES"]
            )
        if "INTERACTIVE" in values:
            config.interactive = _parse_bool(values["INTERACTIVE"])
        if "DEFAULT_UPDATE_TIMES" in values:
            config.default_update_times = [
                t.strip() for t in values["DEFAULT_UPDATE_TIMES"].split(";") if t.strip()
            ]

        return config

    @classmethod
    def from_env(cls, config_file: Optional[Path] = None) -> "ClipperConfig":
        """
        Create configuration from an optional config file and the environment.

        Environment variables (NEWSCLIPPER_<KEY>) override file values.
        """
        values: Dict[str, str] = {}
        if config_file is not None:
            if not config_file.exists():
                raise ConfigError(f"Configuration file not found: {config_file}")
            values.update(load_config_file(config_file))

        for key, value in os.environ.items():
            if key.startswith(ENV_PREFIX):
                values[key[len(ENV_PREFIX):]] = value

        return cls.from_mapping(values)

    @property
    def install_root(self) -> Path:
        """Root that receives newly downloaded handlers."""
        return self.handler_locations[0]

    def get_proxies(self) -> Optional[Dict[str, str]]:
        """Get a requests-style proxies mapping, if a proxy is configured."""
        if not self.proxy:
            return None
        return {"http": self.proxy, "https": self.proxy, "ftp": self.proxy}

    def get_proxy_auth(self) -> Optional[tuple]:
        """Get basic auth credentials for the proxy."""
        if self.proxy_username:
            return (self.proxy_username, self.proxy_password)
        return None

    def validate(self) -> None:
        """Check that the configuration is usable for a run."""
        if not self.handler_locations:
            raise ConfigError("handler_locations must be non-empty")
        if self.max_cache_size <= 0:
            raise ConfigError("max_cache_size must be greater than zero")
        if self.socket_tries < 1:
            raise ConfigError("socket_tries must be at least 1")
        if self.script_timeout < 0:
            raise ConfigError("script_timeout can not be negative")


def get_kind_dir(root: Path, kind: HandlerKind) -> Path:
    """Get the directory holding handlers of a kind under a root."""
    return root / kind.value
