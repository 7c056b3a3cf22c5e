"""Tests for config module."""

import pytest
from pathlib import Path

import newsclipper.config as config_module
from newsclipper.cache import ContentCache
from newsclipper.config import (
    BUGFIX_CHECK_INTERVAL,
    ClipperConfig,
    DEFAULT_UPDATE_TIMES,
    FUNCTIONAL_CHECK_INTERVAL,
    HANDLER_KIND_ORDER,
    HandlerKind,
    MEGABYTE,
    get_kind_dir,
    load_config_file,
)
from newsclipper.errors import ConfigError


class TestHandlerKind:
    """Tests for HandlerKind enum."""

    def test_parse_case_insensitive(self):
        """Test parsing kind names in any case."""
        assert HandlerKind.parse("acquisition") == HandlerKind.ACQUISITION
        assert HandlerKind.parse(" Filter ") == HandlerKind.FILTER
        assert HandlerKind.parse("OUTPUT") == HandlerKind.OUTPUT

    def test_parse_unknown(self):
        """Test unknown kind names are rejected."""
        with pytest.raises(ValueError):
            HandlerKind.parse("Transformer")

    def test_search_order(self):
        """Test kind directories are searched acquisition first."""
        assert HANDLER_KIND_ORDER == (
            HandlerKind.ACQUISITION,
            HandlerKind.FILTER,
            HandlerKind.OUTPUT,
        )

    def test_kind_dir(self):
        """Test kind directory naming."""
        assert get_kind_dir(Path("/h"), HandlerKind.FILTER) == Path("/h/Filter")


class TestConstants:
    """Tests for module constants."""

    def test_check_intervals(self):
        """Test update check intervals."""
        assert FUNCTIONAL_CHECK_INTERVAL == 24 * 60 * 60
        assert BUGFIX_CHECK_INTERVAL == 8 * 60 * 60

    def test_default_update_times(self):
        """Test default update times."""
        assert DEFAULT_UPDATE_TIMES == ["2,5,8,11,14,17,20,23"]


class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_reads_quoted_values(self, tmp_path):
        """Test KEY="value" lines are read with quotes stripped."""
        config_file = tmp_path / "newsclipper.conf"
        config_file.write_text(
            '# comment\n'
            'REGISTRY_URL="http://example.com/cgi-bin"\n'
            '\n'
            "socket_tries='5'\n"
        )

        values = load_config_file(config_file)
        assert values["REGISTRY_URL"] == "http://example.com/cgi-bin"
        assert values["SOCKET_TRIES"] == "5"
        assert len(values) == 2


class TestClipperConfig:
    """Tests for ClipperConfig class."""

    def test_default_config(self):
        """Test default configuration."""
        config = ClipperConfig()
        assert config.protocol_version == "1.18"
        assert config.socket_tries == 3
        assert config.max_cache_size == 5 * MEGABYTE
        assert config.auto_download_bugfix_updates is True
        assert config.check_for_updates is False
        assert config.interactive is None

    def test_cache_owns_registry_location(self, tmp_path):
        """Test the cache registry path is derived by the cache from cache_dir."""
        config = ClipperConfig(cache_dir=tmp_path)
        assert not hasattr(config, "registry_file")
        assert ContentCache(config.cache_dir, config.max_cache_size).registry_path == (
            tmp_path / "registry.txt"
        )

    def test_no_module_default_instance(self):
        """Test configuration is always built explicitly."""
        assert not hasattr(config_module, "DEFAULT_CONFIG")

    def test_from_mapping(self):
        """Test creating configuration from string settings."""
        config = ClipperConfig.from_mapping({
            "HANDLER_LOCATIONS": "/a, /b",
            "MAX_CACHE_SIZE": "2",
            "AUTO_DOWNLOAD_ALL": "yes",
            "AUTO_DOWNLOAD_BUGFIX_UPDATES": "no",
            "INTERACTIVE": "false",
            "DEFAULT_UPDATE_TIMES": "fri 2; 14 EST",
        })
        assert config.handler_locations == [Path("/a"), Path("/b")]
        assert config.max_cache_size == 2 * MEGABYTE
        assert config.auto_download_all is True
        assert config.auto_download_bugfix_updates is False
        assert config.interactive is False
        assert config.default_update_times == ["fri 2", "14 EST"]

    def test_from_env_overrides_file(self, tmp_path, monkeypatch):
        """Test environment variables override config file values."""
        config_file = tmp_path / "newsclipper.conf"
        config_file.write_text('SOCKET_TIMEOUT="10"\nSCRIPT_TIMEOUT="60"\n')
        monkeypatch.setenv("NEWSCLIPPER_SOCKET_TIMEOUT", "20")

        config = ClipperConfig.from_env(config_file)
        assert config.socket_timeout == 20
        assert config.script_timeout == 60

    def test_from_env_missing_file(self, tmp_path):
        """Test a missing config file is an error."""
        with pytest.raises(ConfigError):
            ClipperConfig.from_env(tmp_path / "missing.conf")

    def test_install_root(self):
        """Test new handlers go to the first handler location."""
        config = ClipperConfig(handler_locations=[Path("/first"), Path("/second")])
        assert config.install_root == Path("/first")

    def test_proxies(self):
        """Test proxy settings."""
        config = ClipperConfig()
        assert config.get_proxies() is None
        assert config.get_proxy_auth() is None

        config = ClipperConfig(proxy="http://proxy:8080", proxy_username="u", proxy_password="p")
        assert config.get_proxies()["http"] == "http://proxy:8080"
        assert config.get_proxy_auth() == ("u", "p")

    def test_validate(self):
        """Test validation of unusable settings."""
        ClipperConfig().validate()

        with pytest.raises(ConfigError):
            ClipperConfig(handler_locations=[]).validate()
        with pytest.raises(ConfigError):
            ClipperConfig(max_cache_size=0).validate()
        with pytest.raises(ConfigError):
            ClipperConfig(socket_tries=0).validate()
