"""Tests for the configuration system."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from booru_search.core.config import Config, get_config, reload_config


class TestConfig:
    """Test the Config class."""

    @pytest.fixture
    def yaml_config(self, tmp_path: Path) -> str:
        """Create a temporary YAML config file."""
        config_data = {
            "logging": {"level": "DEBUG"},
            "fetch": {"strategy": "fixed", "global_page_cap": 20},
            "sources": {"danbooru": {"enabled": False}, "yandere": {"max_pages": 5}},
        }
        path = tmp_path / "booru_search.yaml"
        path.write_text(yaml.dump(config_data))
        return str(path)

    def test_defaults(self) -> None:
        """Test that config initializes with defaults."""
        config = Config()

        assert config.get("logging.level") == "INFO"
        assert config.get("fetch.strategy") == "adaptive"
        assert config.get_int("fetch.global_page_cap") == 200
        assert config.get_int("fetch.page_size") == 100
        assert config.get_float("http.timeout_seconds") == 5.0
        assert config.get_int("cache.images.max_entries") == 5000
        assert config.get_int("cache.images.ttl_seconds") == 12 * 60 * 60
        assert config.get_int("cache.tags.ttl_seconds") == 72 * 60 * 60

    def test_load_yaml_config(self, yaml_config: str) -> None:
        """Test that file values override defaults and defaults fill the gaps."""
        config = Config(yaml_config)

        assert config.get("logging.level") == "DEBUG"
        assert config.get("fetch.strategy") == "fixed"
        assert config.get_int("fetch.global_page_cap") == 20
        assert config.get_int("fetch.page_size") == 100
        assert config.is_source_enabled("danbooru") is False
        assert config.is_source_enabled("safebooru") is True
        assert config.get_source_config("yandere")["max_pages"] == 5

    def test_load_toml_config(self, tmp_path: Path) -> None:
        path = tmp_path / "booru_search.toml"
        path.write_text('[fetch]\nstrategy = "fixed"\n\n[http]\ntimeout_seconds = 2.5\n')

        config = Config(str(path))

        assert config.get("fetch.strategy") == "fixed"
        assert config.get_float("http.timeout_seconds") == 2.5

    def test_get_with_default(self) -> None:
        config = Config()
        assert config.get("nonexistent.key", "DEFAULT") == "DEFAULT"

    def test_environment_variable_override(self, monkeypatch) -> None:
        """Test that environment variables override file and defaults."""
        monkeypatch.setenv("BOORU_SEARCH_FETCH_STRATEGY", "fixed")
        monkeypatch.setenv("BOORU_SEARCH_FETCH_WAVE_SIZE", "4")
        monkeypatch.setenv("BOORU_SEARCH_LOGGING_JSON_FORMAT", "true")

        config = Config()

        assert config.get("fetch.strategy") == "fixed"
        assert config.get_int("fetch.wave_size") == 4
        assert config.get_bool("logging.json_format") is True

    def test_non_numeric_value_uses_default(self) -> None:
        config = Config()
        config.set("fetch.page_size", "lots")
        assert config.get_int("fetch.page_size", 100) == 100

    def test_set_nested_value(self) -> None:
        config = Config()
        config.set("level1.level2.level3", "deep_value")
        assert config.get("level1.level2.level3") == "deep_value"

    def test_get_section(self) -> None:
        config = Config()
        fetch = config.get_section("fetch")
        assert fetch["wave_size"] == 10
        assert fetch["max_empty_waves"] == 1

    def test_reload_config(self, yaml_config: str) -> None:
        config = Config()
        assert config.get("fetch.strategy") == "adaptive"

        config.reload(yaml_config)

        assert config.get("fetch.strategy") == "fixed"

    def test_invalid_config_file(self) -> None:
        """Test that a missing file falls back to defaults."""
        config = Config("/nonexistent/path/config.yaml")
        assert config.get("logging.level") == "INFO"

    def test_to_dict(self) -> None:
        config_dict = Config().to_dict()
        assert {"logging", "http", "fetch", "cache", "sources", "aliases"} <= set(config_dict)

    def test_global_config_singleton(self) -> None:
        assert get_config() is get_config()
        reload_config()
        assert get_config().get("logging.level") is not None


class TestConfigValidation:
    """Tests for Config.validate."""

    def test_defaults_are_valid(self) -> None:
        result = Config().validate()
        assert result.is_valid
        assert str(result) == "Configuration is valid."

    def test_invalid_values(self) -> None:
        config = Config()
        config.set("logging.level", "LOUD")
        config.set("fetch.strategy", "greedy")
        config.set("fetch.wave_size", 0)
        config.set("http.timeout_seconds", -1)
        config.set("cache.images.max_entries", -5)

        result = config.validate()

        assert not result.is_valid
        assert len(result.errors) == 5
        assert "Errors:" in str(result)

    def test_alias_to_unknown_source(self) -> None:
        config = Config()
        config.set("aliases.tbib", "nowhere")
        result = config.validate()
        assert not result.is_valid

    def test_unknown_source_is_warning(self) -> None:
        config = Config()
        config.set("sources.somewhere", {"enabled": True})
        result = config.validate()
        assert result.is_valid
        assert result.warnings

    def test_validate_and_raise(self) -> None:
        config = Config()
        config.set("fetch.page_size", 0)
        with pytest.raises(ValueError):
            config.validate_and_raise()
