"""
Unit tests for roomseal.config module.
"""

import logging

import pytest

from roomseal.config import DEFAULT_CONFIG, Config
from roomseal.errors import ConfigError, ErrorCode


class TestConfig:
    """Tests for Config loading and overrides."""

    def test_defaults_when_file_missing(self, temp_dir, clean_env):
        """Test that a missing file yields the defaults."""
        config = Config(temp_dir / "config.toml")

        assert config.to_dict() == DEFAULT_CONFIG
        assert config.get("files", "chunk_size") == 65536
        assert config.get("rooms", "retain_epochs") == 0
        assert config.log_level == logging.INFO

    def test_defaults_not_mutated(self, temp_dir, clean_env):
        """Test that changing one config leaves the defaults intact."""
        config = Config(temp_dir / "config.toml")
        config.set("rooms", "retain_epochs", 5)

        assert DEFAULT_CONFIG["rooms"]["retain_epochs"] == 0

    def test_load_from_toml(self, temp_dir, clean_env):
        """Test that file values merge over defaults."""
        path = temp_dir / "config.toml"
        path.write_text('[rooms]\nretain_epochs = 2\n\n[logging]\nlevel = "DEBUG"\n')

        config = Config(path)

        assert config.get("rooms", "retain_epochs") == 2
        assert config.get("files", "chunk_size") == 65536
        assert config.log_level == logging.DEBUG

    def test_env_override(self, temp_dir, clean_env):
        """Test ROOMSEAL_SECTION_KEY overrides with type conversion."""
        clean_env.setenv("ROOMSEAL_FILES_CHUNK_SIZE", "131072")
        clean_env.setenv("ROOMSEAL_LOGGING_CONSOLE_LOGGING", "false")
        clean_env.setenv("ROOMSEAL_LOGGING_LEVEL", "warning")

        config = Config(temp_dir / "config.toml")

        assert config.get("files", "chunk_size") == 131072
        assert config.get("logging", "console_logging") is False
        assert config.log_level == logging.WARNING

    def test_env_override_bad_type(self, temp_dir, clean_env):
        """Test that a non-numeric override for an int setting raises."""
        clean_env.setenv("ROOMSEAL_ROOMS_RETAIN_EPOCHS", "lots")

        with pytest.raises(ConfigError) as exc_info:
            Config(temp_dir / "config.toml")
        assert exc_info.value.code == ErrorCode.E703_INVALID_CONFIG

    @pytest.mark.parametrize(
        "content",
        [
            "[files]\nchunk_size = 10\n",
            "[files]\nmax_file_size = 0\n",
            "[rooms]\nretain_epochs = -1\n",
            '[logging]\nlevel = "LOUD"\n',
            "[files]\nchunk_size = true\n",
            "[rooms]\nretain_epochs = true\n",
        ],
    )
    def test_invalid_values(self, temp_dir, clean_env, content):
        """Test validation of loaded settings."""
        path = temp_dir / "config.toml"
        path.write_text(content)

        with pytest.raises(ConfigError) as exc_info:
            Config(path)
        assert exc_info.value.code == ErrorCode.E703_INVALID_CONFIG

    def test_parse_error(self, temp_dir, clean_env):
        """Test that broken TOML raises a parse error."""
        path = temp_dir / "config.toml"
        path.write_text("[files\nchunk_size = = 1\n")

        with pytest.raises(ConfigError) as exc_info:
            Config(path)
        assert exc_info.value.code == ErrorCode.E704_CONFIG_PARSE_ERROR

    def test_save_and_reload(self, temp_dir, clean_env):
        """Test that saved settings load back unchanged."""
        path = temp_dir / "nested" / "config.toml"
        config = Config(path)
        config.set("rooms", "retain_epochs", 3)
        config.set("logging", "file", 'C:\\logs\\"room".log')
        config.save()

        reloaded = Config(path)
        assert reloaded.get("rooms", "retain_epochs") == 3
        assert reloaded.get("logging", "file") == 'C:\\logs\\"room".log'

    def test_create_example(self, temp_dir, clean_env):
        """Test that the example file is valid and matches the defaults."""
        path = temp_dir / "example.toml"
        Config.create_example(path)

        content = path.read_text()
        assert content.startswith("# Roomseal Configuration File")
        assert "[files]" in content
        assert Config(path).to_dict() == DEFAULT_CONFIG
