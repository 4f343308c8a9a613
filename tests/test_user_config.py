"""Tests for histcraft.user_config module."""

import yaml

from histcraft.user_config import (
    DEFAULT_CONFIG,
    CraftSettings,
    get_config_file,
    get_craft_settings,
    load_config,
    save_config,
)


class TestGetConfigFile:
    """Tests for get_config_file function."""

    def test_returns_correct_path(self, tmp_path):
        """Test that correct path is returned."""
        assert get_config_file(tmp_path) == tmp_path / ".histcraft" / "config.yaml"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_returns_defaults(self, tmp_path):
        """Test that defaults are returned without creating a file."""
        config = load_config(tmp_path)

        assert config == DEFAULT_CONFIG
        assert not get_config_file(tmp_path).exists()

    def test_merges_missing_keys(self, tmp_path):
        """Test that partial config is merged over defaults."""
        config_file = get_config_file(tmp_path)
        config_file.parent.mkdir()
        config_file.write_text("craft:\n  count: 5\n")

        config = load_config(tmp_path)

        assert config["craft"]["count"] == 5
        assert config["craft"]["confirm"] is True

    def test_corrupted_file_returns_defaults(self, tmp_path):
        """Test that invalid YAML falls back to defaults."""
        config_file = get_config_file(tmp_path)
        config_file.parent.mkdir()
        config_file.write_text("craft: [unclosed\n")

        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_non_mapping_returns_defaults(self, tmp_path):
        """Test that a YAML list at the root falls back to defaults."""
        config_file = get_config_file(tmp_path)
        config_file.parent.mkdir()
        config_file.write_text("- one\n- two\n")

        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_does_not_mutate_defaults(self, tmp_path):
        """Test that changing a loaded config leaves DEFAULT_CONFIG alone."""
        config = load_config(tmp_path)
        config["craft"]["count"] = 99

        assert DEFAULT_CONFIG["craft"]["count"] == 20


class TestSaveConfig:
    """Tests for save_config function."""

    def test_round_trip(self, tmp_path):
        """Test that saved config loads back."""
        save_config(tmp_path, {"craft": {"count": 7, "confirm": False}})

        with open(get_config_file(tmp_path)) as f:
            assert yaml.safe_load(f) == {"craft": {"count": 7, "confirm": False}}
        assert load_config(tmp_path)["craft"]["confirm"] is False


class TestGetCraftSettings:
    """Tests for get_craft_settings function."""

    def test_defaults(self, tmp_path):
        """Test settings without a config file."""
        assert get_craft_settings(tmp_path) == CraftSettings()

    def test_reads_values(self, tmp_path):
        """Test settings from the config file."""
        save_config(tmp_path, {"craft": {"count": 3, "squash_separator": "\n---\n"}})

        settings = get_craft_settings(tmp_path)

        assert settings.count == 3
        assert settings.squash_separator == "\n---\n"
        assert settings.edit_squash_messages is True

    def test_invalid_value_falls_back(self, tmp_path):
        """Test that an invalid count falls back to defaults."""
        save_config(tmp_path, {"craft": {"count": 0}})

        assert get_craft_settings(tmp_path).count == 20

    def test_unknown_key_is_ignored(self, tmp_path):
        """Test that unknown keys do not break loading."""
        save_config(tmp_path, {"craft": {"colour": "blue"}})

        assert get_craft_settings(tmp_path) == CraftSettings()
