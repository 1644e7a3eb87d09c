"""
Tests for the configuration system.
"""

import json
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from config import (
    NavigationConfig,
    RuntimeConfig,
    get_config,
    load_config,
    load_config_file,
    merge_configs,
    strip_jsonc_comments,
)


class TestStripJSONComments:
    """Test JSONC comment stripping."""

    def test_single_line_comments(self):
        """Test that single-line comments are stripped."""
        jsonc = """
        {
            // This is a comment
            "key": "value"
        }
        """
        result = strip_jsonc_comments(jsonc)
        assert "//" not in result
        assert json.loads(result) == {"key": "value"}

    def test_multi_line_comments(self):
        """Test that multi-line comments are stripped."""
        jsonc = """
        {
            /* This is a
               multi-line comment */
            "key": "value"
        }
        """
        result = strip_jsonc_comments(jsonc)
        assert "/*" not in result
        assert "*/" not in result
        assert json.loads(result) == {"key": "value"}

    def test_urls_survive(self):
        """Test that "//" inside strings is not treated as a comment."""
        jsonc = """
        {
            "origins": ["http://localhost:3000"]  // dev client
        }
        """
        result = strip_jsonc_comments(jsonc)
        assert json.loads(result) == {"origins": ["http://localhost:3000"]}


class TestMergeConfigs:
    """Test deep merging of config dictionaries."""

    def test_nested_keys_merge(self):
        """Test that nested sections keep keys the override does not set."""
        base = {"middleware": {"hook_timeout_s": 5.0, "stall_policy": "halt"}}
        override = {"middleware": {"stall_policy": "continue"}}

        merged = merge_configs(base, override)

        assert merged == {"middleware": {"hook_timeout_s": 5.0, "stall_policy": "continue"}}
        assert base["middleware"]["stall_policy"] == "halt"

    def test_lists_are_replaced(self):
        """Test that lists are not concatenated."""
        merged = merge_configs({"plugins": ["a.py"]}, {"plugins": ["b.py"]})
        assert merged["plugins"] == ["b.py"]


class TestConfigModels:
    """Test Pydantic config models."""

    def test_runtime_config_defaults(self):
        """Test that RuntimeConfig has correct defaults."""
        config = RuntimeConfig()
        assert config.plugins == []
        assert config.storage.backend == "file"
        assert config.middleware.stall_policy == "halt"
        assert config.effects.max_passes == 100
        assert config.commands.allowed == []
        assert config.server.port == 8000

    def test_invalid_stall_policy(self):
        """Test that unknown stall policies are rejected."""
        with pytest.raises(ValidationError):
            RuntimeConfig(middleware={"stall_policy": "retry"})

    def test_navigation_prefixes(self):
        """Test navigation allow-list matching."""
        navigation = NavigationConfig(allowed_prefixes=["/entry", "/search"])
        assert navigation.is_allowed("/entry?id=21")
        assert navigation.is_allowed("/search")
        assert not navigation.is_allowed("https://example.com")
        assert not navigation.is_allowed("/settings")


class TestConfigLoading:
    """Test configuration file loading."""

    def test_load_empty_config(self):
        """Test loading with no config file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = load_config(Path(tmpdir), global_path=Path(tmpdir) / "none.jsonc")
            assert config == RuntimeConfig()

    def test_load_jsonc_config(self):
        """Test loading JSONC config with comments."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "plugin-runtime.jsonc").write_text("""
            {
                // Plugins loaded at start
                "plugins": ["plugins/banner_images.py", "/abs/other.py"],
                /* Storage */
                "storage": {"backend": "memory"}
            }
            """)

            config = load_config(Path(tmpdir), global_path=Path(tmpdir) / "none.jsonc")
            assert config.storage.backend == "memory"
            assert config.plugins == [
                str(Path(tmpdir) / "plugins/banner_images.py"),
                "/abs/other.py",
            ]

    def test_project_overrides_global(self):
        """Test that project config takes precedence over global config."""
        with tempfile.TemporaryDirectory() as tmpdir:
            global_path = Path(tmpdir) / "global.jsonc"
            global_path.write_text(json.dumps({
                "middleware": {"hook_timeout_s": 2.0, "stall_policy": "continue"},
                "commands": {"allowed": ["echo"]},
            }))
            (Path(tmpdir) / "plugin-runtime.json").write_text(
                json.dumps({"middleware": {"stall_policy": "halt"}})
            )

            config = load_config(Path(tmpdir), global_path=global_path)
            assert config.middleware.hook_timeout_s == 2.0
            assert config.middleware.stall_policy == "halt"
            assert config.commands.allowed == ["echo"]

    def test_config_file_precedence(self):
        """Test that plugin-runtime.jsonc takes precedence."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "plugin-runtime.json").write_text(
                json.dumps({"server": {"port": 1}})
            )
            (Path(tmpdir) / "plugin-runtime.jsonc").write_text(
                json.dumps({"server": {"port": 2}})
            )

            config = load_config(Path(tmpdir), global_path=Path(tmpdir) / "none.jsonc")
            assert config.server.port == 2

    def test_invalid_file_is_skipped(self):
        """Test that a malformed file loads as None."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "plugin-runtime.json"
            path.write_text("{not json")
            assert load_config_file(path) is None


class TestConfigCache:
    """Test configuration caching."""

    def test_cache_returns_same_instance(self):
        """Test that get_config returns cached instance."""
        get_config.cache_clear()

        config1 = get_config()
        config2 = get_config()

        assert config1 is config2

    def test_cache_clear(self):
        """Test that cache can be cleared."""
        get_config.cache_clear()
        config1 = get_config()

        get_config.cache_clear()
        config2 = get_config()

        assert config1 == config2
