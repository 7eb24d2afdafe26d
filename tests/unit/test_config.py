"""Unit tests for the configuration module."""

import os
import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from codebase_kb.config import (
    DEFAULT_EXCLUDED_DIRECTORIES,
    ChunkingConfig,
    GraphConfig,
    Settings,
    load_settings,
)


class TestChunkingConfig:
    """Tests for ChunkingConfig model."""

    def test_defaults(self):
        """Test the default chunk bounds and break weights."""
        config = ChunkingConfig()

        assert config.max_chunk_lines == 400
        assert config.min_chunk_lines == 250
        assert config.max_chunk_bytes == 200 * 1024
        assert config.break_weights.empty_line == 10
        assert config.break_weights.class_boundary == 9
        assert config.break_weights.function_boundary == 8
        assert config.break_weights.block_end == 7
        assert config.priority_dirs[0] == "app"

    def test_min_above_max_rejected(self):
        """Test min_chunk_lines may not exceed max_chunk_lines."""
        with pytest.raises(ValidationError, match="exceeds"):
            ChunkingConfig(min_chunk_lines=500, max_chunk_lines=400)

    def test_non_positive_bounds_rejected(self):
        """Test line bounds must be positive."""
        with pytest.raises(ValidationError, match="must be positive"):
            ChunkingConfig(min_chunk_lines=0)


class TestSettingsDefaults:
    """Tests for Settings default values."""

    def test_default_settings(self):
        """Test Settings with default values."""
        settings = Settings()

        assert settings.kb_path == "./knowledge_base"
        assert settings.project_id == "default"
        assert settings.max_file_size == 1024 * 1024
        assert settings.knowledge_base.keep_old_scans == 3
        assert settings.knowledge_base.ndjson_threshold == 10_000
        assert settings.graph.relationship_weights["imports"] == 1.0
        assert set(settings.graph.relationship_weights) == {
            "imports",
            "extends",
            "implements",
            "uses_trait",
            "references",
        }
        assert settings.exclusions.directories == DEFAULT_EXCLUDED_DIRECTORIES
        assert settings.languages["blade.php"] == "blade"

    def test_settings_custom_values(self):
        """Test Settings with custom values."""
        settings = Settings(kb_path="/custom/kb", project_id="shop", graph=GraphConfig(max_depth=2))

        assert settings.kb_path == "/custom/kb"
        assert settings.project_id == "shop"
        assert settings.graph.max_depth == 2

    def test_default_lists_are_copies(self):
        """Test mutating one instance's exclusions leaves the defaults alone."""
        settings = Settings()
        settings.exclusions.directories.append("custom")

        assert "custom" not in Settings().exclusions.directories


class TestGraphConfig:
    """Tests for relationship weight configuration."""

    def test_partial_weights_keep_defaults(self):
        """Test naming one relationship leaves the others at their defaults."""
        config = GraphConfig(relationship_weights={"imports": 0.7})

        assert config.relationship_weights["imports"] == 0.7
        assert config.relationship_weights["extends"] == 0.9
        assert config.relationship_weights["references"] == 0.5

    def test_partial_weights_from_yaml_section(self, tmp_path):
        """Test a graph section in config.yaml merges over the default weights."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("graph:\n  relationship_weights:\n    references: 0.2\n")

        settings = load_settings(str(config_path))

        assert settings.graph.relationship_weights["references"] == 0.2
        assert settings.graph.relationship_weights["uses_trait"] == 0.8


class TestLoadSettings:
    """Tests for load_settings function."""

    def test_load_settings_with_no_config_file(self):
        """Test loading settings when config file doesn't exist."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            settings = load_settings(os.path.join(tmp_dir, "non_existent.yaml"))

            assert isinstance(settings, Settings)
            assert settings.kb_path == "./knowledge_base"

    def test_load_settings_with_null_data(self):
        """Test loading settings when yaml returns None."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text("# Just a comment")

            settings = load_settings(config_path)

            assert settings.project_id == "default"

    def test_load_settings_with_system_config(self):
        """Test loading settings with system configuration."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text(
                """
system:
  kb_path: "./custom_kb"
  project_id: "shop"
  max_file_size: 2048
  unknown_key: "ignored"
"""
            )

            settings = load_settings(config_path)

            assert settings.kb_path == "./custom_kb"
            assert settings.project_id == "shop"
            assert settings.max_file_size == 2048
            assert not hasattr(settings, "unknown_key")

    def test_load_settings_with_sections(self):
        """Test component sections replace their defaults."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text(
                """
chunking:
  max_chunk_lines: 200
  min_chunk_lines: 100
  break_weights:
    block_end: 11
exclusions:
  toggles:
    include_vendor: true
knowledge_base:
  keep_old_scans: 5
graph:
  max_nodes: 10
"""
            )

            settings = load_settings(config_path)

            assert settings.chunking.max_chunk_lines == 200
            assert settings.chunking.break_weights.block_end == 11
            assert settings.chunking.break_weights.empty_line == 10
            assert settings.exclusions.toggles.include_vendor
            assert settings.knowledge_base.keep_old_scans == 5
            assert settings.graph.max_nodes == 10
            assert settings.graph.max_depth == 5

    def test_invalid_section_raises(self):
        """Test an invalid section is reported rather than silently defaulted."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text("chunking:\n  min_chunk_lines: 900\n")

            with pytest.raises(ValidationError):
                load_settings(config_path)

    def test_languages_are_merged(self):
        """Test configured languages extend the default map."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text("languages:\n  tpl: smarty\n  php: hack\n")

            settings = load_settings(config_path)

            assert settings.languages["tpl"] == "smarty"
            assert settings.languages["php"] == "hack"
            assert settings.languages["vue"] == "vue"

    def test_load_settings_from_env_var(self, monkeypatch):
        """Test loading settings from config file specified in env var."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "env_config.yaml")
            Path(config_path).write_text('system:\n  kb_path: "./env_kb"\n')

            monkeypatch.setenv("KB_CONFIG_FILE", config_path)

            settings = load_settings()

            assert settings.kb_path == "./env_kb"

    def test_load_settings_explicit_path_overrides_env(self, monkeypatch):
        """Test that explicit config_file parameter overrides env var."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            env_config = os.path.join(tmp_dir, "env.yaml")
            explicit_config = os.path.join(tmp_dir, "explicit.yaml")
            Path(env_config).write_text('system:\n  kb_path: "./env_kb"\n')
            Path(explicit_config).write_text('system:\n  kb_path: "./explicit_kb"\n')

            monkeypatch.setenv("KB_CONFIG_FILE", env_config)

            settings = load_settings(explicit_config)

            assert settings.kb_path == "./explicit_kb"
