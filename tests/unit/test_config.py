"""Tests for core/config.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from fleetaudit.core.config import (
    DEFAULT_CONFIG,
    AuditSettings,
    deep_merge,
    get_effective_config,
    get_settings,
    load_config_file,
)
from fleetaudit.core.errors import ConfigError


class TestDeepMerge:
    def test_simple_merge(self):
        result = deep_merge({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        base = {"github": {"api_url": "https://api.github.com", "retry_attempts": 3}}
        result = deep_merge(base, {"github": {"retry_attempts": 5}})
        assert result["github"]["api_url"] == "https://api.github.com"
        assert result["github"]["retry_attempts"] == 5

    def test_arrays_replaced(self):
        result = deep_merge({"labels": ["compliance"]}, {"labels": ["audit"]})
        assert result["labels"] == ["audit"]

    def test_base_not_mutated(self):
        base = {"a": {"b": 1}}
        deep_merge(base, {"a": {"b": 2}})
        assert base["a"]["b"] == 1


class TestLoadConfigFile:
    def test_loads_yaml(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("audit:\n  threshold: 80\n", encoding="utf-8")
        assert load_config_file(path) == {"audit": {"threshold": 80}}

    def test_strips_bom(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_bytes(b"\xef\xbb\xbfaudit:\n  concurrency: 2\n")
        assert load_config_file(path)["audit"]["concurrency"] == 2

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(tmp_path / "missing.yml")

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("- one\n- two\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config_file(path)

    def test_duplicate_key(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("audit:\n  threshold: 80\n  threshold: 10\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="duplicate key 'threshold'"):
            load_config_file(path)


class TestEffectiveConfig:
    def test_defaults(self):
        config = get_effective_config()
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_layers(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("audit:\n  threshold: 80\n  concurrency: 2\n", encoding="utf-8")
        config = get_effective_config(path, {"audit": {"concurrency": 8}})
        assert config["audit"]["threshold"] == 80
        assert config["audit"]["concurrency"] == 8
        assert config["github"]["token_env"] == "GITHUB_TOKEN"

    def test_defaults_not_mutated(self):
        get_effective_config(cli_overrides={"audit": {"threshold": 99}})
        assert DEFAULT_CONFIG["audit"]["threshold"] == 0


class TestSettings:
    def test_defaults_match_dict(self):
        assert AuditSettings.from_config(DEFAULT_CONFIG) == AuditSettings()

    def test_typed_access(self):
        settings = get_settings(cli_overrides={"audit": {"skip_runtime": True}})
        assert settings.audit.skip_runtime is True
        assert settings.ecosystem.canonical_files == ["CLAUDE.md", "CODEOWNERS", "CHARTER.md"]

    def test_invalid_value(self):
        with pytest.raises(ConfigError, match="Invalid configuration"):
            get_settings(cli_overrides={"audit": {"concurrency": "lots"}})

    def test_every_field_has_a_default_layer_entry(self):
        for section, field in AuditSettings.model_fields.items():
            model = field.annotation
            assert set(DEFAULT_CONFIG[section]) == set(model.model_fields), section

    def test_partial_section_override_keeps_model_defaults(self, tmp_path: Path):
        path = tmp_path / "settings.yml"
        path.write_text("github:\n  default_branch: trunk\n", encoding="utf-8")
        settings = get_settings(path)
        assert settings.github.default_branch == "trunk"
        assert settings.github.retry_attempts == AuditSettings().github.retry_attempts
        assert get_effective_config(path)["github"]["api_url"] == AuditSettings().github.api_url
