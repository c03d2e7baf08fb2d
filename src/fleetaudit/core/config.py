"""3-layer configuration system for fleet audits.

Loads and merges configuration from:
1. Default settings (built-in)
2. Settings file (--config, YAML)
3. CLI parameters (override)

The merged dict is turned into an ``AuditSettings`` object that is passed
explicitly to the orchestrator, the evaluators and both probes.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError

from ..compliance.loader import UniqueKeyLoader
from .errors import ConfigError


class AuditOptions(BaseModel):
    concurrency: int = 4
    skip_runtime: bool = False
    threshold: int = 0


class GitHubSettings(BaseModel):
    api_url: str = "https://api.github.com"
    token_env: str = "GITHUB_TOKEN"
    requests_per_second: float = 10
    max_concurrent_requests: int = 8
    retry_attempts: int = 3
    retry_delay_seconds: float = 2
    timeout_seconds: float = 15
    default_branch: str = "main"


class RuntimeSettings(BaseModel):
    timeout_seconds: float = 5
    registry_url: str = "https://registry.chitty.cc/api/services"
    router_url: str = "https://router.chitty.cc/api/routes"
    health_path: str = "/health"


class EcosystemSettings(BaseModel):
    """Names the evaluators look for in each repository."""

    connect_config_file: str = ".chittyconnect.yml"
    connect_workflow_patterns: list[str] = ["chittyconnect-sync", "connect.*sync", "ChittyConnect Sync"]
    monitoring_package: str = "@chittycorp/app-beacon"
    monitoring_module_files: list[str] = ["chittybeacon.py", "chittybeacon/__init__.py"]
    monitoring_workflow_patterns: list[str] = ["beacon", "ChittyBeacon"]
    canonical_files: list[str] = ["CLAUDE.md", "CODEOWNERS", "CHARTER.md"]
    registry_workflow_patterns: list[str] = [r"registry\.chitty\.cc", "ChittyRegistry", "Register"]
    trust_provisions: list[str] = ["chitty_id", "service_token", "certificate", "trust_chain"]
    auth_provider: str = "chittyauth"


class RemediationSettings(BaseModel):
    labels: list[str] = ["compliance"]
    title_prefix: str = "Compliance gaps"


class AuditSettings(BaseModel):
    audit: AuditOptions = AuditOptions()
    github: GitHubSettings = GitHubSettings()
    runtime: RuntimeSettings = RuntimeSettings()
    ecosystem: EcosystemSettings = EcosystemSettings()
    remediation: RemediationSettings = RemediationSettings()

    @classmethod
    def from_config(cls, config: dict) -> "AuditSettings":
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e


# Built-in layer, derived from the model field defaults
DEFAULT_CONFIG: dict = AuditSettings().model_dump()


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_config_file(config_path: Path) -> dict:
    """Load a YAML settings file. A missing or broken file is a ConfigError."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        data = yaml.load(content, Loader=UniqueKeyLoader) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data


def get_effective_config(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration dict for a run."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is not None:
        config = deep_merge(config, load_config_file(config_path))

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    return config


def get_settings(
    config_path: Optional[Path] = None,
    cli_overrides: Optional[dict] = None,
) -> AuditSettings:
    return AuditSettings.from_config(get_effective_config(config_path, cli_overrides))
