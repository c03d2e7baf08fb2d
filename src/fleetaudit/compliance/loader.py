"""Registry and check definition YAML loading."""

from __future__ import annotations

from collections.abc import Hashable
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..core.errors import CheckDefinitionsError, RegistryLoadError
from ..models.registry import (
    ALL_DIMENSIONS,
    Applicability,
    CheckDefinition,
    Dimension,
    Organization,
    Registry,
    ServiceDescriptor,
)

REQUIRED_SERVICE_FIELDS = ("repo", "tier", "type", "active")
APPLICABILITY_VALUES = {a.value for a in Applicability}


class UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects a mapping key appearing twice."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            if key_node.tag == "tag:yaml.org,2002:merge":
                continue
            key = self.construct_object(key_node, deep=deep)
            if not isinstance(key, Hashable):
                # the base constructor reports unhashable keys
                continue
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping", node.start_mark,
                    f"found duplicate key {key!r}", key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _read_yaml(path: Path, error_cls: type) -> dict:
    if not path.exists():
        raise error_cls(f"File not found: {path}")
    try:
        content = yaml.load(path.read_text(encoding="utf-8-sig"), Loader=UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise error_cls(f"Failed to parse {path}: {e}") from e
    if not isinstance(content, dict):
        raise error_cls(f"{path} must contain a mapping at the top level")
    return content


def _parse_profiles(raw: dict, problems: list[str]) -> dict[str, dict[Dimension, Applicability]]:
    profiles: dict[str, dict[Dimension, Applicability]] = {}
    for service_type, entries in raw.items():
        if not isinstance(entries, dict):
            problems.append(f"Profile '{service_type}' must be a mapping of dimension -> applicability")
            continue
        profile: dict[Dimension, Applicability] = {}
        for dimension in ALL_DIMENSIONS:
            value = entries.get(dimension.value)
            if value is None:
                problems.append(f"Profile '{service_type}' is missing dimension '{dimension.value}'")
            elif value not in APPLICABILITY_VALUES:
                problems.append(
                    f"Profile '{service_type}' has invalid applicability '{value}' for '{dimension.value}'"
                )
            else:
                profile[dimension] = Applicability(value)
        unknown = sorted(set(entries) - {d.value for d in ALL_DIMENSIONS})
        for key in unknown:
            problems.append(f"Profile '{service_type}' names unknown dimension '{key}'")
        profiles[str(service_type)] = profile
    return profiles


def _parse_organizations(raw: dict, problems: list[str]) -> dict[str, Organization]:
    organizations: dict[str, Organization] = {}
    for org_name, org_data in raw.items():
        services_raw = (org_data or {}).get("services") if isinstance(org_data, dict) else None
        if not isinstance(services_raw, dict):
            problems.append(f"Organization '{org_name}' has no services mapping")
            continue

        services: dict[str, ServiceDescriptor] = {}
        for svc_name, svc in services_raw.items():
            if not isinstance(svc, dict):
                problems.append(f"{org_name}/{svc_name} must be a mapping")
                continue
            missing = [f for f in REQUIRED_SERVICE_FIELDS if f not in svc]
            if missing:
                problems.append(f"{org_name}/{svc_name} missing field(s): {', '.join(missing)}")
                continue
            try:
                services[str(svc_name)] = ServiceDescriptor(
                    name=str(svc_name),
                    organization=str(org_name),
                    repo=svc["repo"],
                    tier=svc["tier"],
                    type=svc["type"],
                    domain=svc.get("domain") or None,
                    active=svc["active"],
                )
            except ValidationError as e:
                problems.append(f"{org_name}/{svc_name} is invalid: {e.errors()[0]['msg']}")
        organizations[str(org_name)] = Organization(name=str(org_name), services=services)
    return organizations


def validate_registry(registry: Registry) -> None:
    """Check the registry invariants. Raises RegistryLoadError on any violation.

    - repository coordinates are unique across the whole registry
    - every type used by an active service has a complete profile
    """
    problems: list[str] = []

    seen_repos: dict[str, str] = {}
    for svc in registry.iter_services():
        key = svc.repo.lower()
        owner = f"{svc.organization}/{svc.name}"
        if key in seen_repos:
            problems.append(f"Duplicate repo '{svc.repo}' used by {seen_repos[key]} and {owner}")
        else:
            seen_repos[key] = owner

    for svc in registry.iter_services():
        if svc.type is None:
            # archived entries may carry a null type
            if svc.active:
                problems.append(f"{svc.organization}/{svc.name} is active but has no type")
            continue
        profile = registry.compliance_profiles.get(svc.type)
        if profile is None:
            valid = ", ".join(sorted(registry.compliance_profiles))
            problems.append(
                f"{svc.organization}/{svc.name} has unknown type: {svc.type} (valid: {valid})"
            )
        elif len(profile) != len(ALL_DIMENSIONS):
            problems.append(f"{svc.organization}/{svc.name} uses incomplete profile '{svc.type}'")

    if problems:
        raise RegistryLoadError("Registry validation failed", problems)


def load_registry(path: Path) -> Registry:
    """Load and validate the service registry."""
    content = _read_yaml(Path(path), RegistryLoadError)

    missing = [k for k in ("compliance_profiles", "organizations") if not isinstance(content.get(k), dict)]
    if missing:
        raise RegistryLoadError(f"{path} is missing top-level key(s): {', '.join(missing)}")

    problems: list[str] = []
    profiles = _parse_profiles(content["compliance_profiles"], problems)
    organizations = _parse_organizations(content["organizations"], problems)
    if problems:
        raise RegistryLoadError(f"Invalid registry {path}", problems)

    registry = Registry(
        schema_version=str(content.get("schema_version") or ""),
        compliance_profiles=profiles,
        organizations=organizations,
    )
    validate_registry(registry)
    return registry


def get_applicable_checks(registry: Registry, service_type: str | None) -> dict[Dimension, Applicability]:
    """Look up the profile for a service type. Unknown types are a config error."""
    profile = registry.compliance_profiles.get(service_type or "")
    if profile is None:
        raise RegistryLoadError(f"No compliance profile for service type: {service_type}")
    return profile


def load_check_definitions(path: Path) -> dict[Dimension, CheckDefinition]:
    """Load the descriptive check definitions file."""
    content = _read_yaml(Path(path), CheckDefinitionsError)
    checks = content.get("checks")
    if not isinstance(checks, dict):
        raise CheckDefinitionsError(f"{path} is missing top-level key: checks")

    problems: list[str] = []
    definitions: dict[Dimension, CheckDefinition] = {}
    for dimension in ALL_DIMENSIONS:
        entry = checks.get(dimension.value)
        if not isinstance(entry, dict):
            problems.append(f"Missing dimension: {dimension.value}")
            continue
        if not entry.get("name"):
            problems.append(f"{dimension.value} missing name")
        if not entry.get("description"):
            problems.append(f"{dimension.value} missing description")
        if entry.get("name") and entry.get("description"):
            definitions[dimension] = CheckDefinition(
                id=dimension,
                name=str(entry["name"]),
                description=str(entry["description"]).strip(),
            )

    if problems:
        raise CheckDefinitionsError(f"Invalid check definitions {path}", problems)
    return definitions
