"""Registry and compliance profile data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Dimension(str, Enum):
    SOURCE_CONTROL = "source_control"
    MONITORING = "monitoring"
    CANONICAL_FILES = "canonical_files"
    REGISTRY_HEARTBEAT = "registry_heartbeat"
    ROUTING = "routing"
    TRUST_CHAIN = "trust_chain"
    HEALTH_ENDPOINT = "health_endpoint"


ALL_DIMENSIONS: list[Dimension] = list(Dimension)


class Applicability(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    NOT_APPLICABLE = "not_applicable"


class ServiceDescriptor(BaseModel):
    """One service entry from the registry."""

    name: str
    organization: str
    repo: str
    tier: int
    type: Optional[str] = None
    domain: Optional[str] = None
    active: bool = True


class Organization(BaseModel):
    name: str
    services: dict[str, ServiceDescriptor] = {}


class Registry(BaseModel):
    """Static inventory of organizations, services and compliance profiles."""

    schema_version: str = ""
    compliance_profiles: dict[str, dict[Dimension, Applicability]] = {}
    organizations: dict[str, Organization] = {}

    def iter_services(self):
        for org in self.organizations.values():
            yield from org.services.values()


class CheckDefinition(BaseModel):
    """Descriptive metadata for one dimension; used for reporting only."""

    id: Dimension
    name: str
    description: str
