"""Audit result data models.

Reports are pure data. Field aliases keep the JSON shape stable across
versions (``fullPass``, ``orgCount``, ``complianceRate``).
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .registry import Dimension


class CheckStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    NOT_APPLICABLE = "not_applicable"


class Classification(str, Enum):
    FULL_PASS = "fullPass"
    PARTIAL = "partial"
    FAIL = "fail"
    SKIPPED = "skipped"


class CheckResult(BaseModel):
    status: CheckStatus
    reason: Optional[str] = None
    details: Optional[list[str]] = None
    score: Optional[float] = None
    url: Optional[str] = None


class ServiceAudit(BaseModel):
    repo: str
    tier: int
    type: Optional[str] = None
    domain: Optional[str] = None
    active: bool = True
    checks: dict[Dimension, CheckResult] = {}
    skipped: bool = False
    reason: Optional[str] = None
    classification: Classification = Classification.FAIL
    warnings: list[str] = []


class OrganizationAudit(BaseModel):
    services: dict[str, ServiceAudit] = {}


class AuditSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    full_pass: int = Field(default=0, alias="fullPass")
    partial: int = 0
    fail: int = 0
    skipped: int = 0
    org_count: int = Field(default=0, alias="orgCount")
    compliance_rate: int = Field(default=0, alias="complianceRate")


class AuditReport(BaseModel):
    timestamp: str
    schema_version: str = ""
    organizations: dict[str, OrganizationAudit] = {}
    summary: AuditSummary = AuditSummary()
