"""Probe answer data models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class DependencyCheck(BaseModel):
    exists: bool = False
    has_manifest: bool = False
    in_dependencies: bool = False
    in_dev_dependencies: bool = False
    parse_error: bool = False


class BranchProtection(BaseModel):
    enabled: bool = False
    required_reviews: bool = False
    no_force_push: bool = False
    enforce_admins: bool = False
    required_status_checks: list[str] = []


class IssueRef(BaseModel):
    number: int
    url: Optional[str] = None
    body: str = ""
