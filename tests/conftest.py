"""Shared fixtures for fleetaudit tests."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

import pytest

from fleetaudit.core.config import AuditSettings
from fleetaudit.core.errors import ProbeError
from fleetaudit.models.audit import CheckResult, CheckStatus
from fleetaudit.models.probe import BranchProtection, DependencyCheck, IssueRef

FULL_CONNECT_CONFIG = """\
service: chittyid
auth:
  provider: chittyauth
onboarding:
  provisions:
    - chitty_id
    - service_token
    - certificate
    - trust_chain
"""


class FakeSourceProbe:
    """In-memory source-control probe that records every call."""

    name = "fake"

    def __init__(
        self,
        files: Optional[dict[str, dict[str, str]]] = None,
        workflows: Optional[dict[str, list[str]]] = None,
        protection: Optional[dict[str, BranchProtection]] = None,
        fail_repos: Optional[set[str]] = None,
    ):
        self.files = files or {}
        self.workflows = workflows or {}
        self.protection = protection or {}
        self.fail_repos = fail_repos or set()
        self.calls: list[tuple] = []
        self.issues: dict[str, list[dict]] = {}
        self._next_issue = 1

    def _check(self, repo: str) -> None:
        if repo in self.fail_repos:
            raise ProbeError(f"GET repos/{repo}: HTTP 500", 500)

    async def file_exists(self, repo: str, path: str) -> bool:
        self.calls.append(("file_exists", repo, path))
        self._check(repo)
        return path in self.files.get(repo, {})

    async def get_file_content(self, repo: str, path: str) -> Optional[str]:
        self.calls.append(("get_file_content", repo, path))
        self._check(repo)
        return self.files.get(repo, {}).get(path)

    async def has_dependency(self, repo: str, package: str) -> DependencyCheck:
        self.calls.append(("has_dependency", repo, package))
        self._check(repo)
        manifest = self.files.get(repo, {}).get("package.json")
        if manifest is None:
            return DependencyCheck(exists=False, has_manifest=False)
        found = package in manifest
        return DependencyCheck(exists=found, has_manifest=True, in_dependencies=found)

    async def has_workflow_matching(self, repo: str, patterns: list[str]) -> bool:
        self.calls.append(("has_workflow_matching", repo, tuple(patterns)))
        self._check(repo)
        regex = re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)
        return any(regex.search(w) for w in self.workflows.get(repo, []))

    async def get_branch_protection(self, repo: str, branch: str) -> BranchProtection:
        self.calls.append(("get_branch_protection", repo, branch))
        self._check(repo)
        return self.protection.get(repo, BranchProtection(enabled=False))

    async def find_open_issue(self, repo: str, title: str) -> Optional[IssueRef]:
        self.calls.append(("find_open_issue", repo, title))
        self._check(repo)
        for issue in self.issues.get(repo, []):
            if issue["title"] == title:
                return IssueRef(number=issue["number"], url=issue["url"], body=issue["body"])
        return None

    async def create_issue(self, repo: str, title: str, body: str, labels: list[str]) -> IssueRef:
        self.calls.append(("create_issue", repo, title))
        self._check(repo)
        number = self._next_issue
        self._next_issue += 1
        issue = {"number": number, "title": title, "body": body, "labels": labels,
                 "url": f"https://github.com/{repo}/issues/{number}"}
        self.issues.setdefault(repo, []).append(issue)
        return IssueRef(number=number, url=issue["url"], body=body)

    async def update_issue(self, repo: str, number: int, body: str) -> IssueRef:
        self.calls.append(("update_issue", repo, number))
        self._check(repo)
        for issue in self.issues.get(repo, []):
            if issue["number"] == number:
                issue["body"] = body
                return IssueRef(number=number, url=issue["url"], body=body)
        raise ProbeError(f"PATCH repos/{repo}/issues/{number}: HTTP 404", 404)

    def calls_for(self, repo: str) -> list[tuple]:
        return [c for c in self.calls if c[1] == repo]

    @property
    def write_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("create_issue", "update_issue")]


class FakeRuntimeProbe:
    """Runtime probe answering from fixed tables."""

    name = "fake-runtime"

    def __init__(
        self,
        healthy: Optional[set[str]] = None,
        routed: Optional[set[str]] = None,
        registered: Optional[set[str]] = None,
    ):
        self.healthy = healthy or set()
        self.routed = routed or set()
        self.registered = registered or set()
        self.calls: list[tuple] = []

    async def check_health(self, domain: str) -> CheckResult:
        self.calls.append(("check_health", domain))
        if domain in self.healthy:
            return CheckResult(status=CheckStatus.PASS)
        return CheckResult(status=CheckStatus.FAIL, reason="HTTP 503")

    async def check_registry(self, service_name: str) -> CheckResult:
        self.calls.append(("check_registry", service_name))
        if service_name in self.registered:
            return CheckResult(status=CheckStatus.PASS)
        return CheckResult(status=CheckStatus.FAIL, reason="HTTP 404")

    async def check_router(self, domain: str) -> CheckResult:
        self.calls.append(("check_router", domain))
        if domain in self.routed:
            return CheckResult(status=CheckStatus.PASS)
        return CheckResult(status=CheckStatus.FAIL, reason="HTTP 404")


def compliant_repo_files() -> dict[str, str]:
    """Every file a fully compliant worker repository carries."""
    return {
        ".chittyconnect.yml": FULL_CONNECT_CONFIG,
        "package.json": '{"dependencies": {"@chittycorp/app-beacon": "^1.0.0"}}',
        "CLAUDE.md": "# CLAUDE",
        "CODEOWNERS": "* @chittyos/core",
        "CHARTER.md": "# Charter",
    }


COMPLIANT_WORKFLOWS = [
    ".github/workflows/chittyconnect-sync.yml:ChittyConnect Sync",
    ".github/workflows/register.yml:Register with registry.chitty.cc",
]

WORKER_PROFILE = """\
  worker:
    source_control: required
    monitoring: required
    canonical_files: required
    registry_heartbeat: required
    routing: required
    trust_chain: required
    health_endpoint: required
"""

LIBRARY_PROFILE = """\
  library:
    source_control: required
    monitoring: not_applicable
    canonical_files: required
    registry_heartbeat: not_applicable
    routing: not_applicable
    trust_chain: not_applicable
    health_endpoint: not_applicable
"""

TOOL_PROFILE = """\
  tool:
    source_control: required
    monitoring: optional
    canonical_files: required
    registry_heartbeat: optional
    routing: not_applicable
    trust_chain: optional
    health_endpoint: not_applicable
"""

SAMPLE_REGISTRY = (
    'schema_version: "1.0"\n'
    "compliance_profiles:\n"
    + WORKER_PROFILE
    + LIBRARY_PROFILE
    + TOOL_PROFILE
    + """\
organizations:
  ORG-A:
    services:
      alpha:
        repo: ORG-A/alpha
        tier: 0
        type: worker
        domain: alpha.example.cc
        active: true
      beta:
        repo: ORG-A/beta
        tier: 2
        type: library
        active: true
  ORG-B:
    services:
      gamma:
        repo: ORG-B/gamma
        tier: 3
        type: tool
        active: true
      legacy:
        repo: ORG-B/legacy
        tier: 5
        type: null
        active: false
"""
)

SAMPLE_CHECKS = """\
checks:
  source_control:
    name: ChittyConnect integration
    description: Connect config and sync workflow.
  monitoring:
    name: ChittyBeacon monitoring
    description: Beacon package, module or workflow.
  canonical_files:
    name: Canonical files
    description: CLAUDE.md, CODEOWNERS, CHARTER.md.
  registry_heartbeat:
    name: Registry heartbeat
    description: Registry workflow and probe.
  routing:
    name: Router route
    description: Route for the service domain.
  trust_chain:
    name: Trust chain
    description: Onboarding provisions and auth provider.
  health_endpoint:
    name: Health endpoint
    description: /health answers status ok.
"""


@pytest.fixture
def settings() -> AuditSettings:
    return AuditSettings()


@pytest.fixture
def registry_file(tmp_path: Path) -> Path:
    path = tmp_path / "service-registry.yml"
    path.write_text(SAMPLE_REGISTRY, encoding="utf-8")
    return path


@pytest.fixture
def checks_file(tmp_path: Path) -> Path:
    path = tmp_path / "checks.yml"
    path.write_text(SAMPLE_CHECKS, encoding="utf-8")
    return path


@pytest.fixture
def registry(registry_file: Path):
    from fleetaudit.compliance.loader import load_registry

    return load_registry(registry_file)


@pytest.fixture
def compliant_source() -> FakeSourceProbe:
    """Source probe where ORG-A/alpha is fully compliant and the others are bare."""
    return FakeSourceProbe(
        files={"ORG-A/alpha": compliant_repo_files()},
        workflows={"ORG-A/alpha": list(COMPLIANT_WORKFLOWS)},
        protection={"ORG-A/alpha": BranchProtection(enabled=True, required_reviews=True, no_force_push=True)},
    )


@pytest.fixture
def healthy_runtime() -> FakeRuntimeProbe:
    return FakeRuntimeProbe(
        healthy={"alpha.example.cc"},
        routed={"alpha.example.cc"},
        registered={"alpha"},
    )


@pytest.fixture
def sample_report():
    """A small report: one full pass, one partial, one fail, one skipped."""
    from fleetaudit.core.orchestrator import summarize
    from fleetaudit.models.audit import AuditReport, Classification, OrganizationAudit, ServiceAudit
    from fleetaudit.models.registry import Dimension

    def checks(**statuses) -> dict:
        result = {}
        for dim in Dimension:
            status = statuses.get(dim.value, "not_applicable")
            if isinstance(status, CheckResult):
                result[dim] = status
            else:
                result[dim] = CheckResult(status=CheckStatus(status))
        return result

    organizations = {
        "ORG-A": OrganizationAudit(services={
            "alpha": ServiceAudit(
                repo="ORG-A/alpha", tier=0, type="worker", domain="alpha.example.cc",
                checks=checks(source_control="pass", canonical_files="pass", health_endpoint="pass"),
                classification=Classification.FULL_PASS,
            ),
            "beta": ServiceAudit(
                repo="ORG-A/beta", tier=2, type="library",
                checks=checks(
                    source_control="pass",
                    canonical_files=CheckResult(
                        status=CheckStatus.FAIL, reason="Missing CHARTER.md",
                        details=["Missing CHARTER.md", "No branch protection on main"], score=0.5,
                    ),
                ),
                classification=Classification.PARTIAL,
            ),
        }),
        "ORG-B": OrganizationAudit(services={
            "gamma": ServiceAudit(
                repo="ORG-B/gamma", tier=3, type="tool",
                checks=checks(
                    source_control=CheckResult(
                        status=CheckStatus.FAIL, reason="Probe error: GET repos/ORG-B/gamma: HTTP 500",
                    ),
                    canonical_files=CheckResult(status=CheckStatus.FAIL, reason="Missing CLAUDE.md"),
                    monitoring=CheckResult(status=CheckStatus.SKIP, reason="optional, not configured"),
                ),
                classification=Classification.FAIL,
                warnings=["ORG-B/gamma: source_control: GET repos/ORG-B/gamma: HTTP 500"],
            ),
            "legacy": ServiceAudit(
                repo="ORG-B/legacy", tier=5, active=False, skipped=True,
                reason="inactive/archived", classification=Classification.SKIPPED,
            ),
        }),
    }
    return AuditReport(
        timestamp="2026-01-01T00:00:00.000Z",
        schema_version="1.0",
        organizations=organizations,
        summary=summarize(organizations),
    )
