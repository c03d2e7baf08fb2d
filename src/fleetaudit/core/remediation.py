"""Remediation engine: turns a prior audit report into tracking issues.

Issue titles and bodies are a pure function of the report, so dry-run and
issues mode produce identical text. In issues mode an existing open issue
with the same title is reused (search-before-create), which keeps repeated
runs from filing duplicates.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape

from ..models.audit import AuditReport, CheckStatus, Classification, ServiceAudit
from ..models.registry import ALL_DIMENSIONS
from ..probes.base import SourceControlProbe
from .config import RemediationSettings
from .errors import ProbeError
from .orchestrator import classify_service
from .report import DIMENSION_LABELS

console = Console(stderr=True)

REMEDIABLE = (Classification.FAIL, Classification.PARTIAL)


class RemediationMode(str, Enum):
    DRY_RUN = "dry-run"
    ISSUES = "issues"


class RemediationAction(str, Enum):
    WOULD_FILE = "would-file"
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ERROR = "error"


class RemediationItem(BaseModel):
    organization: str
    service: str
    repo: str
    classification: Classification
    title: str
    body: str
    action: RemediationAction = RemediationAction.WOULD_FILE
    issue_number: Optional[int] = None
    issue_url: Optional[str] = None
    error: Optional[str] = None


def build_issue_title(organization: str, service: str, settings: Optional[RemediationSettings] = None) -> str:
    prefix = (settings or RemediationSettings()).title_prefix
    return f"{prefix}: {organization}/{service}"


def build_issue_body(organization: str, service: str, audit: ServiceAudit) -> str:
    """Build the deterministic issue body: one finding per failing dimension."""
    classification = classify_service(audit)
    lines: list[str] = []
    lines.append(f"## Ecosystem compliance: {organization}/{service}")
    lines.append("")
    lines.append(f"**Repository:** {audit.repo}")
    lines.append(f"**Tier:** {audit.tier}")
    lines.append(f"**Type:** {audit.type or '-'}")
    lines.append(f"**Status:** {classification.value}")
    lines.append("")
    lines.append("### Findings")
    lines.append("")

    for dimension in ALL_DIMENSIONS:
        check = audit.checks.get(dimension)
        if check is None or check.status != CheckStatus.FAIL:
            continue
        lines.append(f"- [ ] **{DIMENSION_LABELS[dimension]}** (`{dimension.value}`): {check.reason or 'Check failed'}")
        for detail in check.details or []:
            if detail != check.reason:
                lines.append(f"  - {detail}")

    lines.append("")
    lines.append("---")
    lines.append("This issue is maintained by the ecosystem compliance audit. "
                 "It is updated in place on later runs; close it once every finding is resolved.")
    return "\n".join(lines)


def plan_remediation(
    report: AuditReport,
    settings: Optional[RemediationSettings] = None,
) -> list[RemediationItem]:
    """List the issues to file, ordered by organization then service name."""
    items: list[RemediationItem] = []
    for org_name in sorted(report.organizations):
        services = report.organizations[org_name].services
        for name in sorted(services):
            audit = services[name]
            classification = classify_service(audit)
            if classification not in REMEDIABLE:
                continue
            if not any(c.status == CheckStatus.FAIL for c in audit.checks.values()):
                # nothing to file: every applicable check was skipped
                continue
            items.append(RemediationItem(
                organization=org_name,
                service=name,
                repo=audit.repo,
                classification=classification,
                title=build_issue_title(org_name, name, settings),
                body=build_issue_body(org_name, name, audit),
            ))
    return items


async def ensure_issue(
    item: RemediationItem,
    source: SourceControlProbe,
    labels: list[str],
) -> RemediationItem:
    """Ensure one open tracking issue with this title and body exists."""
    try:
        existing = await source.find_open_issue(item.repo, item.title)
        if existing is None:
            issue = await source.create_issue(item.repo, item.title, item.body, labels)
            action = RemediationAction.CREATED
        elif existing.body.strip() == item.body.strip():
            issue = existing
            action = RemediationAction.UNCHANGED
        else:
            issue = await source.update_issue(item.repo, existing.number, item.body)
            action = RemediationAction.UPDATED
    except ProbeError as e:
        return item.model_copy(update={"action": RemediationAction.ERROR, "error": str(e)})

    return item.model_copy(update={"action": action, "issue_number": issue.number, "issue_url": issue.url})


async def run_remediation(
    report: AuditReport,
    mode: RemediationMode,
    source: Optional[SourceControlProbe] = None,
    settings: Optional[RemediationSettings] = None,
    verbose: bool = False,
) -> list[RemediationItem]:
    """Plan and, in issues mode, file the tracking issues.

    Dry-run never touches the source-control collaborator.
    """
    settings = settings or RemediationSettings()
    items = plan_remediation(report, settings)

    if mode == RemediationMode.DRY_RUN:
        return items

    if source is None:
        raise ValueError("issues mode requires a source-control probe")

    results: list[RemediationItem] = []
    for item in items:
        result = await ensure_issue(item, source, settings.labels)
        if verbose:
            if result.action == RemediationAction.ERROR:
                console.print(f"  [red]ERROR[/red] {item.repo}: {escape(result.error or '')}")
            else:
                console.print(f"  [green]OK[/green] {item.repo}: {result.action.value} #{result.issue_number}")
        results.append(result)
    return results
