"""Audit report rendering and persistence.

Rendering is a pure function of the report: the Markdown output uses the
report's own timestamp and sorts organizations and services by name, so two
renders of the same report are byte-identical.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..models.audit import AuditReport, CheckResult, CheckStatus, ServiceAudit
from ..models.registry import ALL_DIMENSIONS, CheckDefinition, Dimension
from .errors import ReportLoadError

DIMENSION_LABELS: dict[Dimension, str] = {
    Dimension.SOURCE_CONTROL: "Connect",
    Dimension.MONITORING: "Monitoring",
    Dimension.CANONICAL_FILES: "Canon",
    Dimension.REGISTRY_HEARTBEAT: "Register",
    Dimension.ROUTING: "Router",
    Dimension.TRUST_CHAIN: "Trust",
    Dimension.HEALTH_ENDPOINT: "Health",
}

STATUS_LABELS: dict[CheckStatus, str] = {
    CheckStatus.PASS: "PASS",
    CheckStatus.FAIL: "FAIL",
    CheckStatus.SKIP: "SKIP",
    CheckStatus.NOT_APPLICABLE: "N/A",
}


@dataclass(frozen=True)
class RenderedReport:
    json: str
    markdown: str


def render_json(report: AuditReport) -> str:
    data = report.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(data, indent=2, ensure_ascii=False)


def status_label(check: Optional[CheckResult]) -> str:
    if check is None:
        return "?"
    return STATUS_LABELS.get(check.status, "?")


def service_score(service: ServiceAudit) -> str:
    """``passed/applicable`` over checks that are not not_applicable."""
    applicable = [c for c in service.checks.values() if c.status != CheckStatus.NOT_APPLICABLE]
    if not applicable:
        return "N/A"
    passed = sum(1 for c in applicable if c.status == CheckStatus.PASS)
    return f"{passed}/{len(applicable)}"


def _sorted_services(report: AuditReport):
    for org_name in sorted(report.organizations):
        services = report.organizations[org_name].services
        for name in sorted(services):
            yield org_name, name, services[name]


def render_markdown(
    report: AuditReport,
    definitions: Optional[dict[Dimension, CheckDefinition]] = None,
) -> str:
    """Render the human-readable compliance dashboard."""
    s = report.summary
    lines: list[str] = []
    lines.append("# Ecosystem Compliance Dashboard")
    lines.append("")
    lines.append(f"> Report generated: {report.timestamp}")
    if report.schema_version:
        lines.append(f"> Registry schema: {report.schema_version}")
    lines.append(f"> Audited: {s.total} services across {s.org_count} organizations")
    lines.append("")

    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Total services audited | {s.total} |")
    lines.append(f"| Fully compliant | {s.full_pass} |")
    lines.append(f"| Partially compliant | {s.partial} |")
    lines.append(f"| Non-compliant | {s.fail} |")
    lines.append(f"| Skipped (inactive/archived) | {s.skipped} |")
    lines.append(f"| Overall compliance rate | {s.compliance_rate}% |")
    lines.append("")

    header = " | ".join(DIMENSION_LABELS[d] for d in ALL_DIMENSIONS)
    divider = "|".join("-" * (len(DIMENSION_LABELS[d]) + 2) for d in ALL_DIMENSIONS)

    for org_name in sorted(report.organizations):
        services = report.organizations[org_name].services
        lines.append(f"## {org_name}")
        lines.append("")
        lines.append(f"| Service | Tier | {header} | Score | Status |")
        lines.append(f"|---------|------|{divider}|-------|--------|")

        skipped: list[str] = []
        for name in sorted(services):
            svc = services[name]
            if svc.skipped:
                skipped.append(name)
                continue
            cols = " | ".join(status_label(svc.checks.get(d)) for d in ALL_DIMENSIONS)
            lines.append(
                f"| {name} | {svc.tier} | {cols} | {service_score(svc)} | {svc.classification.value} |"
            )
        lines.append("")
        if skipped:
            lines.append(f"Skipped (inactive/archived): {', '.join(skipped)}")
            lines.append("")

    lines.append("## Non-Compliant Services Detail")
    lines.append("")
    for org_name, name, svc in _sorted_services(report):
        if svc.skipped:
            continue
        failures = [(d, svc.checks[d]) for d in ALL_DIMENSIONS if d in svc.checks
                    and svc.checks[d].status == CheckStatus.FAIL]
        if not failures:
            continue
        lines.append(f"### {org_name}/{name}")
        for dimension, check in failures:
            lines.append(f"- **{dimension.value}**: {check.reason or 'Check failed'}")
            for detail in check.details or []:
                if detail != check.reason:
                    lines.append(f"  - {detail}")
        lines.append("")

    warned = [(org_name, name, svc) for org_name, name, svc in _sorted_services(report) if svc.warnings]
    if warned:
        lines.append("## Warnings")
        lines.append("")
        for _, _, svc in warned:
            for warning in svc.warnings:
                lines.append(f"- {warning}")
        lines.append("")

    if definitions:
        lines.append("## Dimensions")
        lines.append("")
        for dimension in ALL_DIMENSIONS:
            definition = definitions.get(dimension)
            if definition:
                lines.append(f"- **{DIMENSION_LABELS[dimension]}** ({dimension.value}): "
                             f"{definition.name}. {definition.description}")
        lines.append("")

    return "\n".join(lines)


def render(
    report: AuditReport,
    definitions: Optional[dict[Dimension, CheckDefinition]] = None,
) -> RenderedReport:
    return RenderedReport(json=render_json(report), markdown=render_markdown(report, definitions))


def parse_report(text: str) -> AuditReport:
    """Deserialize a JSON report produced by ``render_json``."""
    try:
        return AuditReport.model_validate(json.loads(text))
    except ValueError as e:
        # ValidationError is a ValueError subclass
        raise ReportLoadError(f"Invalid audit report: {e}") from e


def load_report(path: Path) -> AuditReport:
    path = Path(path)
    if not path.exists():
        raise ReportLoadError(f"Report not found: {path}")
    return parse_report(path.read_text(encoding="utf-8"))


def write_report(report: AuditReport, output_path: Path) -> Path:
    """Write the JSON report (UTF-8, no BOM)."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_json(report), encoding="utf-8")
    return output_path


def write_markdown(
    report: AuditReport,
    output_path: Path,
    definitions: Optional[dict[Dimension, CheckDefinition]] = None,
) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(render_markdown(report, definitions), encoding="utf-8")
    return output_path
