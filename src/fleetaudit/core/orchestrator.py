"""Audit orchestrator.

Iterates organizations x services, resolves applicability per service type,
runs the dimension evaluators and aggregates the audit report.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.markup import escape

from ..compliance.applicability import downgrade_optional, resolve_check
from ..compliance.dimensions import EvaluationContext
from ..compliance.loader import get_applicable_checks
from ..models.audit import (
    AuditReport,
    AuditSummary,
    CheckResult,
    CheckStatus,
    Classification,
    OrganizationAudit,
    ServiceAudit,
)
from ..models.registry import ALL_DIMENSIONS, Applicability, Dimension, Registry, ServiceDescriptor
from ..probes.base import RuntimeProbe, SourceControlProbe
from .config import AuditSettings
from .errors import ConfigError, PartialRunWarning

INACTIVE_REASON = "inactive/archived"

# stdout carries the JSON report
console = Console(stderr=True)


class AuditPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    EVALUATING = "evaluating"
    AGGREGATING = "aggregating"
    DONE = "done"


def classify_checks(checks: dict) -> Classification:
    """Classify a service from its check results.

    Only checks that are neither not_applicable nor skip count.
    """
    applicable = [
        c for c in checks.values()
        if c.status not in (CheckStatus.NOT_APPLICABLE, CheckStatus.SKIP)
    ]
    passed = sum(1 for c in applicable if c.status == CheckStatus.PASS)

    if applicable and passed == len(applicable):
        return Classification.FULL_PASS
    if passed > 0:
        return Classification.PARTIAL
    return Classification.FAIL


def classify_service(service: ServiceAudit) -> Classification:
    if service.skipped:
        return Classification.SKIPPED
    return classify_checks(service.checks)


def compute_compliance_rate(full_pass: int, total: int, skipped: int) -> int:
    """Percentage of audited services that are fully passing, rounded half up."""
    audited = total - skipped
    if audited <= 0:
        return 0
    return int(math.floor(100 * full_pass / audited + 0.5))


def summarize(organizations: dict[str, OrganizationAudit]) -> AuditSummary:
    summary = AuditSummary(org_count=len(organizations))
    for org in organizations.values():
        for svc in org.services.values():
            summary.total += 1
            classification = classify_service(svc)
            if classification == Classification.SKIPPED:
                summary.skipped += 1
            elif classification == Classification.FULL_PASS:
                summary.full_pass += 1
            elif classification == Classification.PARTIAL:
                summary.partial += 1
            else:
                summary.fail += 1

    summary.compliance_rate = compute_compliance_rate(summary.full_pass, summary.total, summary.skipped)
    return summary


def _descriptor_fields(service: ServiceDescriptor) -> dict:
    return {
        "repo": service.repo,
        "tier": service.tier,
        "type": service.type,
        "domain": service.domain,
        "active": service.active,
    }


async def audit_service(
    service: ServiceDescriptor,
    profile: dict[Dimension, Applicability],
    ctx: EvaluationContext,
) -> ServiceAudit:
    """Audit a single service across all seven dimensions."""
    if not service.active:
        return ServiceAudit(
            **_descriptor_fields(service),
            checks={},
            skipped=True,
            reason=INACTIVE_REASON,
            classification=Classification.SKIPPED,
        )

    probe_warnings: list[str] = []
    results = await asyncio.gather(*(
        resolve_check(dimension, profile[dimension], service, ctx, probe_warnings)
        for dimension in ALL_DIMENSIONS
    ))
    checks = dict(zip(ALL_DIMENSIONS, results))

    warnings = [
        str(PartialRunWarning(service.organization, service.name, w)) for w in sorted(probe_warnings)
    ]
    return ServiceAudit(
        **_descriptor_fields(service),
        checks=checks,
        skipped=False,
        classification=classify_checks(checks),
        warnings=warnings,
    )


def _aborted_audit(
    service: ServiceDescriptor,
    profile: dict,
    error: Exception,
) -> ServiceAudit:
    """Record a service whose evaluation raised.

    Required checks become fail; optional ones still surface as skip.
    """
    warning = PartialRunWarning(service.organization, service.name, f"evaluation aborted: {error}")
    checks: dict = {}
    for dimension in ALL_DIMENSIONS:
        if profile.get(dimension) == Applicability.NOT_APPLICABLE:
            checks[dimension] = CheckResult(status=CheckStatus.NOT_APPLICABLE)
        else:
            failed = CheckResult(status=CheckStatus.FAIL, reason=f"Evaluation aborted: {error}")
            checks[dimension] = downgrade_optional(failed, profile.get(dimension, Applicability.REQUIRED))
    return ServiceAudit(
        **_descriptor_fields(service),
        checks=checks,
        skipped=False,
        classification=classify_checks(checks),
        warnings=[str(warning)],
    )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def select_services(
    registry: Registry,
    org: Optional[str] = None,
    service: Optional[str] = None,
) -> dict[str, list[ServiceDescriptor]]:
    """Apply the org/service filters. Organizations and services come back sorted by name."""
    org_filter = org if org and org != "all" else None
    if org_filter and org_filter not in registry.organizations:
        known = ", ".join(sorted(registry.organizations))
        raise ConfigError(f"Unknown organization: {org_filter} (known: {known})")

    selected: dict[str, list[ServiceDescriptor]] = {}
    for org_name in sorted(registry.organizations):
        if org_filter and org_name != org_filter:
            continue
        services = registry.organizations[org_name].services
        selected[org_name] = [
            services[name] for name in sorted(services)
            if not service or name == service
        ]
    return selected


def _phase(phase: AuditPhase, verbose: bool) -> None:
    if verbose:
        console.print(f"  [dim]Phase: {phase.value}[/dim]")


async def run_audit(
    registry: Registry,
    settings: AuditSettings,
    source: SourceControlProbe,
    runtime: RuntimeProbe,
    org: Optional[str] = None,
    service: Optional[str] = None,
    verbose: bool = False,
    timestamp: Optional[str] = None,
) -> AuditReport:
    """Run the full audit and return the report.

    Probe failures never escape: they end up as ``fail`` checks and
    per-service warnings. Only configuration problems raise.
    """
    _phase(AuditPhase.LOADING, verbose)
    selected = select_services(registry, org=org, service=service)

    # Resolve every profile before any service is evaluated
    profiles: dict[tuple[str, str], dict[Dimension, Applicability]] = {}
    for org_name, services in selected.items():
        for svc in services:
            if svc.active:
                profiles[(org_name, svc.name)] = get_applicable_checks(registry, svc.type)

    ctx = EvaluationContext(source=source, runtime=runtime, settings=settings)
    semaphore = asyncio.Semaphore(max(1, settings.audit.concurrency))

    async def evaluate(svc: ServiceDescriptor) -> ServiceAudit:
        profile = profiles.get((svc.organization, svc.name), {})
        async with semaphore:
            if verbose:
                console.print(f"  [dim]Auditing {svc.repo} (tier {svc.tier}, type {svc.type})...[/dim]")
            try:
                return await audit_service(svc, profile, ctx)
            except Exception as e:
                return _aborted_audit(svc, profile, e)

    _phase(AuditPhase.EVALUATING, verbose)
    if verbose:
        for org_name, services in selected.items():
            console.print(f"  [cyan]{org_name}[/cyan]: {len(services)} service(s)")
    ordered = [(org_name, svc) for org_name, services in selected.items() for svc in services]
    results = await asyncio.gather(*(evaluate(svc) for _, svc in ordered))

    # Insert in sorted order, independent of completion order
    organizations: dict[str, OrganizationAudit] = {name: OrganizationAudit() for name in selected}
    for (org_name, svc), result in zip(ordered, results):
        organizations[org_name].services[svc.name] = result
        if verbose:
            for warning in result.warnings:
                console.print(f"  [yellow]WARN[/yellow] {escape(warning)}")

    _phase(AuditPhase.AGGREGATING, verbose)
    report = AuditReport(
        timestamp=timestamp or _utc_timestamp(),
        schema_version=registry.schema_version,
        organizations=organizations,
        summary=summarize(organizations),
    )
    _phase(AuditPhase.DONE, verbose)
    return report
