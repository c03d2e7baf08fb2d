"""Dimension evaluators.

Each dimension pairs an async ``collect`` step, which gathers facts from the
probes, with a pure ``judge`` step that turns those facts into a CheckResult.
The orchestrator looks evaluators up in ``EVALUATORS`` and never branches on
the dimension itself.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..core.config import AuditSettings
from ..models.audit import CheckResult, CheckStatus
from ..models.registry import Dimension, ServiceDescriptor
from ..probes.base import RuntimeProbe, SourceControlProbe

RUNTIME_SKIPPED = "runtime checks skipped"


@dataclass
class EvaluationContext:
    source: SourceControlProbe
    runtime: RuntimeProbe
    settings: AuditSettings


Collector = Callable[[ServiceDescriptor, EvaluationContext], Awaitable[dict]]
Judge = Callable[[ServiceDescriptor, dict, AuditSettings], CheckResult]


@dataclass(frozen=True)
class DimensionEvaluator:
    dimension: Dimension
    collect: Collector
    judge: Judge

    async def evaluate(self, service: ServiceDescriptor, ctx: EvaluationContext) -> CheckResult:
        facts = await self.collect(service, ctx)
        return self.judge(service, facts, ctx.settings)


def _result(details: list[str], **extra) -> CheckResult:
    if details:
        return CheckResult(status=CheckStatus.FAIL, reason="; ".join(details), details=details, **extra)
    return CheckResult(status=CheckStatus.PASS, details=[], **extra)


# -- source control integration ------------------------------------------------

async def collect_source_control(service: ServiceDescriptor, ctx: EvaluationContext) -> dict:
    eco = ctx.settings.ecosystem
    has_config, has_workflow = await asyncio.gather(
        ctx.source.file_exists(service.repo, eco.connect_config_file),
        ctx.source.has_workflow_matching(service.repo, eco.connect_workflow_patterns),
    )
    return {"has_config": has_config, "has_workflow": has_workflow}


def judge_source_control(service: ServiceDescriptor, facts: dict, settings: AuditSettings) -> CheckResult:
    details: list[str] = []
    if not facts["has_config"]:
        details.append(f"Missing {settings.ecosystem.connect_config_file}")
    if not facts["has_workflow"]:
        details.append("Missing sync workflow")
    return _result(details)


# -- monitoring agent integration ----------------------------------------------

async def collect_monitoring(service: ServiceDescriptor, ctx: EvaluationContext) -> dict:
    eco = ctx.settings.ecosystem
    facts = {"dependency_found": False, "has_manifest": False, "module_found": False, "workflow_found": None}

    dependency = await ctx.source.has_dependency(service.repo, eco.monitoring_package)
    facts["dependency_found"] = dependency.exists
    facts["has_manifest"] = dependency.has_manifest
    if dependency.exists:
        return facts

    for module_file in eco.monitoring_module_files:
        if await ctx.source.file_exists(service.repo, module_file):
            facts["module_found"] = True
            return facts

    if not dependency.has_manifest:
        facts["workflow_found"] = await ctx.source.has_workflow_matching(
            service.repo, eco.monitoring_workflow_patterns
        )
    return facts


def judge_monitoring(service: ServiceDescriptor, facts: dict, settings: AuditSettings) -> CheckResult:
    if facts["dependency_found"] or facts["module_found"] or facts.get("workflow_found"):
        return CheckResult(status=CheckStatus.PASS)

    if not facts["has_manifest"]:
        return CheckResult(
            status=CheckStatus.FAIL,
            reason="No monitoring integration found",
            details=["No package.json, no monitoring module, no monitoring workflow"],
        )
    return CheckResult(
        status=CheckStatus.FAIL,
        reason=f"{settings.ecosystem.monitoring_package} not in package.json",
    )


# -- canonical files + branch protection ---------------------------------------

async def collect_canonical_files(service: ServiceDescriptor, ctx: EvaluationContext) -> dict:
    files = ctx.settings.ecosystem.canonical_files
    branch = ctx.settings.github.default_branch
    *present, protection = await asyncio.gather(
        *(ctx.source.file_exists(service.repo, f) for f in files),
        ctx.source.get_branch_protection(service.repo, branch),
    )
    return {
        "files": dict(zip(files, present)),
        "protection": protection,
        "branch": branch,
    }


def judge_canonical_files(service: ServiceDescriptor, facts: dict, settings: AuditSettings) -> CheckResult:
    """Pass/fail depends on file presence only; protection feeds ``score``."""
    files: dict[str, bool] = facts["files"]
    protection = facts["protection"]

    points = float(sum(1 for present in files.values() if present))
    missing = [f"Missing {name}" for name, present in files.items() if not present]

    advisory: list[str] = []
    if not protection.enabled:
        advisory.append(f"No branch protection on {facts['branch']}")
    else:
        points += 0.5
        if protection.required_reviews:
            points += 0.25
        if protection.no_force_push:
            points += 0.25

    score = round(points / (len(files) + 1), 4) if files else 0.0
    if missing:
        return CheckResult(
            status=CheckStatus.FAIL,
            reason="; ".join(missing),
            details=missing + advisory,
            score=score,
        )
    return CheckResult(status=CheckStatus.PASS, details=advisory, score=score)


# -- registry heartbeat --------------------------------------------------------

async def collect_registry_heartbeat(service: ServiceDescriptor, ctx: EvaluationContext) -> dict:
    has_workflow = await ctx.source.has_workflow_matching(
        service.repo, ctx.settings.ecosystem.registry_workflow_patterns
    )
    probe = None
    if not ctx.settings.audit.skip_runtime:
        probe = await ctx.runtime.check_registry(service.name)
    return {"has_workflow": has_workflow, "probe": probe}


def judge_registry_heartbeat(service: ServiceDescriptor, facts: dict, settings: AuditSettings) -> CheckResult:
    details: list[str] = []
    if not facts["has_workflow"]:
        details.append("No registry heartbeat in workflows")
    probe = facts["probe"]
    if probe is not None and probe.status == CheckStatus.FAIL:
        details.append(f"Registry probe failed: {probe.reason}")
    return _result(details)


# -- routing and health (runtime, domain-bound) --------------------------------

def _runtime_collector(check: Callable[[RuntimeProbe, str], Awaitable[CheckResult]]) -> Collector:
    async def collect(service: ServiceDescriptor, ctx: EvaluationContext) -> dict:
        if not service.domain:
            return {"domain": None}
        if ctx.settings.audit.skip_runtime:
            return {"domain": service.domain, "skipped": True}
        return {"domain": service.domain, "probe": await check(ctx.runtime, service.domain)}

    return collect


def judge_runtime(service: ServiceDescriptor, facts: dict, settings: AuditSettings) -> CheckResult:
    if not facts.get("domain"):
        return CheckResult(status=CheckStatus.NOT_APPLICABLE, reason="no domain")
    if facts.get("skipped"):
        return CheckResult(status=CheckStatus.SKIP, reason=RUNTIME_SKIPPED)
    return facts["probe"]


collect_routing = _runtime_collector(lambda runtime, domain: runtime.check_router(domain))
collect_health_endpoint = _runtime_collector(lambda runtime, domain: runtime.check_health(domain))


# -- trust chain provisioning --------------------------------------------------

async def collect_trust_chain(service: ServiceDescriptor, ctx: EvaluationContext) -> dict:
    content = await ctx.source.get_file_content(service.repo, ctx.settings.ecosystem.connect_config_file)
    return {"content": content}


def judge_trust_chain(service: ServiceDescriptor, facts: dict, settings: AuditSettings) -> CheckResult:
    eco = settings.ecosystem
    content = facts["content"]
    if content is None:
        return CheckResult(
            status=CheckStatus.FAIL,
            reason=f"No {eco.connect_config_file} to verify trust chain",
        )

    details = [f"Missing onboarding provision: {p}" for p in eco.trust_provisions if p not in content]
    if eco.auth_provider not in content:
        details.append(f"Auth provider not set to {eco.auth_provider}")
    return _result(details)


EVALUATORS: dict[Dimension, DimensionEvaluator] = {
    e.dimension: e
    for e in (
        DimensionEvaluator(Dimension.SOURCE_CONTROL, collect_source_control, judge_source_control),
        DimensionEvaluator(Dimension.MONITORING, collect_monitoring, judge_monitoring),
        DimensionEvaluator(Dimension.CANONICAL_FILES, collect_canonical_files, judge_canonical_files),
        DimensionEvaluator(Dimension.REGISTRY_HEARTBEAT, collect_registry_heartbeat, judge_registry_heartbeat),
        DimensionEvaluator(Dimension.ROUTING, collect_routing, judge_runtime),
        DimensionEvaluator(Dimension.TRUST_CHAIN, collect_trust_chain, judge_trust_chain),
        DimensionEvaluator(Dimension.HEALTH_ENDPOINT, collect_health_endpoint, judge_runtime),
    )
}
