"""Applicability resolution shared by every dimension evaluation."""

from __future__ import annotations

from ..core.errors import ProbeError
from ..models.audit import CheckResult, CheckStatus
from ..models.registry import Applicability, Dimension, ServiceDescriptor
from ..utils.sanitize import sanitize_error
from .dimensions import EVALUATORS, EvaluationContext

OPTIONAL_NOT_CONFIGURED = "optional, not configured"


def downgrade_optional(result: CheckResult, applicability: Applicability) -> CheckResult:
    """Optional dimensions never count against compliance: fail becomes skip."""
    if applicability != Applicability.OPTIONAL or result.status != CheckStatus.FAIL:
        return result
    details = list(result.details or [])
    if result.reason and result.reason not in details:
        details.insert(0, result.reason)
    return result.model_copy(
        update={"status": CheckStatus.SKIP, "reason": OPTIONAL_NOT_CONFIGURED, "details": details}
    )


async def resolve_check(
    dimension: Dimension,
    applicability: Applicability,
    service: ServiceDescriptor,
    ctx: EvaluationContext,
    warnings: list[str] | None = None,
) -> CheckResult:
    """Evaluate one dimension for one service according to its applicability.

    not_applicable dimensions never reach the evaluator, so no probe is called.
    Probe failures and unexpected evaluator errors are recorded in
    ``warnings`` and reported as ``fail`` for this dimension only, then go
    through the optional downgrade like any other failure.
    """
    if applicability == Applicability.NOT_APPLICABLE:
        return CheckResult(status=CheckStatus.NOT_APPLICABLE)

    try:
        result = await EVALUATORS[dimension].evaluate(service, ctx)
    except ProbeError as e:
        if warnings is not None:
            warnings.append(f"{dimension.value}: {e}")
        result = CheckResult(status=CheckStatus.FAIL, reason=f"Probe error: {e}")
    except Exception as e:
        # contained to this dimension; the others keep their results
        message = sanitize_error(f"{type(e).__name__}: {e}")
        if warnings is not None:
            warnings.append(f"{dimension.value}: evaluation failed: {message}")
        result = CheckResult(status=CheckStatus.FAIL, reason=f"Evaluation failed: {message}")

    return downgrade_optional(result, applicability)
