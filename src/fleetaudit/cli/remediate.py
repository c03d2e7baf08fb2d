"""fleet-remediate: file tracking issues for services a prior audit flagged."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

EXIT_OK = 0
EXIT_CONFIG_ERROR = 3
EXIT_FILING_ERROR = 4

console = Console(stderr=True)


@click.command(name="fleet-remediate")
@click.argument("report_path", metavar="REPORT", type=click.Path(path_type=Path))
@click.option("--mode", type=click.Choice(["dry-run", "issues"]), default="dry-run", show_default=True,
              help="dry-run prints the plan; issues files or updates tracking issues")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Settings YAML")
@click.option("--verbose", "-v", is_flag=True, help="Print each filing action")
def remediate_cli(report_path: Path, mode: str, config_path: Path | None, verbose: bool) -> None:
    """Turn a JSON audit report into per-service tracking issues."""
    from ..core.config import get_settings
    from ..core.errors import ConfigError
    from ..core.remediation import RemediationAction, RemediationMode, run_remediation
    from ..core.report import load_report

    try:
        settings = get_settings(config_path)
        report = load_report(report_path)
    except ConfigError as e:
        console.print(f"  [red]ERROR[/red] {escape(str(e))}")
        sys.exit(EXIT_CONFIG_ERROR)

    remediation_mode = RemediationMode(mode)
    source = None
    if remediation_mode == RemediationMode.ISSUES:
        from ..probes.base import get_probes

        source, _ = get_probes(settings)

    items = asyncio.run(
        run_remediation(report, remediation_mode, source=source, settings=settings.remediation, verbose=verbose)
    )

    if remediation_mode == RemediationMode.DRY_RUN:
        for item in items:
            console.print(f"  [cyan]{item.repo}[/cyan] {item.title} ({item.classification.value})")
            console.print(item.body, markup=False, highlight=False)
            console.print()
        console.print(f"  {len(items)} issue(s) would be filed")
    else:
        counts: dict[str, int] = {}
        for item in items:
            counts[item.action.value] = counts.get(item.action.value, 0) + 1
        summary = ", ".join(f"{count} {action}" for action, count in sorted(counts.items())) or "nothing to file"
        console.print(f"  Remediation: {summary}")

    click.echo(json.dumps([item.model_dump(mode="json", exclude_none=True) for item in items], indent=2))

    if any(item.action == RemediationAction.ERROR for item in items):
        sys.exit(EXIT_FILING_ERROR)
    sys.exit(EXIT_OK)


def main() -> None:
    remediate_cli()


if __name__ == "__main__":
    main()
