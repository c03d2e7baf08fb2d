"""fleet-audit: audit every registered service against the compliance profiles."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

EXIT_OK = 0
EXIT_BELOW_THRESHOLD = 1
EXIT_CONFIG_ERROR = 3

DEFAULT_REGISTRY = Path("compliance") / "service-registry.yml"
DEFAULT_CHECKS = Path("compliance") / "checks.yml"

# stdout is reserved for the JSON report
console = Console(stderr=True)


@click.command(name="fleet-audit")
@click.option("--registry", "registry_path", type=click.Path(path_type=Path), default=DEFAULT_REGISTRY,
              show_default=True, help="Service registry YAML")
@click.option("--checks", "checks_path", type=click.Path(path_type=Path), default=DEFAULT_CHECKS,
              show_default=True, help="Check definitions YAML")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Settings YAML")
@click.option("--org", type=str, default="all", show_default=True, help="Organization to audit, or 'all'")
@click.option("--service", type=str, help="Audit a single service")
@click.option("--output", type=click.Path(path_type=Path), help="Write JSON report to file")
@click.option("--markdown", type=click.Path(path_type=Path), help="Write Markdown report to file")
@click.option("--junit", type=click.Path(path_type=Path), help="Write JUnit XML results to file")
@click.option("--skip-runtime", is_flag=True, help="Skip runtime checks (health, registry, router endpoints)")
@click.option("--verbose", "-v", is_flag=True, help="Print detailed progress")
@click.option("--threshold", type=int, help="Exit non-zero if the compliance rate is below this")
@click.option("--concurrency", type=int, help="Services audited in parallel")
@click.option("--timeout", type=int, help="Runtime probe timeout in seconds")
def audit_cli(
    registry_path: Path,
    checks_path: Path,
    config_path: Path | None,
    org: str,
    service: str | None,
    output: Path | None,
    markdown: Path | None,
    junit: Path | None,
    skip_runtime: bool,
    verbose: bool,
    threshold: int | None,
    concurrency: int | None,
    timeout: int | None,
) -> None:
    """Audit services against the ecosystem compliance dimensions."""
    from ..compliance.loader import load_check_definitions, load_registry
    from ..core.config import get_settings
    from ..core.errors import ConfigError
    from ..core.orchestrator import run_audit
    from ..core.report import render, write_markdown, write_report
    from ..formatters.junit import export_junit_results
    from ..probes.base import get_probes

    cli_overrides: dict = {}
    if skip_runtime:
        cli_overrides.setdefault("audit", {})["skip_runtime"] = True
    if threshold is not None:
        cli_overrides.setdefault("audit", {})["threshold"] = threshold
    if concurrency is not None:
        cli_overrides.setdefault("audit", {})["concurrency"] = concurrency
    if timeout is not None:
        cli_overrides.setdefault("runtime", {})["timeout_seconds"] = timeout

    try:
        settings = get_settings(config_path, cli_overrides or None)
        registry = load_registry(registry_path)
        definitions = load_check_definitions(checks_path)
    except ConfigError as e:
        console.print(f"  [red]ERROR[/red] {escape(str(e))}")
        sys.exit(EXIT_CONFIG_ERROR)

    # Banner
    console.print()
    console.print("  [bold cyan]ECOSYSTEM COMPLIANCE AUDIT[/bold cyan]")
    console.print(f"  Org filter:     [white]{org or 'all'}[/white]")
    console.print(f"  Service filter: [white]{service or 'all'}[/white]")
    console.print(f"  Skip runtime:   [white]{settings.audit.skip_runtime}[/white]")
    console.print()

    source, runtime = get_probes(settings)
    try:
        report = asyncio.run(
            run_audit(
                registry,
                settings,
                source,
                runtime,
                org=org,
                service=service,
                verbose=verbose,
            )
        )
    except ConfigError as e:
        console.print(f"  [red]ERROR[/red] {escape(str(e))}")
        sys.exit(EXIT_CONFIG_ERROR)

    rendered = render(report, definitions)

    if output:
        write_report(report, output)
        console.print(f"  [green]OK[/green] JSON report written to {output}")
    if markdown:
        write_markdown(report, markdown, definitions)
        console.print(f"  [green]OK[/green] Markdown report written to {markdown}")
    if junit:
        junit_result = export_junit_results(report, junit)
        console.print(
            f"  [green]OK[/green] JUnit XML: {junit_result['total_tests']} tests, "
            f"{junit_result['failures']} failures"
        )

    s = report.summary
    rate_color = "green" if s.compliance_rate >= settings.audit.threshold else "red"
    console.print()
    console.print("  [bold]Summary[/bold]")
    console.print(f"  Total services:      {s.total}")
    console.print(f"  Fully compliant:     {s.full_pass}")
    console.print(f"  Partially compliant: {s.partial}")
    console.print(f"  Non-compliant:       {s.fail}")
    console.print(f"  Skipped:             {s.skipped}")
    console.print(f"  Compliance rate:     [{rate_color}]{s.compliance_rate}%[/{rate_color}]")

    if not output:
        click.echo(rendered.json)

    if s.compliance_rate < settings.audit.threshold:
        console.print(
            f"  [red]FAIL[/red] Compliance rate {s.compliance_rate}% is below threshold "
            f"{settings.audit.threshold}%"
        )
        sys.exit(EXIT_BELOW_THRESHOLD)
    sys.exit(EXIT_OK)


def main() -> None:
    audit_cli()


if __name__ == "__main__":
    main()
