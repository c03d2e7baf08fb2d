"""JUnit XML formatter for CI/CD integration.

One testsuite per organization, one testcase per (service, dimension) that
applies to the service.
"""

from __future__ import annotations

from pathlib import Path
from xml.dom import minidom
from xml.etree import ElementTree as ET

from ..models.audit import AuditReport, CheckStatus
from ..models.registry import ALL_DIMENSIONS


def export_junit_results(
    report: AuditReport,
    output_path: Path,
    suite_name: str = "Ecosystem Compliance",
) -> dict:
    """Export an audit report as JUnit XML.

    Args:
        report: The audit report to convert.
        output_path: Path to write the XML file.
        suite_name: Name for the testsuites element.

    Returns:
        Dict with: path, total_tests, failures, skipped, passed.
    """
    testsuites = ET.Element("testsuites")
    testsuites.set("name", suite_name)
    testsuites.set("timestamp", report.timestamp)

    total_tests = 0
    total_failures = 0
    total_skipped = 0

    for org_name in sorted(report.organizations):
        services = report.organizations[org_name].services

        testsuite = ET.SubElement(testsuites, "testsuite")
        testsuite.set("name", org_name)

        suite_tests = 0
        suite_failures = 0
        suite_skipped = 0

        for name in sorted(services):
            svc = services[name]
            if svc.skipped:
                continue

            for dimension in ALL_DIMENSIONS:
                check = svc.checks.get(dimension)
                if check is None or check.status == CheckStatus.NOT_APPLICABLE:
                    continue

                suite_tests += 1
                testcase = ET.SubElement(testsuite, "testcase")
                testcase.set("name", f"{name}: {dimension.value}")
                testcase.set("classname", f"{org_name}.{name}")
                testcase.set("file", svc.repo)

                if check.status == CheckStatus.FAIL:
                    suite_failures += 1
                    failure = ET.SubElement(testcase, "failure")
                    failure.set("message", check.reason or "Check failed")
                    failure.set("type", dimension.value)

                    text_parts = [f"Repository: {svc.repo}", f"Tier: {svc.tier}"]
                    if check.details:
                        text_parts.append("\nDetails:")
                        text_parts.extend(f"- {d}" for d in check.details)
                    failure.text = "\n".join(text_parts)
                elif check.status == CheckStatus.SKIP:
                    suite_skipped += 1
                    skipped = ET.SubElement(testcase, "skipped")
                    skipped.set("message", check.reason or "skipped")

        testsuite.set("tests", str(suite_tests))
        testsuite.set("failures", str(suite_failures))
        testsuite.set("errors", "0")
        testsuite.set("skipped", str(suite_skipped))

        total_tests += suite_tests
        total_failures += suite_failures
        total_skipped += suite_skipped

    testsuites.set("tests", str(total_tests))
    testsuites.set("failures", str(total_failures))
    testsuites.set("errors", "0")
    testsuites.set("skipped", str(total_skipped))

    output_path.parent.mkdir(parents=True, exist_ok=True)

    # Pretty-print XML
    rough = ET.tostring(testsuites, encoding="unicode")
    dom = minidom.parseString(rough)
    xml_str = dom.toprettyxml(indent="  ", encoding="UTF-8")
    output_path.write_bytes(xml_str)

    return {
        "path": str(output_path),
        "total_tests": total_tests,
        "failures": total_failures,
        "skipped": total_skipped,
        "passed": total_tests - total_failures - total_skipped,
    }
