"""Tests for core/report.py."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fleetaudit.compliance.loader import load_check_definitions
from fleetaudit.core.errors import ConfigError, ReportLoadError
from fleetaudit.core.report import (
    load_report,
    parse_report,
    render,
    render_json,
    render_markdown,
    service_score,
    write_markdown,
    write_report,
)


class TestRenderJson:
    def test_summary_uses_stable_field_names(self, sample_report):
        data = json.loads(render_json(sample_report))
        summary = data["summary"]
        assert summary == {
            "total": 4,
            "fullPass": 1,
            "partial": 1,
            "fail": 1,
            "skipped": 1,
            "orgCount": 2,
            "complianceRate": 33,
        }

    def test_dimension_keys_and_statuses(self, sample_report):
        data = json.loads(render_json(sample_report))
        alpha = data["organizations"]["ORG-A"]["services"]["alpha"]
        assert alpha["checks"]["source_control"] == {"status": "pass"}
        assert alpha["checks"]["routing"] == {"status": "not_applicable"}
        assert alpha["classification"] == "fullPass"

    def test_skipped_service_has_reason(self, sample_report):
        data = json.loads(render_json(sample_report))
        legacy = data["organizations"]["ORG-B"]["services"]["legacy"]
        assert legacy["skipped"] is True
        assert legacy["reason"] == "inactive/archived"
        assert legacy["checks"] == {}

    def test_round_trip(self, sample_report):
        text = render_json(sample_report)
        assert parse_report(text) == sample_report
        assert render_json(parse_report(text)) == text


class TestRenderMarkdown:
    def test_idempotent(self, sample_report):
        assert render_markdown(sample_report) == render_markdown(sample_report)

    def test_uses_report_timestamp(self, sample_report):
        md = render_markdown(sample_report)
        assert "> Report generated: 2026-01-01T00:00:00.000Z" in md

    def test_summary_table(self, sample_report):
        md = render_markdown(sample_report)
        assert "| Total services audited | 4 |" in md
        assert "| Overall compliance rate | 33% |" in md

    def test_org_tables_sorted(self, sample_report):
        md = render_markdown(sample_report)
        assert md.index("## ORG-A") < md.index("## ORG-B")
        assert md.index("| alpha |") < md.index("| beta |")

    def test_service_row(self, sample_report):
        md = render_markdown(sample_report)
        assert "| alpha | 0 | PASS | N/A | PASS | N/A | N/A | N/A | PASS | 3/3 | fullPass |" in md

    def test_skipped_line(self, sample_report):
        md = render_markdown(sample_report)
        assert "Skipped (inactive/archived): legacy" in md
        assert "| legacy |" not in md

    def test_failure_detail(self, sample_report):
        md = render_markdown(sample_report)
        assert "### ORG-A/beta" in md
        assert "- **canonical_files**: Missing CHARTER.md" in md
        assert "  - No branch protection on main" in md
        assert "### ORG-A/alpha" not in md

    def test_warnings_section(self, sample_report):
        md = render_markdown(sample_report)
        assert "## Warnings" in md
        assert "- ORG-B/gamma: source_control: GET repos/ORG-B/gamma: HTTP 500" in md

    def test_definitions_section(self, sample_report, checks_file: Path):
        md = render_markdown(sample_report, load_check_definitions(checks_file))
        assert "## Dimensions" in md
        assert "- **Router** (routing): Router route." in md

    def test_stable_across_json_round_trip(self, sample_report):
        restored = parse_report(render_json(sample_report))
        assert render(restored) == render(sample_report)


class TestServiceScore:
    def test_counts_applicable_only(self, sample_report):
        beta = sample_report.organizations["ORG-A"].services["beta"]
        assert service_score(beta) == "1/2"

    def test_skipped_service(self, sample_report):
        legacy = sample_report.organizations["ORG-B"].services["legacy"]
        assert service_score(legacy) == "N/A"


class TestPersistence:
    def test_write_and_load(self, sample_report, tmp_path: Path):
        path = write_report(sample_report, tmp_path / "out" / "report.json")
        assert load_report(path) == sample_report
        assert not path.read_bytes().startswith(b"\xef\xbb\xbf")

    def test_write_markdown(self, sample_report, tmp_path: Path):
        path = write_markdown(sample_report, tmp_path / "report.md")
        assert path.read_text(encoding="utf-8").startswith("# Ecosystem Compliance Dashboard")

    def test_missing_report(self, tmp_path: Path):
        with pytest.raises(ReportLoadError, match="not found"):
            load_report(tmp_path / "missing.json")

    def test_invalid_json(self):
        with pytest.raises(ConfigError):
            parse_report("{not json")

    def test_invalid_shape(self):
        with pytest.raises(ReportLoadError):
            parse_report(json.dumps({"organizations": {}}))
