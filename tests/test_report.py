"""tests/test_report.py — JSON and HTML report files"""
import json
from datetime import datetime

import pytest

from dast_scanner.errors import ConfigError
from dast_scanner.models import Finding, Severity
from dast_scanner.report import render_html, write_reports

from conftest import TARGET

NOW = datetime(2024, 5, 1, 12, 30, 0)


def add_sample_findings(reporter):
    reporter.add_finding(Finding(
        severity=Severity.HIGH,
        title="Potential Reflected XSS",
        description="XSS payload reflected in page",
        url="/?q=<script>alert('XSS')</script>",
        payload="<script>alert('XSS')</script>",
        cwe="CWE-79",
    ))
    reporter.add_finding(Finding(severity=Severity.INFO, title="API Endpoint Discovered", description="", url="/"))


def test_json_report_structure(reporter, tmp_path):
    add_sample_findings(reporter)
    [path] = write_reports(reporter, tmp_path / "out", fmt="json", now=NOW)

    assert path.name == "dast-report-20240501_123000.json"
    data = json.loads(path.read_text())
    assert data["target"] == TARGET
    assert data["scan_id"] == reporter.scan_id
    assert data["summary"]["high"] == 1
    assert data["summary"]["info"] == 1
    assert data["summary"]["total"] == 2
    assert [f["title"] for f in data["findings"]] == ["Potential Reflected XSS", "API Endpoint Discovered"]
    assert data["findings"][0]["severity"] == "high"


def test_html_escapes_finding_values(reporter):
    add_sample_findings(reporter)
    page = render_html(reporter)
    assert "<script>alert" not in page
    assert "&lt;script&gt;alert(&#x27;XSS&#x27;)&lt;/script&gt;" in page
    assert page.index("Potential Reflected XSS") < page.index("API Endpoint Discovered")


def test_html_without_findings(reporter):
    assert "No findings." in render_html(reporter)


def test_both_formats(reporter, tmp_path):
    paths = write_reports(reporter, tmp_path, fmt="both", now=NOW)
    assert sorted(p.suffix for p in paths) == [".html", ".json"]
    assert all(p.exists() for p in paths)


def test_unknown_format(reporter, tmp_path):
    with pytest.raises(ConfigError):
        write_reports(reporter, tmp_path, fmt="pdf")
