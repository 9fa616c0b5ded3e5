"""tests/test_cli.py — command exit codes and output"""
import json
import os
import time

from click.testing import CliRunner

from dast_scanner import cli
from dast_scanner.errors import ToolUnavailableError
from dast_scanner.models import Finding, Severity
from dast_scanner.reporter import DASTReporter

from conftest import TARGET


class FakeRunner:
    def __init__(self, config):
        self.config = config

    async def run(self):
        reporter = DASTReporter(target=self.config.target)
        reporter.add_finding(Finding(severity=Severity.HIGH, title="Missing CSRF Protection", description="", url="/"))
        return reporter

    async def run_selected(self, names):
        return await self.run()


def write_auth(path, age_minutes=0):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"cookies": [], "origins": []}))
    stamp = time.time() - age_minutes * 60
    os.utime(path, (stamp, stamp))


def test_scan_without_auth_exits_1():
    result = CliRunner().invoke(cli.main, ["scan", "-t", TARGET])
    assert result.exit_code == 1


def test_scan_writes_report(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "ScanRunner", FakeRunner)
    result = CliRunner().invoke(
        cli.main, ["scan", "--skip-auth", "-f", "json", "-o", str(tmp_path / "out")],
    )
    assert result.exit_code == 0
    assert "High:     1" in result.output
    assert "Report: " in result.output
    assert len(list((tmp_path / "out").glob("dast-report-*.json"))) == 1


def test_invalid_report_format_exits_2(monkeypatch):
    monkeypatch.setenv("REPORT_FORMAT", "pdf")
    result = CliRunner().invoke(cli.main, ["scan", "--skip-auth"])
    assert result.exit_code == 2


def test_env_file_option(monkeypatch, tmp_path):
    env_file = tmp_path / "scan.env"
    env_file.write_text("REPORT_FORMAT=pdf\n")
    # dotenv writes os.environ directly; make sure the variable is removed afterwards
    monkeypatch.setenv("REPORT_FORMAT", "html")
    monkeypatch.delenv("REPORT_FORMAT")
    result = CliRunner().invoke(cli.main, ["--env-file", str(env_file), "status"])
    assert result.exit_code == 2


def test_status_reports_each_state(tmp_path):
    runner = CliRunner()
    auth_file = tmp_path / "dast" / ".auth" / "user.json"

    result = runner.invoke(cli.main, ["status"])
    assert result.exit_code == 0
    assert "No authentication found" in result.output
    assert "Run: dast-scanner auth" in result.output

    write_auth(auth_file, age_minutes=5)
    result = runner.invoke(cli.main, ["status"])
    assert "Authentication is fresh (5 minutes old)" in result.output

    write_auth(auth_file, age_minutes=90)
    result = runner.invoke(cli.main, ["status"])
    assert result.exit_code == 0
    assert "Authentication expired (90 minutes old)" in result.output


def test_clear(tmp_path):
    write_auth(tmp_path / "dast" / ".auth" / "user.json")
    runner = CliRunner()

    result = runner.invoke(cli.main, ["clear"])
    assert result.exit_code == 0
    assert "Removed" in result.output
    assert not (tmp_path / "dast" / ".auth" / "user.json").exists()

    result = runner.invoke(cli.main, ["clear"])
    assert "No stored authentication to remove" in result.output


def test_zap_unavailable_exits_3(monkeypatch):
    async def down(config, mode, wait=False):
        raise ToolUnavailableError("ZAP is not accessible at http://localhost:8080")

    monkeypatch.setattr(cli, "run_zap_mode", down)
    result = CliRunner().invoke(cli.main, ["zap", "status"])
    assert result.exit_code == 3


def test_zap_passes_mode_and_wait(monkeypatch, tmp_path):
    seen = {}

    async def fake(config, mode, wait=False):
        seen.update(mode=mode, wait=wait, fmt=config.zap_format)
        return tmp_path / "zap-report.xml"

    monkeypatch.setattr(cli, "run_zap_mode", fake)
    result = CliRunner().invoke(cli.main, ["zap", "baseline", "--wait", "-f", "xml"])
    assert result.exit_code == 0
    assert seen == {"mode": "baseline", "wait": True, "fmt": "xml"}
    assert "Report: " in result.output


def test_sast_semgrep_summary(monkeypatch, tmp_path):
    report = tmp_path / "semgrep.json"
    report.write_text(json.dumps({"results": [
        {"check_id": "eval-detected", "path": "app.py", "start": {"line": 3}, "extra": {"severity": "ERROR"}},
    ]}))
    monkeypatch.setattr(cli, "run_sast", lambda config: report)

    result = CliRunner().invoke(cli.main, ["sast", "--tool", "semgrep"])
    assert result.exit_code == 0
    assert "High:     1" in result.output
    assert f"Report: {report}" in result.output


def test_sast_empty_semgrep_output_exits_3(monkeypatch, tmp_path):
    report = tmp_path / "semgrep.json"
    report.write_text("")
    monkeypatch.setattr(cli, "run_sast", lambda config: report)

    result = CliRunner().invoke(cli.main, ["sast", "--tool", "semgrep"])
    assert result.exit_code == 3
