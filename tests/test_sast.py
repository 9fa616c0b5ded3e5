"""tests/test_sast.py — SonarQube / Semgrep container commands and Semgrep results"""
import json
import subprocess

import pytest

from dast_scanner.config import ScanConfig
from dast_scanner.errors import ConfigError, ToolUnavailableError
from dast_scanner.models import Severity
from dast_scanner.sast import (
    build_semgrep_command,
    build_sonarqube_command,
    load_semgrep_findings,
    run_sast,
)


@pytest.fixture()
def source(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "app.py").write_text("print('hello')\n")
    return src


class FakeRunner:
    def __init__(self, stdout="", error=None):
        self.stdout = stdout
        self.error = error
        self.commands = []

    def __call__(self, command, **kwargs):
        self.commands.append(command)
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(command, 0, stdout=self.stdout, stderr="")


def test_sonarqube_command_reaches_host(source):
    config = ScanConfig(sonarqube_token="squ_abc", sonarqube_url="http://localhost:9000", source_path=source)
    command = build_sonarqube_command(config, source)
    assert command[:3] == ["docker", "run", "--rm"]
    assert "-Dsonar.host.url=http://host.docker.internal:9000" in command
    assert "-Dsonar.token=squ_abc" in command
    assert f"{source.resolve()}:/usr/src" in command


def test_semgrep_command_one_config_per_rule(source):
    config = ScanConfig(sast_tool="semgrep", semgrep_rules="p/owasp-top-ten, p/secrets,", source_path=source)
    command = build_semgrep_command(config, source)
    configs = [command[i + 1] for i, arg in enumerate(command) if arg == "--config"]
    assert configs == ["auto", "p/owasp-top-ten", "p/secrets"]
    assert command[-1] == "--json"


def test_sonarqube_requires_token(source):
    config = ScanConfig(source_path=source)
    with pytest.raises(ConfigError) as exc:
        run_sast(config, runner=FakeRunner())
    assert "SONARQUBE_TOKEN" in exc.value.message


def test_empty_source_directory(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    config = ScanConfig(sast_tool="semgrep", source_path=empty)
    with pytest.raises(ConfigError):
        run_sast(config, runner=FakeRunner())
    with pytest.raises(ConfigError):
        run_sast(ScanConfig(sast_tool="semgrep", source_path=tmp_path / "missing"), runner=FakeRunner())


def test_sonarqube_run_returns_none(source):
    runner = FakeRunner()
    config = ScanConfig(sonarqube_token="squ_abc", source_path=source)
    assert run_sast(config, runner=runner) is None
    assert len(runner.commands) == 1


def test_semgrep_run_writes_report(source, tmp_path):
    runner = FakeRunner(stdout='{"results": []}')
    report = tmp_path / "scan-results" / "semgrep-report.json"
    config = ScanConfig(sast_tool="semgrep", source_path=source)
    assert run_sast(config, runner=runner, report_path=report) == report
    assert report.read_text() == '{"results": []}'


def test_docker_missing(source, tmp_path):
    config = ScanConfig(sast_tool="semgrep", source_path=source)
    with pytest.raises(ToolUnavailableError) as exc:
        run_sast(config, runner=FakeRunner(error=FileNotFoundError("docker")), report_path=tmp_path / "r.json")
    assert exc.value.exit_code == 3


def test_container_failure(source, tmp_path):
    error = subprocess.CalledProcessError(2, ["docker"], stderr="Cannot connect to the Docker daemon")
    config = ScanConfig(sast_tool="semgrep", source_path=source)
    with pytest.raises(ToolUnavailableError) as exc:
        run_sast(config, runner=FakeRunner(error=error), report_path=tmp_path / "r.json")
    assert exc.value.hint == "Cannot connect to the Docker daemon"


def test_load_semgrep_findings(tmp_path):
    results = {"results": [
        {
            "check_id": "python.lang.security.audit.eval-detected",
            "path": "app.py",
            "start": {"line": 12},
            "extra": {
                "severity": "ERROR",
                "message": "Detected use of eval()",
                "lines": "eval(user_input)",
                "metadata": {
                    "cwe": ["CWE-95: Improper Neutralization of Directives in Dynamically Evaluated Code"],
                    "owasp": ["A03:2021 - Injection"],
                },
            },
        },
        {"check_id": "generic.secrets.gitleaks", "path": "config.py", "extra": {"severity": "WARNING"}},
        {"check_id": "misc.note", "path": "README", "extra": {"severity": "INFO", "metadata": {"cwe": "CWE-1000"}}},
    ]}
    path = tmp_path / "semgrep.json"
    path.write_text(json.dumps(results))

    findings = load_semgrep_findings(path)

    assert [f.severity for f in findings] == [Severity.HIGH, Severity.MEDIUM, Severity.LOW]
    assert findings[0].url == "app.py:12"
    assert findings[0].cwe == "CWE-95"
    assert findings[0].owasp == "A03:2021 - Injection"
    assert findings[0].evidence == "eval(user_input)"
    assert findings[1].url == "config.py"
    assert findings[2].cwe == "CWE-1000"


@pytest.mark.parametrize("content", ["", "Semgrep crashed\n", "[]"])
def test_unreadable_semgrep_report(tmp_path, content):
    path = tmp_path / "semgrep.json"
    path.write_text(content)
    with pytest.raises(ToolUnavailableError) as exc:
        load_semgrep_findings(path)
    assert exc.value.hint == "Re-run Semgrep and check its output for errors"
