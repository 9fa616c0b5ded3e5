"""
Static analysis through Dockerized SonarQube scanner or Semgrep.

Semgrep JSON output can be loaded back as Findings so both halves of the
pipeline share one report model.
"""

import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Callable

from dast_scanner.config import ScanConfig
from dast_scanner.errors import ConfigError, ToolUnavailableError
from dast_scanner.models import Finding, Severity

logger = logging.getLogger(__name__)

SONAR_IMAGE = "sonarsource/sonar-scanner-cli"
SEMGREP_IMAGE = "semgrep/semgrep"
SEMGREP_REPORT = Path("reports/scan-results/semgrep-report.json")

SEMGREP_SEVERITY = {
    "ERROR": Severity.HIGH,
    "WARNING": Severity.MEDIUM,
    "INFO": Severity.LOW,
}

CWE_ID = re.compile(r"CWE-\d+")

Runner = Callable[..., subprocess.CompletedProcess]


def docker_host_url(url: str) -> str:
    """Containers reach the host through host.docker.internal."""
    return url.replace("localhost", "host.docker.internal")


def build_sonarqube_command(config: ScanConfig, source_path: Path) -> list[str]:
    return [
        "docker", "run", "--rm",
        "--add-host=host.docker.internal:host-gateway",
        "-v", f"{source_path.resolve()}:/usr/src",
        SONAR_IMAGE,
        f"-Dsonar.projectKey={config.sonar_project_key}",
        "-Dsonar.sources=.",
        f"-Dsonar.host.url={docker_host_url(config.sonarqube_url)}",
        f"-Dsonar.token={config.sonarqube_token}",
        f"-Dsonar.exclusions={config.sonar_exclusions}",
    ]


def build_semgrep_command(config: ScanConfig, source_path: Path) -> list[str]:
    command = [
        "docker", "run", "--rm",
        "-v", f"{source_path.resolve()}:/src",
        SEMGREP_IMAGE,
        "semgrep", "--config", "auto",
    ]
    for rule in config.semgrep_rules.split(","):
        if rule.strip():
            command.extend(["--config", rule.strip()])
    command.append("--json")
    return command


def _check_source(source_path: Path) -> None:
    if not source_path.is_dir() or not any(source_path.iterdir()):
        raise ConfigError(
            f"No source code found in {source_path}",
            hint="Set SOURCE_CODE_PATH to a directory with the code to scan",
        )


def run_sast(
    config: ScanConfig,
    runner: Runner = subprocess.run,
    report_path: Path = SEMGREP_REPORT,
) -> Path | None:
    """
    Run the configured SAST tool.

    Returns the Semgrep report path, or None for SonarQube (results live on
    the SonarQube server).
    """
    source_path = config.source_path
    _check_source(source_path)
    logger.info(f"=== Running SAST with {config.sast_tool} ===")

    if config.sast_tool == "sonarqube":
        if not config.sonarqube_token:
            raise ConfigError(
                "SONARQUBE_TOKEN not set",
                hint=f"Generate token at {config.sonarqube_url}",
            )
        _run_container(build_sonarqube_command(config, source_path), runner)
        logger.info(f"✓ Scan complete. View results at {config.sonarqube_url}")
        return None

    result = _run_container(build_semgrep_command(config, source_path), runner)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(result.stdout or "")
    logger.info(f"✓ Results saved to {report_path}")
    return report_path


def _run_container(command: list[str], runner: Runner) -> subprocess.CompletedProcess:
    logger.debug(f"Running: {' '.join(command)}")
    try:
        return runner(command, check=True, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise ToolUnavailableError(
            "docker is not installed or not on PATH",
            hint="Install Docker to run SAST scanners",
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise ToolUnavailableError(
            f"SAST container exited with status {e.returncode}",
            hint=stderr[:500] or "Check that Docker is running",
        ) from e


def _first_cwe(metadata: dict) -> str | None:
    cwe = metadata.get("cwe", [])
    if isinstance(cwe, str):
        cwe = [cwe]
    for entry in cwe:
        match = CWE_ID.search(str(entry))
        if match:
            return match.group(0)
    return None


def _first_owasp(metadata: dict) -> str | None:
    owasp = metadata.get("owasp", [])
    if isinstance(owasp, str):
        owasp = [owasp]
    return str(owasp[0]) if owasp else None


def semgrep_to_finding(result: dict) -> Finding:
    extra = result.get("extra", {})
    metadata = extra.get("metadata", {})
    severity = SEMGREP_SEVERITY.get(str(extra.get("severity", "")).upper(), Severity.MEDIUM)
    line = result.get("start", {}).get("line")
    location = result.get("path", "")
    if line is not None:
        location = f"{location}:{line}"

    return Finding(
        severity=severity,
        title=result.get("check_id", "semgrep"),
        description=extra.get("message", ""),
        url=location,
        evidence=extra.get("lines") or None,
        cwe=_first_cwe(metadata),
        owasp=_first_owasp(metadata),
        recommendation=extra.get("fix") or "",
    )


def load_semgrep_findings(path: Path | str) -> list[Finding]:
    """
    Semgrep JSON results as Findings. Malformed results are skipped.

    Raises ToolUnavailableError when the report itself is not Semgrep JSON.
    """
    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ToolUnavailableError(
                f"Semgrep produced no valid JSON report at {path}: {e}",
                hint="Re-run Semgrep and check its output for errors",
            ) from e
    if not isinstance(data, dict):
        raise ToolUnavailableError(
            f"Unexpected Semgrep report format in {path}",
            hint="Re-run Semgrep and check its output for errors",
        )

    findings = []
    for result in data.get("results", []):
        try:
            findings.append(semgrep_to_finding(result))
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to convert Semgrep result: {e}")
    return findings
