"""
Scanner configuration.

Values come from keyword arguments, falling back to environment variables,
then to a ``.env`` file in the working directory, then to defaults.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from dast_scanner.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "http://localhost:3000"
DEFAULT_AUTH_FILE = "dast/.auth/user.json"
DEFAULT_SONAR_EXCLUSIONS = "**/node_modules/**,**/dist/**,**/build/**,**/.git/**,**/vendor/**"
DEFAULT_SEMGREP_RULES = "p/ci,p/security-audit,p/owasp-top-ten"

REPORT_FORMATS = ("html", "json", "both")
ZAP_FORMATS = ("html", "xml", "json", "md")
SAST_TOOLS = ("sonarqube", "semgrep")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


class ScanConfig:
    """Configuration for a scan run and the external tools."""

    def __init__(
        self,
        target: str = DEFAULT_TARGET,
        headless: bool = True,
        skip_auth: bool = False,
        auth_file: Path | str = DEFAULT_AUTH_FILE,
        report_dir: Path | str = "reports/dast",
        report_format: str = "html",
        timeout: float = 10.0,
        delay: float = 0.0,
        zap_api_url: str = "http://localhost:8080",
        zap_format: str = "html",
        zap_report_dir: Path | str = "./reports/zap",
        zap_openapi_url: str | None = None,
        sast_tool: str = "sonarqube",
        source_path: Path | str = "./source_code",
        sonarqube_token: str | None = None,
        sonarqube_url: str = "http://localhost:9000",
        sonar_project_key: str = "my-project",
        sonar_exclusions: str = DEFAULT_SONAR_EXCLUSIONS,
        semgrep_rules: str = DEFAULT_SEMGREP_RULES,
    ):
        self.target = target.rstrip("/")
        self.headless = headless
        self.skip_auth = skip_auth
        self.auth_file = Path(auth_file)
        self.report_dir = Path(report_dir)
        self.report_format = report_format
        self.timeout = timeout
        self.delay = delay
        self.zap_api_url = zap_api_url.rstrip("/")
        self.zap_format = zap_format
        self.zap_report_dir = Path(zap_report_dir)
        self.zap_openapi_url = zap_openapi_url or None
        self.sast_tool = sast_tool
        self.source_path = Path(source_path)
        self.sonarqube_token = sonarqube_token or None
        self.sonarqube_url = sonarqube_url
        self.sonar_project_key = sonar_project_key
        self.sonar_exclusions = sonar_exclusions
        self.semgrep_rules = semgrep_rules
        self.validate()

    def validate(self) -> None:
        if self.report_format not in REPORT_FORMATS:
            raise ConfigError(
                f"Unsupported report format: {self.report_format}",
                hint=f"Use one of: {', '.join(REPORT_FORMATS)}",
            )
        if self.zap_format not in ZAP_FORMATS:
            raise ConfigError(
                f"Unsupported ZAP report format: {self.zap_format}",
                hint=f"Use one of: {', '.join(ZAP_FORMATS)}",
            )
        if self.sast_tool not in SAST_TOOLS:
            raise ConfigError(
                f"Unknown SAST tool: {self.sast_tool}",
                hint=f"Set SAST_TOOL to one of: {', '.join(SAST_TOOLS)}",
            )
        if self.timeout <= 0:
            raise ConfigError("REQUEST_TIMEOUT must be positive")

    @classmethod
    def from_env(cls, env_file: Path | str | None = None, **overrides) -> "ScanConfig":
        """
        Build a config from the environment.

        A ``.env`` file is loaded first without overriding variables that are
        already set. Keyword overrides whose value is not None win over both.
        """
        load_dotenv(dotenv_path=env_file or ".env", override=False)

        values = dict(
            target=os.getenv("TARGET_ENDPOINT", DEFAULT_TARGET),
            headless=_env_bool("HEADLESS", True),
            skip_auth=_env_bool("SKIP_AUTH", False),
            auth_file=os.getenv("AUTH_FILE", DEFAULT_AUTH_FILE),
            report_dir=os.getenv("REPORT_DIR", "reports/dast"),
            report_format=os.getenv("REPORT_FORMAT", "html").lower(),
            timeout=_env_float("REQUEST_TIMEOUT", 10.0),
            delay=_env_float("SCAN_DELAY", 0.0),
            zap_api_url=os.getenv("ZAP_API_URL", "http://localhost:8080"),
            zap_format=os.getenv("ZAP_FORMAT", "html").lower(),
            zap_report_dir=os.getenv("ZAP_REPORT_DIR", "./reports/zap"),
            zap_openapi_url=os.getenv("ZAP_OPENAPI_URL"),
            sast_tool=os.getenv("SAST_TOOL", "sonarqube").lower(),
            source_path=os.getenv("SOURCE_CODE_PATH", "./source_code"),
            sonarqube_token=os.getenv("SONARQUBE_TOKEN"),
            sonarqube_url=os.getenv("SONARQUBE_URL", "http://localhost:9000"),
            sonar_project_key=os.getenv("SONAR_PROJECT_KEY", "my-project"),
            sonar_exclusions=os.getenv("SONAR_EXCLUSIONS", DEFAULT_SONAR_EXCLUSIONS),
            semgrep_rules=os.getenv("SEMGREP_RULES", DEFAULT_SEMGREP_RULES),
        )
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
