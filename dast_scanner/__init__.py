"""
DAST Scanner

Black-box security probes for web applications, driven through a real
browser (Playwright) and raw HTTP (httpx), with OWASP ZAP and SAST
orchestration on the side.

Probe categories:
- Injection (XSS, SQLi, command, NoSQL, XXE, deserialization)
- Access control (auth, IDOR, path traversal, HTTP methods, uploads)
- Misconfiguration (security headers, cookies, CORS, caching)
- Sensitive data exposure, CSRF, open redirect, SSRF, JWT
- Business logic (price/quantity tampering, race conditions)

Features:
- Reuses a manually captured browser session (60 minute lifetime)
- One reporter per scan with a severity summary
- HTML / JSON reports
- Exit codes for CI/CD
"""

from dast_scanner.models import (
    Finding,
    Severity,
    ProbeResponse,
    PageSnapshot,
    CookieInfo,
    FormInfo,
    AuthState,
    AuthStatus,
    ScanOutput,
)
from dast_scanner.reporter import DASTReporter
from dast_scanner.config import ScanConfig
from dast_scanner.errors import (
    ScannerError,
    ConfigError,
    AuthStateError,
    ToolUnavailableError,
)
from dast_scanner.auth import AuthGate, capture_auth_state
from dast_scanner.executor import ScanRunner
from dast_scanner.probes import PROBES, PROBE_NAMES
from dast_scanner.report import write_reports
from dast_scanner.zap import ZapClient
from dast_scanner.sast import run_sast, load_semgrep_findings

__all__ = [
    # Models
    "Finding",
    "Severity",
    "ProbeResponse",
    "PageSnapshot",
    "CookieInfo",
    "FormInfo",
    "AuthState",
    "AuthStatus",
    "ScanOutput",
    # Core
    "DASTReporter",
    "ScanConfig",
    "ScanRunner",
    "AuthGate",
    "capture_auth_state",
    "PROBES",
    "PROBE_NAMES",
    # Errors
    "ScannerError",
    "ConfigError",
    "AuthStateError",
    "ToolUnavailableError",
    # External tools and reports
    "ZapClient",
    "run_sast",
    "load_semgrep_findings",
    "write_reports",
]

__version__ = "0.1.0"
