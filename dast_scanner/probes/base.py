"""
Shared probe plumbing.

Every probe module exposes pure ``evaluate_*``/``check_*`` functions that
turn captured data into findings, plus an ``async run(ctx)`` driver that
issues the requests and hands findings to the reporter.
"""

import logging
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote

from dast_scanner.config import ScanConfig
from dast_scanner.models import Finding
from dast_scanner.reporter import DASTReporter
from dast_scanner.transport import BrowserSession, HttpProbe

logger = logging.getLogger(__name__)

INJECTION = "A03:2021 - Injection"
BROKEN_ACCESS = "A01:2021 - Broken Access Control"
MISCONFIG = "A05:2021 - Security Misconfiguration"
CRYPTO_FAILURES = "A02:2021 - Cryptographic Failures"
INSECURE_DESIGN = "A04:2021 - Insecure Design"
AUTH_FAILURES = "A07:2021 - Identification and Authentication Failures"
INTEGRITY_FAILURES = "A08:2021 - Software and Data Integrity Failures"
SSRF = "A10:2021 - Server-Side Request Forgery"

SUBMIT_SELECTOR = 'button[type="submit"], input[type="submit"]'


@dataclass
class ProbeContext:
    """What a probe gets to work with. One reporter per run."""
    http: HttpProbe
    reporter: DASTReporter
    config: ScanConfig
    browser: BrowserSession | None = None

    @property
    def base_url(self) -> str:
        return self.config.target

    def report(self, findings: Iterable[Finding]) -> int:
        """Hand findings to the reporter; returns how many were added."""
        count = 0
        for finding in findings:
            self.reporter.add_finding(finding)
            count += 1
        return count

    def require_browser(self, probe: str) -> BrowserSession | None:
        if self.browser is None:
            logger.warning(f"Skipping browser checks for {probe}: no browser session")
        return self.browser


def with_param(base: str, payload: str) -> str:
    """``/?q=`` + payload, URL-encoded like encodeURIComponent."""
    return base + quote(payload, safe="-_.!~*'()")


def field_selector(name: str) -> str:
    return f'[name="{name}"]'


def truncate(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
