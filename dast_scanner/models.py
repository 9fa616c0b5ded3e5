"""
Data models for the DAST scanner.

A Finding is the unit every probe produces and the reporter collects.
The remaining models capture what a probe observed (HTTP responses,
rendered pages, cookies, forms) so detection logic can run on plain data.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from uuid_extensions import uuid7str


class Severity(str, Enum):
    """Vulnerability severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Ordinal rank, critical highest."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}

# Summary / report order
SEVERITY_ORDER = [
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
    Severity.INFO,
]


class Finding(BaseModel):
    """
    One discovered security issue.

    Findings are immutable: once a probe reports one it is never changed.
    """

    model_config = ConfigDict(frozen=True)

    severity: Severity
    title: str
    description: str
    url: str = Field(description="Endpoint or page where the issue was detected")
    payload: str | None = Field(default=None, description="Input that triggered the issue")
    evidence: str | None = Field(default=None, description="What was observed")
    cwe: str | None = Field(default=None, description="e.g. 'CWE-79'")
    owasp: str | None = Field(default=None, description="e.g. 'A03:2021 - Injection'")
    recommendation: str = ""


# ============================================================================
# Captured responses
# ============================================================================

class ProbeResponse(BaseModel):
    """What an HTTP probe saw. Header names are lower-cased."""
    url: str
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    elapsed_ms: float = 0.0

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)


class CookieInfo(BaseModel):
    """A browser cookie with its security attributes."""
    name: str
    value: str = ""
    domain: str = ""
    path: str = "/"
    secure: bool = False
    http_only: bool = False
    same_site: str | None = None

    @classmethod
    def from_browser(cls, cookie: dict[str, Any]) -> "CookieInfo":
        """Build from a Playwright cookie dict (camelCase keys)."""
        return cls(
            name=cookie.get("name", ""),
            value=cookie.get("value", ""),
            domain=cookie.get("domain", ""),
            path=cookie.get("path", "/"),
            secure=bool(cookie.get("secure", False)),
            http_only=bool(cookie.get("httpOnly", False)),
            same_site=cookie.get("sameSite"),
        )


class FormInfo(BaseModel):
    """A form found on a rendered page."""
    action: str = ""
    method: str = "get"
    enctype: str = ""
    element_id: str = ""
    inputs: list[str] = Field(default_factory=list, description="Names of text-like inputs")
    hidden_inputs: list[str] = Field(default_factory=list, description="Names of hidden inputs")


class PageSnapshot(BaseModel):
    """State of a page after a browser navigation or form submission."""
    url: str
    status: int | None = None
    content: str = ""
    body_text: str = ""
    cookies: list[CookieInfo] = Field(default_factory=list)
    local_storage: dict[str, str] = Field(default_factory=dict)
    forms: list[FormInfo] = Field(default_factory=list)
    script_sources: list[str] = Field(default_factory=list)
    meta_refresh: str | None = None
    password_inputs: list[dict[str, str]] = Field(default_factory=list)
    xss_triggered: bool = False


# ============================================================================
# Authentication state
# ============================================================================

class AuthState(str, Enum):
    """Freshness of the stored browser authentication snapshot."""
    ABSENT = "absent"
    FRESH = "fresh"
    EXPIRED = "expired"


class AuthStatus(BaseModel):
    state: AuthState
    path: str
    age_seconds: float | None = None

    @property
    def age_minutes(self) -> float | None:
        if self.age_seconds is None:
            return None
        return self.age_seconds / 60


# ============================================================================
# Output
# ============================================================================

class ScanOutput(BaseModel):
    """Serializable result of a scan run."""
    scan_id: str = Field(default_factory=uuid7str)
    target: str
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    summary: dict[str, int] = Field(default_factory=dict)
    findings: list[Finding] = Field(default_factory=list)
