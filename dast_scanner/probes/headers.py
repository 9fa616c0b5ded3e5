"""
Security headers and cookie flags probe.
"""

import logging

from dast_scanner.matching import DetectionRule
from dast_scanner.models import CookieInfo, Finding, ProbeResponse, Severity
from dast_scanner.probes.base import BROKEN_ACCESS, CRYPTO_FAILURES, MISCONFIG, ProbeContext

logger = logging.getLogger(__name__)

NAME = "headers"


def _missing(name: str, severity: Severity, cwe: str, owasp: str, recommendation: str) -> DetectionRule:
    return DetectionRule(
        name=name,
        pattern=name,
        title=f"Missing Security Header: {name}",
        severity=severity,
        description=f"The {name} header is not set on the response",
        cwe=cwe,
        owasp=owasp,
        recommendation=recommendation,
    )


SECURITY_HEADER_RULES = [
    _missing("x-frame-options", Severity.MEDIUM, "CWE-1021", MISCONFIG,
             "Add X-Frame-Options: DENY or SAMEORIGIN to prevent clickjacking"),
    _missing("x-content-type-options", Severity.MEDIUM, "CWE-116", MISCONFIG,
             "Add X-Content-Type-Options: nosniff to prevent MIME sniffing"),
    _missing("strict-transport-security", Severity.HIGH, "CWE-319", CRYPTO_FAILURES,
             "Add Strict-Transport-Security header (e.g., max-age=31536000; includeSubDomains)"),
    _missing("content-security-policy", Severity.HIGH, "CWE-1021", MISCONFIG,
             "Add Content-Security-Policy header with restrictive policies"),
    _missing("x-xss-protection", Severity.LOW, "CWE-79", MISCONFIG,
             "Add X-XSS-Protection: 1; mode=block (deprecated but useful for older browsers)"),
    _missing("referrer-policy", Severity.LOW, "CWE-200", BROKEN_ACCESS,
             "Add Referrer-Policy header (e.g., strict-origin-when-cross-origin)"),
    _missing("permissions-policy", Severity.LOW, "CWE-1021", MISCONFIG,
             "Add Permissions-Policy header to restrict browser features"),
    _missing("cross-origin-opener-policy", Severity.MEDIUM, "CWE-1021", MISCONFIG,
             "Add Cross-Origin-Opener-Policy header (e.g., same-origin)"),
    _missing("cross-origin-resource-policy", Severity.MEDIUM, "CWE-1021", MISCONFIG,
             "Add Cross-Origin-Resource-Policy header (e.g., same-origin)"),
]

INFO_DISCLOSURE_HEADERS = ["server", "x-powered-by", "x-aspnet-version", "x-aspnetmvc-version"]

SENSITIVE_COOKIE_MARKERS = ("session", "token", "auth")


def check_security_headers(response: ProbeResponse, url: str = "/") -> list[Finding]:
    return [
        rule.to_finding(url)
        for rule in SECURITY_HEADER_RULES
        if not response.header(rule.name)
    ]


def check_info_disclosure(response: ProbeResponse, url: str = "/") -> list[Finding]:
    findings = []
    for name in INFO_DISCLOSURE_HEADERS:
        value = response.header(name)
        if not value:
            continue
        findings.append(Finding(
            severity=Severity.LOW,
            title=f"Information Disclosure: {name}",
            description=f"The {name} header reveals technology information: {value}",
            url=url,
            evidence=f"{name}: {value}",
            cwe="CWE-200",
            owasp=BROKEN_ACCESS,
            recommendation=f"Remove or obfuscate the {name} header to avoid revealing technology stack",
        ))
    return findings


def cookie_issues(cookie: CookieInfo, page_url: str) -> list[str]:
    """Missing protections for one cookie, in a fixed order."""
    issues = []
    if not cookie.secure and page_url.startswith("https://"):
        issues.append("Missing Secure flag")
    name = cookie.name.lower()
    if not cookie.http_only and any(marker in name for marker in SENSITIVE_COOKIE_MARKERS):
        issues.append("Missing HttpOnly flag on sensitive cookie")
    if not cookie.same_site or cookie.same_site == "None":
        issues.append("Missing or lax SameSite attribute")
    return issues


def check_cookie_flags(cookies: list[CookieInfo], page_url: str) -> list[Finding]:
    """One finding per cookie listing every missing protection."""
    findings = []
    for cookie in cookies:
        issues = cookie_issues(cookie, page_url)
        if not issues:
            continue
        findings.append(Finding(
            severity=Severity.MEDIUM,
            title=f"Insecure Cookie: {cookie.name}",
            description=f"Cookie has security issues: {', '.join(issues)}",
            url=page_url,
            evidence="; ".join(issues),
            cwe="CWE-614",
            owasp=MISCONFIG,
            recommendation="Set Secure, HttpOnly, and SameSite=Strict/Lax flags on cookies",
        ))
    return findings


async def run(ctx: ProbeContext) -> None:
    response = await ctx.http.get("/")
    if response is not None:
        ctx.report(check_security_headers(response))
        ctx.report(check_info_disclosure(response))

    browser = ctx.require_browser(NAME)
    if browser is None:
        return
    page = await browser.visit("/")
    if page is not None:
        ctx.report(check_cookie_flags(page.cookies, page.url))
