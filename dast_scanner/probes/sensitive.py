"""
Sensitive data exposure probe.

Scans the rendered page and its scripts for secrets, personal data,
debug output and API endpoint references.
"""

import logging
import re

from dast_scanner.matching import DetectionRule, all_matches, rule_table
from dast_scanner.models import Finding, Severity
from dast_scanner.probes.base import BROKEN_ACCESS, CRYPTO_FAILURES, MISCONFIG, ProbeContext

logger = logging.getLogger(__name__)

NAME = "sensitive"

_EXPOSURE_RECOMMENDATION = "Remove sensitive data from client-side code and implement proper data protection"


def _exposure(name: str, pattern: str, severity: Severity, flags: int = 0) -> DetectionRule:
    return DetectionRule(
        name=name,
        pattern=re.compile(pattern, flags),
        title=f"Sensitive Data Exposed: {name}",
        severity=severity,
        description=f"{name} pattern found in page source",
        cwe="CWE-200",
        owasp=CRYPTO_FAILURES,
        recommendation=_EXPOSURE_RECOMMENDATION,
    )


SENSITIVE_DATA_RULES = [
    _exposure("Credit Card Number", r"\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b", Severity.CRITICAL),
    _exposure("SSN", r"\b\d{3}[- ]?\d{2}[- ]?\d{4}\b", Severity.CRITICAL),
    _exposure("Password in Code", r"password\s*[=:]\s*['\"][^'\"]+['\"]", Severity.CRITICAL, re.I),
    _exposure("API Key", r"api[_-]?key\s*[=:]\s*['\"][^'\"]+['\"]", Severity.HIGH, re.I),
    _exposure("Secret Key", r"secret[_-]?key\s*[=:]\s*['\"][^'\"]+['\"]", Severity.HIGH, re.I),
    _exposure("Private Key", r"private[_-]?key\s*[=:]\s*['\"][^'\"]+['\"]", Severity.CRITICAL, re.I),
    _exposure("PEM Private Key", r"-----BEGIN\s+(?:RSA\s+)?PRIVATE\s+KEY-----", Severity.CRITICAL),
    _exposure("AWS Access Key",
              r"aws[_-]?access[_-]?key[_-]?id\s*[=:]\s*['\"][A-Z0-9]{20}['\"]", Severity.CRITICAL, re.I),
    _exposure("AWS Secret Key",
              r"aws[_-]?secret[_-]?access[_-]?key\s*[=:]\s*['\"][A-Za-z0-9/+=]{40}['\"]",
              Severity.CRITICAL, re.I),
    _exposure("Email Address", r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", Severity.LOW),
    _exposure("Phone Number", r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b", Severity.INFO),
]

SCRIPT_SECRET_RULES = rule_table(
    [
        r"password\s*[=:]\s*['\"][^'\"]+['\"]",
        r"api[_-]?key\s*[=:]\s*['\"][^'\"]+['\"]",
        r"secret\s*[=:]\s*['\"][^'\"]+['\"]",
        r"token\s*[=:]\s*['\"][^'\"]+['\"]",
    ],
    flags=re.I,
    title="Sensitive Data in JavaScript",
    severity=Severity.HIGH,
    description="JavaScript file contains potentially sensitive data",
    cwe="CWE-200",
    owasp=CRYPTO_FAILURES,
    recommendation="Remove sensitive data from JavaScript files",
)


def _debug(name: str, pattern: str) -> DetectionRule:
    return DetectionRule(
        name=name,
        pattern=re.compile(pattern, re.I),
        title="Debug Information Exposed",
        severity=Severity.MEDIUM,
        description=f"{name} information found in page",
        cwe="CWE-200",
        owasp=MISCONFIG,
        recommendation="Disable debug mode and error detail exposure in production",
    )


DEBUG_RULES = [
    _debug("Stack Trace", r"stack\s*trace"),
    _debug("Debug Mode", r"debug\s*mode"),
    _debug("Exception Details", r"exception\s*details"),
    _debug("Error Report", r"error\s*report"),
    _debug("SQL Error", r"sql\s*error"),
    _debug("Server Error", r"server\s*error\s*in\s*['\"]/application['\"]"),
    _debug("PHP Warning", r"warning:\s*\w+\(\)"),
    _debug("PHP Notice", r"notice:\s*undefined"),
]

API_ENDPOINT_PATTERNS = [
    re.compile(r"[\"']/api/v?\d*/?\w+[\"']"),
    re.compile(r"[\"']/graphql[\"']"),
    re.compile(r"[\"']/rest/\w+[\"']"),
]


def check_page_source(page_url: str, content: str) -> list[Finding]:
    findings = []
    for rule in all_matches(SENSITIVE_DATA_RULES, content):
        count = len(rule.pattern.findall(content))
        findings.append(rule.to_finding(page_url, evidence=f"Found {count} instance(s)"))
    return findings


def check_script(script_url: str, content: str) -> list[Finding]:
    """One finding per secret pattern present in the script."""
    return [
        rule.to_finding(script_url, evidence=f"Pattern found: {rule.source}")
        for rule in all_matches(SCRIPT_SECRET_RULES, content)
    ]


def check_debug_info(page_url: str, content: str) -> list[Finding]:
    return [
        rule.to_finding(page_url, evidence=f"Pattern: {rule.name}")
        for rule in all_matches(DEBUG_RULES, content)
    ]


def check_api_endpoints(page_url: str, content: str) -> list[Finding]:
    findings = []
    for pattern in API_ENDPOINT_PATTERNS:
        endpoints = list(dict.fromkeys(pattern.findall(content)))[:5]
        if not endpoints:
            continue
        findings.append(Finding(
            severity=Severity.INFO,
            title="API Endpoints Discovered",
            description="Potential API endpoints found in page source",
            url=page_url,
            evidence=", ".join(endpoints),
            owasp=BROKEN_ACCESS,
            recommendation="Review exposed API endpoints for proper authentication and authorization",
        ))
    return findings


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is None:
        return

    page = await browser.visit("/")
    if page is None:
        return

    ctx.report(check_page_source(page.url, page.content))

    for script_url in page.script_sources:
        response = await ctx.http.get(script_url)
        if response is None:
            continue
        ctx.report(check_script(script_url, response.body))

    ctx.report(check_debug_info(page.url, page.content))
    ctx.report(check_api_endpoints(page.url, page.content))
