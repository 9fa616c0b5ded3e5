"""
Path traversal probe.

Requests file-like parameters and path segments with traversal payloads
and looks for the content of well-known system files.
"""

import logging
import re

from dast_scanner.matching import first_match, rule_table
from dast_scanner.models import Finding, ProbeResponse, Severity
from dast_scanner.payloads import PATH_TRAVERSAL_PAYLOADS
from dast_scanner.probes.base import BROKEN_ACCESS, ProbeContext, with_param

logger = logging.getLogger(__name__)

NAME = "traversal"

TRAVERSAL_PARAM_URLS = [
    "/?file=",
    "/?path=",
    "/?page=",
    "/?template=",
    "/?include=",
    "/?load=",
    "/?read=",
    "/?doc=",
    "/?document=",
    "/?resource=",
    "/download?file=",
    "/static?path=",
    "/api/files?name=",
]

TRAVERSAL_ENDPOINTS = [
    "/api/files/",
    "/api/download/",
    "/api/documents/",
    "/files/",
    "/static/",
    "/uploads/",
]

SENSITIVE_FILE_RULES = rule_table(
    [
        re.compile(r"root:x:0:0:"),
        re.compile(r"daemon:x:1:1:"),
        re.compile(r"nobody:x:"),
        re.compile(r"\[boot loader\]", re.IGNORECASE),
        re.compile(r"\[operating systems\]", re.IGNORECASE),
        re.compile(r"<\?xml", re.IGNORECASE),
        re.compile(r"<configuration>", re.IGNORECASE),
        re.compile(r"<connectionStrings>", re.IGNORECASE),
        re.compile(r"DEBUG", re.IGNORECASE),
        re.compile(r"LOG"),
    ],
    title="Path Traversal Vulnerability",
    severity=Severity.CRITICAL,
    description="Sensitive file content accessible via path traversal",
    cwe="CWE-22",
    owasp=BROKEN_ACCESS,
    recommendation="Validate file paths against a whitelist and use safe file access methods",
)

SYSTEM_FILE_MARKERS = ("root:", "[boot loader]")


def evaluate_param(test_url: str, payload: str, response: ProbeResponse) -> Finding | None:
    """At most one finding per request: the first sensitive pattern wins."""
    if response.status != 200:
        return None
    rule = first_match(SENSITIVE_FILE_RULES, response.body)
    if rule is None:
        return None
    return rule.to_finding(
        test_url,
        payload=payload,
        evidence=f"Sensitive content pattern matched: {rule.source}",
    )


def evaluate_endpoint(test_url: str, payload: str, response: ProbeResponse) -> Finding | None:
    if response.status != 200:
        return None
    if not any(marker in response.body for marker in SYSTEM_FILE_MARKERS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Path Traversal in API Endpoint",
        description="Path traversal allows access to sensitive system files",
        url=test_url,
        payload=payload,
        cwe="CWE-22",
        owasp=BROKEN_ACCESS,
        recommendation="Sanitize file paths and restrict file access to approved directories",
    )


async def run(ctx: ProbeContext) -> None:
    for base in TRAVERSAL_PARAM_URLS:
        for payload in PATH_TRAVERSAL_PAYLOADS[:5]:
            test_url = with_param(base, payload)
            response = await ctx.http.get(test_url, timeout=10)
            if response is None:
                continue
            finding = evaluate_param(test_url, payload, response)
            if finding:
                ctx.report([finding])

    for endpoint in TRAVERSAL_ENDPOINTS:
        for payload in PATH_TRAVERSAL_PAYLOADS[:3]:
            test_url = endpoint + payload
            response = await ctx.http.get(test_url, timeout=10)
            if response is None:
                continue
            finding = evaluate_endpoint(test_url, payload, response)
            if finding:
                ctx.report([finding])
