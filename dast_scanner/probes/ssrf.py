"""
Server-Side Request Forgery probe.

Blind SSRF is only inferred from the endpoint accepting an external URL;
there is no out-of-band callback listener.
"""

import json
import logging

from dast_scanner.matching import first_indicator
from dast_scanner.models import Finding, PageSnapshot, ProbeResponse, Severity
from dast_scanner.probes.base import SSRF, ProbeContext, with_param

logger = logging.getLogger(__name__)

NAME = "ssrf"

SSRF_PAYLOADS = [
    "http://localhost",
    "http://127.0.0.1",
    "http://0.0.0.0",
    "http://[::1]",
    "http://[::]",
    "http://localhost:22",
    "http://localhost:3306",
    "http://localhost:5432",
    "http://localhost:6379",
    "http://localhost:8080",
    "http://169.254.169.254",
    "http://169.254.169.254/latest/meta-data/",
    "http://169.254.169.254/latest/meta-data/iam/security-credentials/",
    "http://metadata.google.internal",
    "http://metadata.google.internal/computeMetadata/v1/",
    "file:///etc/passwd",
    "file:///C:/windows/system32/drivers/etc/hosts",
    "dict://localhost:11211/",
    "ftp://localhost",
    "gopher://localhost",
]

SSRF_PARAMS = [
    "url", "uri", "link", "href", "redirect", "next", "return", "callback",
    "target", "path", "src", "dest", "destination", "feed", "image", "webhook",
]

# Content of internal resources
SSRF_INDICATORS = [
    "root:x:",
    "daemon:x:",
    "bin:x:",
    "Windows IP Configuration",
    "ami-id",
    "instance-id",
    "computeMetadata",
    "SSH-2.0",
    "MySQL",
    "PostgreSQL",
    "redis_version",
]

CONNECTION_ERROR_INDICATORS = [
    "connection refused",
    "connection timed out",
    "no connection could be made",
    "unable to connect",
    "ECONNREFUSED",
    "ETIMEDOUT",
]

BLIND_SSRF_PAYLOADS = [
    "http://ssrf-test.interactsh.com",
    "http://ssrf-test.burpcollaborator.net",
]

BLIND_SSRF_ENDPOINTS = ["/api/fetch", "/api/webhook", "/api/preview", "/api/proxy"]

CLIENT_IP_HEADERS = [
    "X-Forwarded-For",
    "X-Real-IP",
    "X-Originating-IP",
    "X-Remote-IP",
    "X-Remote-Addr",
    "X-ProxyUser-Ip",
    "Client-IP",
    "True-Client-IP",
]

INTERNAL_MARKERS = ("admin", "internal")


def evaluate_param(param: str, test_url: str, payload: str, page: PageSnapshot) -> list[Finding]:
    findings = []
    indicator = first_indicator(SSRF_INDICATORS, page.body_text, page.content)
    if indicator:
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="SSRF Vulnerability Confirmed",
            description=f'Server fetched internal resource via "{param}" parameter',
            url=test_url,
            payload=payload,
            evidence=f"Found: {indicator}",
            cwe="CWE-918",
            owasp=SSRF,
            recommendation="Implement strict URL validation, use allowlists, and disable unnecessary URL schemas",
        ))

    error = first_indicator(CONNECTION_ERROR_INDICATORS, page.body_text, case_insensitive=True)
    if error:
        findings.append(Finding(
            severity=Severity.HIGH,
            title="Potential SSRF Vulnerability",
            description=f'Server attempted connection to internal resource via "{param}"',
            url=test_url,
            payload=payload,
            evidence=f"Connection error: {error}",
            cwe="CWE-918",
            owasp=SSRF,
            recommendation="Implement strict URL validation and use allowlists for allowed destinations",
        ))
    return findings


def evaluate_blind(endpoint: str, payload: str, response: ProbeResponse) -> Finding | None:
    if response.status != 200:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="Potential Blind SSRF",
        description=f'Endpoint "{endpoint}" accepts external URLs without visible feedback',
        url=endpoint,
        payload=payload,
        cwe="CWE-918",
        owasp=SSRF,
        recommendation="Validate URLs against an allowlist and restrict internal network access",
    )


def evaluate_header(header: str, response: ProbeResponse, url: str = "/api/users") -> Finding | None:
    if not any(marker in response.body for marker in INTERNAL_MARKERS):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="SSRF via HTTP Headers",
        description="Application may be using client IP headers for internal routing",
        url=url,
        evidence=f"Headers: {json.dumps({header: '127.0.0.1'})}",
        cwe="CWE-918",
        owasp=SSRF,
        recommendation="Do not trust client-provided IP headers for internal decisions",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is not None:
        for param in SSRF_PARAMS:
            for payload in SSRF_PAYLOADS:
                test_url = with_param(f"/?{param}=", payload)
                page = await browser.visit(test_url)
                if page is None:
                    continue
                ctx.report(evaluate_param(param, test_url, payload, page))

    for endpoint in BLIND_SSRF_ENDPOINTS:
        for payload in BLIND_SSRF_PAYLOADS:
            response = await ctx.http.post(endpoint, json_body={"url": payload}, timeout=15)
            if response is None:
                continue
            finding = evaluate_blind(endpoint, payload, response)
            if finding:
                ctx.report([finding])

    for header in CLIENT_IP_HEADERS:
        response = await ctx.http.get("/api/users", headers={header: "127.0.0.1"})
        if response is None:
            continue
        finding = evaluate_header(header, response)
        if finding:
            ctx.report([finding])
