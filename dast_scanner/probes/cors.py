"""
CORS misconfiguration probe.
"""

import logging

from dast_scanner.models import Finding, ProbeResponse, Severity
from dast_scanner.probes.base import BROKEN_ACCESS, ProbeContext

logger = logging.getLogger(__name__)

NAME = "cors"

TEST_ORIGINS = [
    "https://evil.com",
    "https://attacker.com",
    "https://null",
    "null",
]

SENSITIVE_ENDPOINTS = [
    "/",
    "/api",
    "/api/user",
    "/api/users",
    "/api/session",
    "/api/account",
]

PREFLIGHT_ENDPOINTS = ["/api", "/api/user", "/api/data"]
DANGEROUS_METHODS = {"PUT", "DELETE", "PATCH"}
EVIL_ORIGIN = "https://evil.com"


def check_cors(endpoint: str, origin: str, response: ProbeResponse) -> list[Finding]:
    """Inspect the CORS headers returned for one request with ``Origin: origin``."""
    findings = []
    acao = response.header("access-control-allow-origin")
    acac = response.header("access-control-allow-credentials")

    if acao == "*":
        findings.append(Finding(
            severity=Severity.HIGH,
            title="Overly Permissive CORS",
            description="Access-Control-Allow-Origin header is set to *",
            url=endpoint,
            evidence="Access-Control-Allow-Origin: *",
            cwe="CWE-942",
            owasp=BROKEN_ACCESS,
            recommendation="Restrict CORS to specific trusted origins",
        ))

    if acao == origin and acac == "true":
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="CORS Allows Arbitrary Origin with Credentials",
            description="Server reflects arbitrary origin with credentials enabled",
            url=endpoint,
            evidence=f"Origin: {origin}, ACAO: {acao}, ACAC: {acac}",
            cwe="CWE-942",
            owasp=BROKEN_ACCESS,
            recommendation="Validate origin against a whitelist and avoid reflecting arbitrary origins",
        ))

    if acao == "null":
        findings.append(Finding(
            severity=Severity.HIGH,
            title="CORS Allows Null Origin",
            description="Server allows null origin which can be exploited via sandboxed iframes",
            url=endpoint,
            evidence="Access-Control-Allow-Origin: null",
            cwe="CWE-942",
            owasp=BROKEN_ACCESS,
            recommendation="Block null origin in CORS policy",
        ))
    return findings


def check_preflight(endpoint: str, response: ProbeResponse) -> Finding | None:
    acao = response.header("access-control-allow-origin")
    if acao not in ("*", EVIL_ORIGIN):
        return None
    acam = response.header("access-control-allow-methods") or ""
    methods = [m.strip().upper() for m in acam.split(",") if m.strip()]
    if not DANGEROUS_METHODS.intersection(methods):
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="CORS Exposes Dangerous Methods",
        description="Preflight response exposes dangerous HTTP methods",
        url=endpoint,
        evidence=f"Methods allowed: {acam}",
        cwe="CWE-942",
        owasp=BROKEN_ACCESS,
        recommendation="Only expose necessary HTTP methods in CORS policy",
    )


async def run(ctx: ProbeContext) -> None:
    for endpoint in SENSITIVE_ENDPOINTS:
        for origin in TEST_ORIGINS:
            response = await ctx.http.get(endpoint, headers={"Origin": origin})
            if response is None:
                continue
            ctx.report(check_cors(endpoint, origin, response))

    for endpoint in PREFLIGHT_ENDPOINTS:
        response = await ctx.http.send(
            "OPTIONS",
            endpoint,
            headers={
                "Origin": EVIL_ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type, Authorization",
            },
        )
        if response is None:
            continue
        finding = check_preflight(endpoint, response)
        if finding:
            ctx.report([finding])
