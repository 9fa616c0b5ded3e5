"""
HTTP method security probe.
"""

import logging

from dast_scanner.models import Finding, ProbeResponse, Severity
from dast_scanner.probes.base import BROKEN_ACCESS, MISCONFIG, ProbeContext

logger = logging.getLogger(__name__)

NAME = "methods"

DANGEROUS_METHODS = ["PUT", "DELETE", "TRACE", "CONNECT"]
METHOD_TEST_PATHS = ["/", "/api", "/api/users", "/admin"]

OVERRIDE_HEADERS = ["X-HTTP-Method-Override", "X-HTTP-Method", "X-Method-Override", "_method"]
OVERRIDE_MARKERS = ("deleted", "removed")

PUT_UPLOADS = [
    ("/test.txt", "TEST FILE UPLOAD"),
    ("/shell.jsp", '<% out.println("VULNERABLE"); %>'),
    ("/test.php", '<?php echo "VULNERABLE"; ?>'),
]

CONSISTENCY_ENDPOINTS = ["/api/users", "/api/data", "/login", "/admin"]
EVIL_ORIGIN = "https://evil.com"


def evaluate_dangerous_method(path: str, method: str, response: ProbeResponse) -> Finding | None:
    if response.status not in (200, 204):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Dangerous HTTP Method Enabled",
        description=f"HTTP {method} method is enabled and may allow unauthorized actions",
        url=path,
        evidence=f"Method {method} returned status {response.status}",
        cwe="CWE-650",
        owasp=BROKEN_ACCESS,
        recommendation="Disable unnecessary HTTP methods in server configuration",
    )


def evaluate_trace(response: ProbeResponse) -> Finding | None:
    """TRACE that echoes the request back enables Cross-Site Tracing."""
    if response.status != 200:
        return None
    body = response.body
    if "TRACE" not in body and "X-Custom-Header" not in body and "test-value" not in body:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="HTTP TRACE Method Enabled (XST)",
        description="TRACE method is enabled which can be used for Cross-Site Tracing attacks",
        url="/",
        evidence="TRACE request was echoed back by server",
        cwe="CWE-693",
        owasp=MISCONFIG,
        recommendation="Disable TRACE method in web server configuration",
    )


def evaluate_override(header: str, response: ProbeResponse, url: str = "/api/users") -> Finding | None:
    if response.status not in (200, 204):
        return None
    if response.status != 204 and not any(m in response.body for m in OVERRIDE_MARKERS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="HTTP Method Override Vulnerability",
        description=f'Header "{header}" can override HTTP methods and bypass security controls',
        url=url,
        evidence=f"GET request with {header}: DELETE was processed",
        cwe="CWE-650",
        owasp=BROKEN_ACCESS,
        recommendation="Disable method override headers or validate against allowlist",
    )


def evaluate_put_upload(path: str, content: str, retrieved: ProbeResponse) -> Finding | None:
    if retrieved.status != 200 or content[:20] not in retrieved.body:
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="PUT File Upload Vulnerability",
        description=f'HTTP PUT method allows arbitrary file upload to "{path}"',
        url=path,
        evidence="File created and accessible via GET",
        cwe="CWE-434",
        owasp=BROKEN_ACCESS,
        recommendation="Disable PUT method or restrict to authenticated/authorized users only",
    )


def evaluate_preflight(response: ProbeResponse) -> Finding | None:
    acao = response.header("access-control-allow-origin")
    acam = response.header("access-control-allow-methods") or ""
    if acao not in ("*", EVIL_ORIGIN):
        return None
    if "DELETE" not in acam and "PUT" not in acam:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Dangerous CORS Preflight Configuration",
        description="CORS preflight allows dangerous methods from any origin",
        url="/",
        evidence=f"Allow-Origin: {acao}, Allow-Methods: {acam}",
        cwe="CWE-942",
        owasp=MISCONFIG,
        recommendation="Restrict CORS to specific origins and limit allowed methods",
    )


def evaluate_consistency(endpoint: str, get_status: int, post_status: int) -> Finding | None:
    if (get_status, post_status) not in ((200, 405), (405, 200)):
        return None
    return Finding(
        severity=Severity.INFO,
        title="HTTP Method Restriction Present",
        description=f'Endpoint "{endpoint}" has method-specific restrictions',
        url=endpoint,
        evidence=f"GET: {get_status}, POST: {post_status}",
        owasp=BROKEN_ACCESS,
        recommendation="Ensure method restrictions are consistent with security policy",
    )


async def run(ctx: ProbeContext) -> None:
    for path in METHOD_TEST_PATHS:
        for method in DANGEROUS_METHODS:
            kwargs = {"json_body": {"test": "data"}} if method == "PUT" else {}
            response = await ctx.http.send(method, path, timeout=10, **kwargs)
            if response is None:
                continue
            finding = evaluate_dangerous_method(path, method, response)
            if finding:
                ctx.report([finding])

    response = await ctx.http.send(
        "TRACE", "/",
        headers={"X-Custom-Header": "test-value", "Cookie": "test=cookie"},
        timeout=10,
    )
    if response is not None:
        finding = evaluate_trace(response)
        if finding:
            ctx.report([finding])

    for header in OVERRIDE_HEADERS:
        response = await ctx.http.get("/api/users", headers={header: "DELETE"}, timeout=10)
        if response is None:
            continue
        finding = evaluate_override(header, response)
        if finding:
            ctx.report([finding])

    for path, content in PUT_UPLOADS:
        response = await ctx.http.send(
            "PUT", path, content=content, headers={"Content-Type": "text/plain"}, timeout=10
        )
        if response is None or response.status not in (200, 201, 204):
            continue
        retrieved = await ctx.http.get(path, timeout=10)
        if retrieved is None:
            continue
        finding = evaluate_put_upload(path, content, retrieved)
        if finding:
            ctx.report([finding])

    response = await ctx.http.send(
        "OPTIONS", "/",
        headers={
            "Origin": EVIL_ORIGIN,
            "Access-Control-Request-Method": "DELETE",
            "Access-Control-Request-Headers": "X-Custom-Header",
        },
        timeout=10,
    )
    if response is not None:
        finding = evaluate_preflight(response)
        if finding:
            ctx.report([finding])

    for endpoint in CONSISTENCY_ENDPOINTS:
        get_response = await ctx.http.get(endpoint, timeout=10)
        post_response = await ctx.http.post(endpoint, json_body={"test": "data"}, timeout=10)
        if get_response is None or post_response is None:
            continue
        finding = evaluate_consistency(endpoint, get_response.status, post_response.status)
        if finding:
            ctx.report([finding])
