"""
Web cache probe: poisoning, sensitive caching, deception, key normalization.
"""

import logging

from dast_scanner.models import Finding, ProbeResponse, Severity
from dast_scanner.probes.base import MISCONFIG, ProbeContext

logger = logging.getLogger(__name__)

NAME = "cache"

MALICIOUS_HOSTS = ["evil.com", "attacker.com", "localhost:1337"]

POISONING_HEADERS = [
    ("X-Forwarded-Proto", "https"),
    ("X-Forwarded-Port", "443"),
    ("X-Forwarded-Host", "evil.com"),
    ("X-Original-URL", "/admin"),
    ("X-Rewrite-URL", "/admin"),
]

SENSITIVE_PATHS = ["/api/users", "/api/user/profile", "/account", "/dashboard", "/admin"]
SENSITIVE_INDICATORS = ["password", "token", "email", "credit_card", "ssn", "phone", "address"]

DECEPTION_PATHS = [
    "/api/users/fake.js",
    "/api/users/fake.css",
    "/profile/test.jpg",
    "/settings/script.js",
]

NORMALIZATION_VARIANTS = [
    "/api/users",
    "/api/users/",
    "/api/users?",
    "/api/users?utm_source=test",
    "/API/users",
]


def looks_cached(response: ProbeResponse) -> bool:
    """Any cache header reporting a hit, public caching or a max-age."""
    values = [
        response.header("cache-control"),
        response.header("x-cache"),
        response.header("cf-cache-status"),
        response.header("x-cache-status"),
    ]
    return any(
        v and ("hit" in v or "HIT" in v or "public" in v or "max-age" in v)
        for v in values
    )


def is_cacheable(response: ProbeResponse) -> bool:
    cache_control = response.header("cache-control") or ""
    x_cache = response.header("x-cache") or ""
    return (
        "public" in cache_control
        or "max-age" in cache_control
        or "HIT" in x_cache
        or "hit" in x_cache
    )


def evaluate_host_reflection(host: str, response: ProbeResponse) -> Finding | None:
    if host not in response.body:
        return None
    if looks_cached(response):
        return Finding(
            severity=Severity.HIGH,
            title="Web Cache Poisoning via Host Header",
            description="Host header value is reflected in cached response",
            url="/",
            evidence=f"Host: {host} reflected in response",
            cwe="CWE-444",
            owasp=MISCONFIG,
            recommendation="Normalize Host header and exclude it from cache key if not needed",
        )
    return Finding(
        severity=Severity.MEDIUM,
        title="Host Header Injection",
        description="Host header value is reflected in response",
        url="/",
        evidence=f"Host: {host} reflected in response",
        cwe="CWE-644",
        owasp=MISCONFIG,
        recommendation="Validate Host header against allowlist",
    )


def evaluate_unkeyed_header(name: str, value: str, response: ProbeResponse) -> Finding | None:
    if not is_cacheable(response):
        return None
    if value not in response.body and name not in response.body:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Web Cache Poisoning Risk",
        description=f'Header "{name}" affects cached response',
        url="/",
        evidence=f"{name}: {value}",
        cwe="CWE-444",
        owasp=MISCONFIG,
        recommendation="Configure cache to ignore unkeyed headers or normalize them",
    )


def evaluate_sensitive_caching(path: str, response: ProbeResponse) -> Finding | None:
    cache_control = response.header("cache-control") or ""
    x_cache = response.header("x-cache") or ""

    cacheable = (
        "public" in cache_control
        or ("max-age" in cache_control
            and "no-store" not in cache_control
            and "private" not in cache_control)
        or "HIT" in x_cache
        or "hit" in x_cache
    )
    unprotected = (
        "no-store" not in cache_control
        and "private" not in cache_control
        and "no-cache" not in cache_control
    )
    if not (cacheable or unprotected) or response.status != 200:
        return None

    body = response.body.lower()
    if not any(indicator in body for indicator in SENSITIVE_INDICATORS):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Sensitive Data May Be Cached",
        description=f'Path "{path}" returns sensitive data without proper cache control',
        url=path,
        evidence=f"Cache-Control: {cache_control}",
        cwe="CWE-523",
        owasp=MISCONFIG,
        recommendation="Add Cache-Control: no-store, no-cache, must-revalidate, private to sensitive responses",
    )


def evaluate_deception(path: str, response: ProbeResponse) -> Finding | None:
    """HTML served for a ``.js`` path with caching enabled."""
    if response.status != 200 or not path.endswith(".js"):
        return None
    content_type = response.header("content-type") or ""
    cache_control = response.header("cache-control") or ""
    if "text/html" not in content_type:
        return None
    if "public" not in cache_control and "max-age" not in cache_control:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="Potential Web Cache Deception",
        description=f'Path "{path}" returns HTML but may be cached as static resource',
        url=path,
        evidence=f"Content-Type: {content_type}, Cache-Control: {cache_control}",
        cwe="CWE-444",
        owasp=MISCONFIG,
        recommendation="Ensure dynamic content is not cached and path extensions match content type",
    )


def evaluate_normalization(cache_status: dict[str, str | None]) -> Finding | None:
    """
    Args:
        cache_status: path variant -> x-cache / cf-cache-status value
    """
    cached = [path for path, status in cache_status.items() if status and "HIT" in status]
    uncached = [path for path, status in cache_status.items() if not (status and "HIT" in status)]
    if not cached or not uncached:
        return None
    return Finding(
        severity=Severity.LOW,
        title="Cache Key Normalization Inconsistency",
        description="Different path representations have different cache behavior",
        url="/api/users",
        evidence=f"Cached: {', '.join(cached)}; Uncached: {', '.join(uncached)}",
        cwe="CWE-444",
        owasp=MISCONFIG,
        recommendation="Normalize URLs before cache lookup",
    )


async def run(ctx: ProbeContext) -> None:
    for host in MALICIOUS_HOSTS:
        response = await ctx.http.get(
            "/", headers={"Host": host, "X-Forwarded-Host": host}, timeout=10
        )
        if response is None:
            continue
        finding = evaluate_host_reflection(host, response)
        if finding:
            ctx.report([finding])

    for name, value in POISONING_HEADERS:
        response = await ctx.http.get("/", headers={name: value}, timeout=10)
        if response is None:
            continue
        finding = evaluate_unkeyed_header(name, value, response)
        if finding:
            ctx.report([finding])

    for path in SENSITIVE_PATHS:
        response = await ctx.http.get(path, timeout=10)
        if response is None:
            continue
        finding = evaluate_sensitive_caching(path, response)
        if finding:
            ctx.report([finding])

    for path in DECEPTION_PATHS:
        response = await ctx.http.get(path, timeout=10)
        if response is None:
            continue
        finding = evaluate_deception(path, response)
        if finding:
            ctx.report([finding])

    cache_status: dict[str, str | None] = {}
    for path in NORMALIZATION_VARIANTS:
        response = await ctx.http.get(path, timeout=10)
        if response is None:
            continue
        cache_status[path] = response.header("x-cache") or response.header("cf-cache-status")
    finding = evaluate_normalization(cache_status)
    if finding:
        ctx.report([finding])
