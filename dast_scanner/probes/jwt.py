"""
JWT probe: weak algorithms, insecure storage, expiry claims, tokens in URLs.
"""

import json
import logging
from datetime import datetime, timezone

from dast_scanner.matching import decode_jwt, find_jwt
from dast_scanner.models import CookieInfo, Finding, Severity
from dast_scanner.probes.base import AUTH_FAILURES, CRYPTO_FAILURES, ProbeContext

logger = logging.getLogger(__name__)

NAME = "jwt"

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
ASYMMETRIC_PREFIXES = ("RS", "ES", "PS")

URL_TOKEN_PATHS = ["/callback?token=", "/auth?jwt=", "/login?token="]
TEST_JWT = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.eyJ0ZXN0IjoidGVzdCJ9.test"


def collect_tokens(local_storage: dict[str, str], cookies: list[CookieInfo]) -> list[tuple[str, str]]:
    """(source, token) pairs for every JWT-looking value."""
    tokens = []
    for key, value in local_storage.items():
        token = find_jwt(value)
        if token:
            tokens.append((f"localStorage.{key}", token))
    for cookie in cookies:
        token = find_jwt(cookie.value)
        if token:
            tokens.append((f"cookie.{cookie.name}", token))
    return tokens


def check_algorithm(source: str, token: str, page_url: str) -> list[Finding]:
    try:
        header, _ = decode_jwt(token)
    except ValueError as e:
        logger.debug(f"Skipping undecodable JWT from {source}: {e}")
        return []

    alg = header.get("alg")
    if not isinstance(alg, str):
        return []

    findings = []
    if alg == "none":
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="JWT None Algorithm Vulnerability",
            description=f'JWT from {source} uses "none" algorithm which allows signature bypass',
            url=page_url,
            evidence=f"Header: {json.dumps(header, separators=(',', ':'))}",
            cwe="CWE-327",
            owasp=CRYPTO_FAILURES,
            recommendation='Reject JWTs with "none" algorithm',
        ))
    if alg in HMAC_ALGORITHMS:
        findings.append(Finding(
            severity=Severity.INFO,
            title="JWT Uses HMAC Algorithm",
            description=f"JWT from {source} uses HMAC. Ensure strong secret is used.",
            url=page_url,
            evidence=f"Algorithm: {alg}",
            recommendation="Use strong secrets (256+ bits) for JWT HMAC signing",
        ))
    if alg.startswith(ASYMMETRIC_PREFIXES):
        findings.append(Finding(
            severity=Severity.LOW,
            title="JWT Asymmetric Algorithm",
            description=f"JWT uses {alg}. Ensure algorithm confusion attacks are prevented.",
            url=page_url,
            evidence=f"Algorithm: {alg}",
            recommendation="Explicitly specify allowed algorithms and reject unexpected ones",
        ))
    return findings


def check_cookie_storage(cookie: CookieInfo, page_url: str) -> Finding | None:
    if not find_jwt(cookie.value):
        return None
    issues = []
    if not cookie.http_only:
        issues.append("missing HttpOnly flag")
    if not cookie.secure:
        issues.append("missing Secure flag")
    if not cookie.same_site or cookie.same_site == "None":
        issues.append("missing/inadequate SameSite")
    if not issues:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="JWT Stored in Insecure Cookie",
        description=f'JWT cookie "{cookie.name}" has security issues',
        url=page_url,
        evidence=", ".join(issues),
        cwe="CWE-522",
        owasp=AUTH_FAILURES,
        recommendation="Set HttpOnly, Secure, and SameSite=Strict flags on JWT cookies",
    )


def check_local_storage(key: str, value: str, page_url: str) -> Finding | None:
    if not find_jwt(value):
        return None
    return Finding(
        severity=Severity.LOW,
        title="JWT Stored in localStorage",
        description=f'JWT found in localStorage key "{key}"',
        url=page_url,
        evidence=f"Key: {key}",
        cwe="CWE-522",
        owasp=AUTH_FAILURES,
        recommendation="Consider using httpOnly cookies instead of localStorage for JWTs",
    )


def check_expiry(cookie: CookieInfo, page_url: str, now: datetime | None = None) -> list[Finding]:
    token = find_jwt(cookie.value)
    if not token:
        return []
    try:
        _, payload = decode_jwt(token)
    except ValueError as e:
        logger.debug(f"Skipping undecodable JWT in cookie {cookie.name}: {e}")
        return []

    now = now or datetime.now(timezone.utc)
    findings = []
    exp = payload.get("exp")
    expires = None
    if isinstance(exp, (int, float)) and not isinstance(exp, bool) and exp:
        try:
            expires = datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, ValueError, OSError):
            logger.debug(f"Ignoring out-of-range exp claim in cookie {cookie.name}: {exp}")
    if expires is not None and expires < now:
        findings.append(Finding(
            severity=Severity.MEDIUM,
            title="Expired JWT Present",
            description=f'JWT cookie "{cookie.name}" has expired but is still stored',
            url=page_url,
            evidence=f"Expired: {expires.isoformat()}",
            cwe="CWE-613",
            owasp=AUTH_FAILURES,
            recommendation="Remove expired tokens from storage",
        ))
    if not payload.get("exp") and not payload.get("nbf"):
        findings.append(Finding(
            severity=Severity.LOW,
            title="JWT Missing Expiration",
            description=f'JWT cookie "{cookie.name}" has no expiration claim',
            url=page_url,
            cwe="CWE-613",
            owasp=AUTH_FAILURES,
            recommendation="Always include exp claim in JWTs",
        ))
    return findings


def check_url_token(final_url: str, token: str = TEST_JWT) -> Finding | None:
    if token not in final_url:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="JWT in URL Parameter",
        description="JWT token is being passed in URL query parameter",
        url=final_url,
        evidence="Token visible in URL",
        cwe="CWE-598",
        owasp=AUTH_FAILURES,
        recommendation="Pass JWTs in headers or cookies, not URL parameters",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is None:
        return

    home = await browser.visit("/")
    if home is not None:
        for source, token in collect_tokens(home.local_storage, home.cookies):
            ctx.report(check_algorithm(source, token, home.url))

        for cookie in home.cookies:
            finding = check_cookie_storage(cookie, home.url)
            if finding:
                ctx.report([finding])
            ctx.report(check_expiry(cookie, home.url))

        for key, value in home.local_storage.items():
            finding = check_local_storage(key, value, home.url)
            if finding:
                ctx.report([finding])

    for path in URL_TOKEN_PATHS:
        page = await browser.visit(f"{path}{TEST_JWT}")
        if page is None:
            continue
        finding = check_url_token(page.url)
        if finding:
            ctx.report([finding])
