"""
Authentication and authorization probe.

Covers unauthenticated access to protected paths, IDOR by response
similarity, client-side password policy and session fixation.
"""

import logging

from dast_scanner.matching import calculate_similarity
from dast_scanner.models import CookieInfo, Finding, PageSnapshot, Severity
from dast_scanner.probes.base import AUTH_FAILURES, BROKEN_ACCESS, SUBMIT_SELECTOR, ProbeContext

logger = logging.getLogger(__name__)

NAME = "access"

PROTECTED_PATHS = [
    "/admin",
    "/dashboard",
    "/profile",
    "/settings",
    "/account",
    "/api/users",
    "/api/admin",
    "/api/settings",
    "/user/profile",
    "/admin/settings",
]

IDOR_PATHS = [
    "/api/users/1",
    "/api/users/2",
    "/users/1",
    "/users/2",
    "/profile/1",
    "/profile/2",
    "/account/1",
    "/account/2",
    "/orders/1",
    "/orders/2",
    "/documents/1",
    "/documents/2",
]

IDOR_USER_SEGMENTS = ("/users/", "/profile/", "/account/")
IDOR_SIMILARITY_THRESHOLD = 0.9

LOGIN_PATH = "/login"
LOGIN_MARKERS = ('type="password"', "login", "sign in")
SESSION_COOKIE_MARKERS = ("session", "token", "auth")

TEST_USERNAME = "test@example.com"
TEST_PASSWORD = "testpassword123"


def check_unauthenticated(path: str, status: int | None, content: str) -> Finding | None:
    """A 200 without any sign of a login form means the page was served."""
    if status != 200:
        return None
    if any(marker in content for marker in LOGIN_MARKERS):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Potential Unauthenticated Access",
        description=f"Path {path} may be accessible without authentication",
        url=path,
        cwe="CWE-284",
        owasp=BROKEN_ACCESS,
        recommendation="Ensure all sensitive endpoints require proper authentication",
    )


def check_idor(responses: dict[str, tuple[int, str]]) -> list[Finding]:
    """
    Compare every pair of user-like resources that both answered 200.

    Args:
        responses: path -> (status, body), in request order
    """
    user_paths = [p for p in responses if any(seg in p for seg in IDOR_USER_SEGMENTS)]
    findings = []
    for i, first in enumerate(user_paths):
        for second in user_paths[i + 1:]:
            status1, body1 = responses[first]
            status2, body2 = responses[second]
            if status1 != 200 or status2 != 200:
                continue
            similarity = calculate_similarity(body1, body2)
            if similarity > IDOR_SIMILARITY_THRESHOLD:
                findings.append(Finding(
                    severity=Severity.HIGH,
                    title="Potential IDOR Vulnerability",
                    description="Similar responses for different user IDs suggest possible IDOR",
                    url=f"{first} vs {second}",
                    evidence=f"Response similarity: {similarity * 100:.1f}%",
                    cwe="CWE-639",
                    owasp=BROKEN_ACCESS,
                    recommendation="Implement proper authorization checks for each resource access",
                ))
    return findings


def _int_attr(value: str | None) -> int | None:
    try:
        return int(value) if value else None
    except ValueError:
        return None


def check_password_policy(password_input: dict[str, str], url: str = LOGIN_PATH) -> list[Finding]:
    findings = []
    min_length = _int_attr(password_input.get("minlength"))
    max_length = _int_attr(password_input.get("maxlength"))

    if min_length is not None and min_length < 8:
        findings.append(Finding(
            severity=Severity.MEDIUM,
            title="Weak Password Policy",
            description="Password minimum length is less than 8 characters",
            url=url,
            evidence=f"minlength: {min_length}",
            cwe="CWE-521",
            owasp=AUTH_FAILURES,
            recommendation="Enforce minimum password length of at least 8 characters",
        ))
    if max_length is not None and max_length < 64:
        findings.append(Finding(
            severity=Severity.LOW,
            title="Password Length Limitation",
            description="Password has a maximum length which may truncate strong passwords",
            url=url,
            evidence=f"maxlength: {max_length}",
            cwe="CWE-521",
            owasp=AUTH_FAILURES,
            recommendation="Allow passwords up to at least 64 characters",
        ))
    return findings


def find_session_cookie(cookies: list[CookieInfo]) -> CookieInfo | None:
    for cookie in cookies:
        if any(marker in cookie.name.lower() for marker in SESSION_COOKIE_MARKERS):
            return cookie
    return None


def check_session_fixation(
    before: list[CookieInfo],
    after: list[CookieInfo],
    url: str = LOGIN_PATH,
) -> Finding | None:
    cookie_before = find_session_cookie(before)
    cookie_after = find_session_cookie(after)
    if cookie_before is None or cookie_after is None:
        return None
    if cookie_before.value != cookie_after.value:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="Potential Session Fixation",
        description="Session cookie value did not change after login",
        url=url,
        evidence=f"Cookie {cookie_before.name} unchanged",
        cwe="CWE-384",
        owasp=AUTH_FAILURES,
        recommendation="Regenerate session ID after successful authentication",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is None:
        return

    for path in PROTECTED_PATHS:
        page = await browser.visit(path)
        if page is None:
            continue
        finding = check_unauthenticated(path, page.status, page.content)
        if finding:
            ctx.report([finding])

    responses: dict[str, tuple[int, str]] = {}
    for path in IDOR_PATHS:
        page = await browser.visit(path)
        if page is not None and page.status is not None:
            responses[path] = (page.status, page.content)
    ctx.report(check_idor(responses))

    login = await browser.visit(LOGIN_PATH)
    if login is None:
        return
    if login.password_inputs:
        ctx.report(check_password_policy(login.password_inputs[0]))

    await _session_fixation(ctx, login)


async def _session_fixation(ctx: ProbeContext, login: PageSnapshot) -> None:
    if not login.password_inputs:
        return
    after = await ctx.browser.submit_form(
        LOGIN_PATH,
        {
            'input[type="text"], input[type="email"]': TEST_USERNAME,
            'input[type="password"]': TEST_PASSWORD,
        },
        settle_ms=2000,
        navigate=False,
    )
    if after is None:
        return
    finding = check_session_fixation(login.cookies, after.cookies)
    if finding:
        ctx.report([finding])
