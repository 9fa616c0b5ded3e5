"""
Cross-Site Request Forgery probe.
"""

import logging

from dast_scanner.models import CookieInfo, Finding, FormInfo, ProbeResponse, Severity
from dast_scanner.probes.base import BROKEN_ACCESS, ProbeContext

logger = logging.getLogger(__name__)

NAME = "csrf"

CSRF_FIELD_MARKERS = ("csrf", "token", "_token", "authenticity", "__RequestVerificationToken")
SESSION_COOKIE_MARKERS = ("session", "token", "auth")
EVIL_ORIGIN = "https://evil.com"


def has_csrf_field(form: FormInfo) -> bool:
    """Any hidden input, or any field named like a CSRF token."""
    if form.hidden_inputs:
        return True
    return any(marker in name for name in form.inputs for marker in CSRF_FIELD_MARKERS)


def check_forms(page_url: str, forms: list[FormInfo]) -> list[Finding]:
    findings = []
    for index, form in enumerate(forms):
        if form.method != "post" or has_csrf_field(form):
            continue
        form_id = form.element_id or f"form-{index}"
        findings.append(Finding(
            severity=Severity.MEDIUM,
            title="Missing CSRF Protection",
            description=f'POST form "{form_id}" does not appear to have CSRF token protection',
            url=page_url,
            evidence=f"Form action: {form.action or 'current page'}",
            cwe="CWE-352",
            owasp=BROKEN_ACCESS,
            recommendation="Add CSRF tokens to all state-changing forms",
        ))
    return findings


def check_samesite(page_url: str, cookies: list[CookieInfo]) -> list[Finding]:
    findings = []
    for cookie in cookies:
        if not any(marker in cookie.name.lower() for marker in SESSION_COOKIE_MARKERS):
            continue
        if cookie.same_site and cookie.same_site != "None":
            continue
        findings.append(Finding(
            severity=Severity.MEDIUM,
            title="Cookie Missing SameSite Attribute",
            description=f'Session cookie "{cookie.name}" has no or lax SameSite attribute',
            url=page_url,
            evidence=f"SameSite: {cookie.same_site or 'not set'}",
            cwe="CWE-352",
            owasp=BROKEN_ACCESS,
            recommendation="Set SameSite=Strict or SameSite=Lax on session cookies",
        ))
    return findings


def evaluate_cross_origin_post(action: str, response: ProbeResponse) -> Finding | None:
    if response.status not in (200, 302):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Potential CSRF Vulnerability",
        description="Cross-origin POST request was accepted",
        url=action,
        evidence=f"Origin: {EVIL_ORIGIN}, status: {response.status}",
        cwe="CWE-352",
        owasp=BROKEN_ACCESS,
        recommendation="Verify CSRF token validation and implement origin checking",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is None:
        return

    page = await browser.visit("/")
    if page is None:
        return

    ctx.report(check_forms(page.url, page.forms))
    ctx.report(check_samesite(page.url, page.cookies))

    post_forms = [f for f in page.forms if f.method == "post"]
    if not post_forms:
        return
    action = post_forms[0].action or page.url
    response = await ctx.http.post(
        action,
        data={"test": "csrf-test"},
        headers={"Origin": EVIL_ORIGIN, "Referer": EVIL_ORIGIN + "/"},
        follow_redirects=False,
    )
    if response is None:
        return
    finding = evaluate_cross_origin_post(action, response)
    if finding:
        ctx.report([finding])
