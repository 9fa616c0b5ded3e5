"""
Open redirect probe.
"""

import logging

from dast_scanner.models import Finding, PageSnapshot, ProbeResponse, Severity
from dast_scanner.payloads import OPEN_REDIRECT_PAYLOADS
from dast_scanner.probes.base import BROKEN_ACCESS, ProbeContext, with_param

logger = logging.getLogger(__name__)

NAME = "redirect"

REDIRECT_PARAMS = [
    "url", "redirect", "next", "return", "returnUrl", "return_url",
    "goto", "target", "dest", "destination", "redir", "redirect_uri",
    "continue", "callback", "forward", "out", "link",
]

META_REFRESH_PARAMS = ["url", "redirect", "next", "goto"]

HEADER_PAYLOADS = [
    "https://evil.com",
    "//evil.com",
    "https://evil.com%0d%0aSet-Cookie:malicious=true",
]

EVIL_HOST = "evil.com"


def evaluate_navigation(
    param: str,
    test_url: str,
    payload: str,
    final_url: str,
    base_url: str,
) -> Finding | None:
    """Navigation that left the target's origin is an open redirect."""
    if final_url.startswith(base_url) or final_url.startswith("about:"):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Open Redirect Vulnerability",
        description=f'Application redirects to external URL via "{param}" parameter',
        url=test_url,
        payload=payload,
        evidence=f"Redirected to: {final_url}",
        cwe="CWE-601",
        owasp=BROKEN_ACCESS,
        recommendation="Implement a whitelist of allowed redirect URLs or use relative paths",
    )


def evaluate_header_redirect(payload: str, response: ProbeResponse) -> Finding | None:
    location = response.header("location")
    if not location or EVIL_HOST not in location:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="Potential Header-Based Redirect",
        description="Server may be vulnerable to redirect via header manipulation",
        url="/",
        payload=payload,
        evidence=f"Location header: {location}",
        cwe="CWE-601",
        owasp=BROKEN_ACCESS,
        recommendation="Validate and sanitize all headers used for redirects",
    )


def evaluate_meta_refresh(test_url: str, payload: str, page: PageSnapshot) -> Finding | None:
    if not page.meta_refresh or EVIL_HOST not in page.meta_refresh:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Open Redirect via Meta Refresh",
        description="Application uses meta refresh tag with user-controlled URL",
        url=test_url,
        payload=payload,
        evidence=f"Meta refresh content: {page.meta_refresh}",
        cwe="CWE-601",
        owasp=BROKEN_ACCESS,
        recommendation="Avoid using meta refresh with user-supplied URLs",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is not None:
        for param in REDIRECT_PARAMS:
            for payload in OPEN_REDIRECT_PAYLOADS[:5]:
                test_url = with_param(f"/?{param}=", payload)
                page = await browser.visit(test_url, settle_ms=500)
                if page is None:
                    continue
                finding = evaluate_navigation(param, test_url, payload, page.url, ctx.base_url)
                if finding:
                    ctx.report([finding])

    for payload in HEADER_PAYLOADS:
        response = await ctx.http.get(
            "/",
            headers={
                "X-Forwarded-Host": EVIL_HOST,
                "X-Original-URL": payload,
                "X-Rewrite-URL": payload,
            },
            follow_redirects=False,
        )
        if response is None:
            continue
        finding = evaluate_header_redirect(payload, response)
        if finding:
            ctx.report([finding])

    if browser is None:
        return
    payload = "https://evil.com"
    for param in META_REFRESH_PARAMS:
        test_url = with_param(f"/?{param}=", payload)
        page = await browser.visit(test_url)
        if page is None:
            continue
        finding = evaluate_meta_refresh(test_url, payload, page)
        if finding:
            ctx.report([finding])
