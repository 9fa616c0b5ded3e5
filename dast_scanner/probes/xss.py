"""
Cross-Site Scripting probe.

Reflected XSS through query parameters and form fields, and DOM XSS
through the URL fragment. A payload that executed (dialog or marker set
on ``window``) is confirmed; one that only appears in the page is potential.
"""

import logging

from dast_scanner.models import Finding, PageSnapshot, Severity
from dast_scanner.payloads import XSS_PAYLOADS
from dast_scanner.probes.base import INJECTION, ProbeContext, field_selector, with_param

logger = logging.getLogger(__name__)

NAME = "xss"

XSS_PARAM_URLS = [
    "/?q=",
    "/?search=",
    "/?query=",
    "/?id=",
    "/?name=",
    "/?input=",
    "/?value=",
    "/?param=",
]

DOM_XSS_PAYLOADS = [
    '#<script>alert("XSS")</script>',
    '#"><img src=x onerror=alert("XSS")>',
    '#javascript:alert("XSS")',
]

SANITIZE = "Sanitize and encode all user input before rendering in HTML"


def evaluate_reflected(test_url: str, payload: str, page: PageSnapshot) -> list[Finding]:
    findings = []
    if payload in page.content or "XSS" in page.body_text:
        findings.append(Finding(
            severity=Severity.HIGH,
            title="Potential Reflected XSS",
            description="XSS payload may be reflected in page without proper sanitization",
            url=test_url,
            payload=payload,
            evidence="Payload found in response",
            cwe="CWE-79",
            owasp=INJECTION,
            recommendation=SANITIZE,
        ))
    if page.xss_triggered:
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="Confirmed Reflected XSS",
            description="XSS payload was executed",
            url=test_url,
            payload=payload,
            cwe="CWE-79",
            owasp=INJECTION,
            recommendation=SANITIZE,
        ))
    return findings


def evaluate_form(input_name: str, payload: str, page: PageSnapshot) -> Finding | None:
    if payload not in page.content:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Potential XSS in Form Input",
        description=f'XSS payload in form field "{input_name}" may be reflected',
        url=page.url,
        payload=payload,
        cwe="CWE-79",
        owasp=INJECTION,
        recommendation="Sanitize all form inputs server-side and encode output",
    )


def evaluate_dom(payload: str, page: PageSnapshot) -> Finding | None:
    if "alert" not in page.content and "XSS" not in page.content:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Potential DOM-based XSS",
        description="Page may be vulnerable to DOM-based XSS via URL fragment",
        url=page.url,
        payload=payload,
        cwe="CWE-79",
        owasp=INJECTION,
        recommendation="Avoid using unsafe client-side JavaScript that processes URL fragments",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is None:
        return

    for base in XSS_PARAM_URLS:
        for payload in XSS_PAYLOADS[:5]:
            test_url = with_param(base, payload)
            page = await browser.visit(test_url)
            if page is None:
                continue
            ctx.report(evaluate_reflected(test_url, payload, page))

    home = await browser.visit("/")
    if home is not None:
        for form in home.forms:
            for input_name in form.inputs:
                for payload in XSS_PAYLOADS[:3]:
                    page = await browser.submit_form("/", {field_selector(input_name): payload})
                    if page is None:
                        continue
                    finding = evaluate_form(input_name, payload, page)
                    if finding:
                        ctx.report([finding])

    for payload in DOM_XSS_PAYLOADS:
        page = await browser.visit("/" + payload, settle_ms=500)
        if page is None:
            continue
        finding = evaluate_dom(payload, page)
        if finding:
            ctx.report([finding])
