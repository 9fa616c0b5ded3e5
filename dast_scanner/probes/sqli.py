"""
SQL Injection probe.

Error-based detection in query parameters and forms, plus a time-based
blind check against API endpoints. Timing is heuristic: there is no
baseline, and a request that fails or times out is inconclusive.
"""

import logging

from dast_scanner.matching import exceeds_threshold, first_match, rule_table
from dast_scanner.models import Finding, PageSnapshot, ProbeResponse, Severity
from dast_scanner.payloads import SQLI_ERROR_PATTERNS, SQLI_PAYLOADS, SQLI_TIMING_PAYLOADS
from dast_scanner.probes.base import INJECTION, ProbeContext, field_selector, with_param

logger = logging.getLogger(__name__)

NAME = "sqli"

SQLI_PARAM_URLS = [
    "/?id=",
    "/?user=",
    "/?item=",
    "/?product=",
    "/?category=",
    "/?page=",
    "/?record=",
]

TIMING_ENDPOINTS = ["/api/users", "/api/items", "/api/search"]
TIMING_THRESHOLD_MS = 4500

SQLI_ERROR_RULES = rule_table(
    SQLI_ERROR_PATTERNS,
    title="SQL Injection Vulnerability",
    severity=Severity.CRITICAL,
    description="SQL error message detected in response, indicating potential SQLi vulnerability",
    cwe="CWE-89",
    owasp=INJECTION,
    recommendation="Use parameterized queries/prepared statements for all database operations",
)


def evaluate_error(test_url: str, payload: str, content: str) -> Finding | None:
    rule = first_match(SQLI_ERROR_RULES, content)
    if rule is None:
        return None
    return rule.to_finding(test_url, payload=payload, evidence=f"Pattern matched: {rule.source}")


def evaluate_form(input_name: str, payload: str, page: PageSnapshot) -> Finding | None:
    rule = first_match(SQLI_ERROR_RULES, page.content)
    if rule is None:
        return None
    return rule.to_finding(
        page.url,
        payload=payload,
        evidence=f"Pattern matched: {rule.source}",
        title="SQL Injection in Form",
        description=f'SQL error detected in form submission for field "{input_name}"',
        recommendation="Use parameterized queries and input validation",
    )


def evaluate_timing(endpoint: str, payload: str, response: ProbeResponse | None) -> Finding | None:
    """A failed request carries no timing signal."""
    if response is None or not exceeds_threshold(response.elapsed_ms, TIMING_THRESHOLD_MS):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Potential Blind SQL Injection (Timing)",
        description="Response delay suggests possible time-based blind SQLi",
        url=endpoint,
        payload=payload,
        evidence=f"Response time: {round(response.elapsed_ms)}ms",
        cwe="CWE-89",
        owasp=INJECTION,
        recommendation="Use parameterized queries and implement request timeouts",
    )


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is not None:
        for base in SQLI_PARAM_URLS:
            for payload in SQLI_PAYLOADS[:5]:
                test_url = with_param(base, payload)
                page = await browser.visit(test_url)
                if page is None:
                    continue
                finding = evaluate_error(test_url, payload, page.content)
                if finding:
                    ctx.report([finding])

        home = await browser.visit("/")
        tested: set[str] = set()
        for form in home.forms if home else []:
            for input_name in form.inputs:
                if input_name in tested:
                    continue
                tested.add(input_name)
                for payload in SQLI_PAYLOADS[:3]:
                    page = await browser.submit_form(
                        "/", {field_selector(input_name): payload}, settle_ms=2000
                    )
                    if page is None:
                        continue
                    finding = evaluate_form(input_name, payload, page)
                    if finding:
                        ctx.report([finding])

    for endpoint in TIMING_ENDPOINTS:
        for payload in SQLI_TIMING_PAYLOADS:
            response = await ctx.http.get(endpoint, params={"id": payload}, timeout=10)
            finding = evaluate_timing(endpoint, payload, response)
            if finding:
                ctx.report([finding])
