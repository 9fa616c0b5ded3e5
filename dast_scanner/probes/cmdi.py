"""
OS command injection probe.
"""

import logging
import re

from dast_scanner.matching import first_match, rule_table
from dast_scanner.models import Finding, Severity
from dast_scanner.payloads import COMMAND_INJECTION_PAYLOADS
from dast_scanner.probes.base import INJECTION, ProbeContext, field_selector, with_param

logger = logging.getLogger(__name__)

NAME = "cmdi"

CMDI_PARAM_URLS = [
    "/?file=",
    "/?path=",
    "/?name=",
    "/?cmd=",
    "/?exec=",
    "/?command=",
    "/?run=",
    "/?ping=",
    "/?host=",
    "/?ip=",
]

# Shell output that leaks into a page
COMMAND_OUTPUT_RULES = rule_table(
    [
        re.compile(r"uid=\d+"),
        re.compile(r"gid=\d+"),
        re.compile(r"total \d+"),
        re.compile(r"drwx"),
        re.compile(r"-rw-"),
        re.compile(r"/bin/bash"),
        re.compile(r"/bin/sh"),
        re.compile(r"root:"),
        re.compile(r"nobody:"),
        re.compile(r"command not found", re.IGNORECASE),
        re.compile(r"syntax error", re.IGNORECASE),
    ],
    title="Command Injection Vulnerability",
    severity=Severity.CRITICAL,
    description="Command output detected in response, indicating potential command injection",
    cwe="CWE-78",
    owasp=INJECTION,
    recommendation="Avoid shell commands with user input; use allowlists and input sanitization",
)

FORM_OUTPUT_RULES = rule_table(
    [r"uid=\d+", r"total \d+", r"drwx", r"/bin/bash"],
    title="Command Injection in Form",
    severity=Severity.CRITICAL,
    description="Command output detected in form submission",
    cwe="CWE-78",
    owasp=INJECTION,
    recommendation="Use input validation and avoid shell command execution",
)


def evaluate_param(test_url: str, payload: str, content: str) -> Finding | None:
    rule = first_match(COMMAND_OUTPUT_RULES, content)
    if rule is None:
        return None
    return rule.to_finding(test_url, payload=payload, evidence=f"Pattern matched: {rule.source}")


def evaluate_form(page_url: str, payload: str, content: str) -> Finding | None:
    rule = first_match(FORM_OUTPUT_RULES, content)
    if rule is None:
        return None
    return rule.to_finding(page_url, payload=payload, evidence=f"Pattern matched: {rule.source}")


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is None:
        return

    for base in CMDI_PARAM_URLS:
        for payload in COMMAND_INJECTION_PAYLOADS[:5]:
            test_url = with_param(base, payload)
            page = await browser.visit(test_url)
            if page is None:
                continue
            finding = evaluate_param(test_url, payload, page.content)
            if finding:
                ctx.report([finding])

    home = await browser.visit("/")
    for form in home.forms if home else []:
        for input_name in form.inputs:
            for payload in COMMAND_INJECTION_PAYLOADS[:2]:
                page = await browser.submit_form(
                    "/", {field_selector(input_name): payload}, settle_ms=2000
                )
                if page is None:
                    continue
                finding = evaluate_form(page.url, payload, page.content)
                if finding:
                    ctx.report([finding])
