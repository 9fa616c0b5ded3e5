"""
NoSQL injection probe.
"""

import json
import logging
import re

from dast_scanner.matching import first_indicator, first_match, rule_table
from dast_scanner.models import Finding, PageSnapshot, ProbeResponse, Severity
from dast_scanner.probes.base import INJECTION, ProbeContext, truncate, with_param

logger = logging.getLogger(__name__)

NAME = "nosql"

NOSQL_PAYLOADS = [
    '{ "$ne": null }',
    '{ "$gt": "" }',
    '{ "$exists": true }',
    '{ "$regex": ".*" }',
    '{ "$where": "this.password.length > 0" }',
    '{ "$or": [{}, { "password": { "$ne": "" } }] }',
    '{ "$and": [{}, { "password": { "$ne": "" } }] }',
    '{ "username": { "$ne": null }, "password": { "$ne": null } }',
    "[$ne]=1",
    "[$gt]=1",
    "[$exists]=true",
    "[$regex]=.*",
]

NOSQL_ERROR_RULES = rule_table(
    [
        r"MongoError",
        r"MongoServerError",
        r"mongod",
        r"MongoDB",
        r"CouchDB",
        r"Cassandra",
        r"DynamoDB",
        r"Firebase",
    ],
    flags=re.I,
    title="NoSQL Injection Vulnerability",
    severity=Severity.HIGH,
    cwe="CWE-943",
    owasp=INJECTION,
    recommendation="Use parameterized queries and validate all input",
)

NOSQL_PARAMS = ["id", "user", "username", "filter", "query"]

JSON_PAYLOADS = [
    {"username": {"$ne": None}, "password": {"$ne": None}},
    {"username": {"$gt": ""}, "password": {"$gt": ""}},
    {"id": {"$exists": True}},
    {"query": {"$regex": ".*"}},
]

JSON_ENDPOINTS = ["/api/login", "/api/auth", "/api/users", "/api/data"]

AUTH_SUCCESS_INDICATORS = ["token", "auth", "success", "session", "user", "id"]
LEAK_MARKERS = ("admin", "password")


def _compact(payload: dict) -> str:
    return json.dumps(payload, separators=(",", ":"))


def evaluate_param(param: str, test_url: str, payload: str, page: PageSnapshot) -> list[Finding]:
    findings = []
    rule = first_match(NOSQL_ERROR_RULES, page.content) or first_match(NOSQL_ERROR_RULES, page.body_text)
    if rule is not None:
        findings.append(rule.to_finding(
            test_url,
            payload=payload,
            evidence=f"Error pattern matched: {rule.source}",
            description=f'NoSQL error returned for parameter "{param}"',
        ))

    if page.status == 200 and any(marker in page.content for marker in LEAK_MARKERS):
        findings.append(Finding(
            severity=Severity.MEDIUM,
            title="Potential NoSQL Injection",
            description=f'Unexpected data returned for NoSQL payload in "{param}"',
            url=test_url,
            payload=payload,
            cwe="CWE-943",
            owasp=INJECTION,
            recommendation="Validate and sanitize all user input",
        ))
    return findings


def evaluate_json(endpoint: str, payload: dict, response: ProbeResponse) -> list[Finding]:
    findings = []
    if response.status == 200 and first_indicator(
        AUTH_SUCCESS_INDICATORS, response.body, case_insensitive=True
    ):
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="NoSQL Injection Authentication Bypass",
            description=f'JSON endpoint "{endpoint}" may be vulnerable to NoSQL injection',
            url=endpoint,
            payload=_compact(payload),
            evidence="Successful response with auth indicators",
            cwe="CWE-943",
            owasp=INJECTION,
            recommendation="Use parameterized queries and implement strict input validation",
        ))

    rule = first_match(NOSQL_ERROR_RULES, response.body)
    if rule is not None:
        findings.append(rule.to_finding(
            endpoint,
            payload=_compact(payload),
            evidence=f"Error: {truncate(response.body)}",
            description=f'JSON endpoint "{endpoint}" returned NoSQL error',
        ))
    return findings


async def run(ctx: ProbeContext) -> None:
    browser = ctx.require_browser(NAME)
    if browser is not None:
        for param in NOSQL_PARAMS:
            for payload in NOSQL_PAYLOADS:
                test_url = with_param(f"/?{param}=", payload)
                page = await browser.visit(test_url)
                if page is None:
                    continue
                ctx.report(evaluate_param(param, test_url, payload, page))

    for endpoint in JSON_ENDPOINTS:
        for payload in JSON_PAYLOADS:
            response = await ctx.http.post(endpoint, json_body=payload, timeout=10)
            if response is None:
                continue
            ctx.report(evaluate_json(endpoint, payload, response))
