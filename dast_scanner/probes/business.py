"""
Business logic probe.

Race and TOCTOU checks fire a small concurrent burst at one endpoint and
count how many requests were accepted. Completion order is not inspected.
"""

import json
import logging

from dast_scanner.models import Finding, ProbeResponse, Severity
from dast_scanner.probes.base import INSECURE_DESIGN, ProbeContext
from dast_scanner.transport import count_successes, fan_out

logger = logging.getLogger(__name__)

NAME = "business"

CHECKOUT_ENDPOINTS = ["/api/checkout", "/api/order", "/api/cart/checkout", "/api/payment"]
PRICE_PAYLOADS = [
    {"items": [{"id": 1, "price": 0, "quantity": 1}], "total": 0},
    {"items": [{"id": 1, "price": -100, "quantity": 1}], "total": -100},
    {"items": [{"id": 1, "price": 0.01, "quantity": 1000}], "total": 0.01},
    {"items": [{"id": 1, "price": 999, "quantity": 1, "discount": 999}], "total": 0},
]
CHECKOUT_SUCCESS_INDICATORS = ["success", "confirmed", "order", "processed", "payment"]

CART_ENDPOINTS = ["/api/cart", "/api/cart/update", "/api/basket"]
QUANTITY_PAYLOADS = [
    {"itemId": 1, "quantity": -1},
    {"itemId": 1, "quantity": 0},
    {"itemId": 1, "quantity": 999999},
    {"itemId": 1, "quantity": 1.5},
    {"itemId": 1, "quantity": "unlimited"},
]

WORKFLOW_FINAL_STEP = "/api/checkout/complete"
WORKFLOW_MARKERS = ("success", "complete", "order")

PROMO_ENDPOINTS = ["/api/apply-promo", "/api/coupon", "/api/discount"]
PROMO_BURST = 5
BALANCE_ENDPOINTS = ["/api/transfer", "/api/purchase", "/api/redeem"]
TOCTOU_BURST = 3
BURST_TIMEOUT = 5

MASS_ASSIGNMENT_ENDPOINTS = ["/api/users", "/api/profile", "/api/register", "/api/update"]
MASS_ASSIGNMENT_PAYLOADS = [
    {"username": "test", "password": "test123", "isAdmin": True},
    {"username": "test", "password": "test123", "role": "admin"},
    {"username": "test", "password": "test123", "privileges": ["admin", "moderator"]},
    {"username": "test", "password": "test123", "admin": True, "moderator": True},
    {"email": "test@test.com", "verified": True, "emailVerified": True},
]
PROTECTED_FIELDS = ["isAdmin", "role", "privileges", "admin", "verified"]

DISCOUNT_ENDPOINTS = ["/api/validate-coupon", "/api/apply-discount", "/api/promo"]
DISCOUNT_CODES = ["INVALID", "TEST", "PROMO", "DISCOUNT", "SAVE20", "FREE"]

TRANSACTION_ENDPOINTS = ["/api/deposit", "/api/credit", "/api/add-funds"]
TRANSACTION_MARKERS = ("success", "complete")


def _compact(payload) -> str:
    return json.dumps(payload, separators=(",", ":"))


def evaluate_price(endpoint: str, payload: dict, response: ProbeResponse) -> Finding | None:
    if response.status != 200:
        return None
    body = response.body.lower()
    if not any(indicator in body for indicator in CHECKOUT_SUCCESS_INDICATORS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Price Manipulation Vulnerability",
        description=f'Checkout endpoint "{endpoint}" accepts client-side price values',
        url=endpoint,
        payload=_compact(payload),
        cwe="CWE-641",
        owasp=INSECURE_DESIGN,
        recommendation="Calculate prices server-side based on item IDs, never trust client-provided prices",
    )


def evaluate_quantity(endpoint: str, payload: dict, response: ProbeResponse) -> Finding | None:
    if response.status != 200:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Quantity Validation Bypass",
        description=f"Cart endpoint accepts invalid quantity: {_compact(payload['quantity'])}",
        url=endpoint,
        payload=_compact(payload),
        cwe="CWE-20",
        owasp=INSECURE_DESIGN,
        recommendation="Validate quantity ranges server-side (minimum 1, maximum reasonable limit)",
    )


def evaluate_workflow(response: ProbeResponse) -> Finding | None:
    if response.status != 200 or not any(m in response.body for m in WORKFLOW_MARKERS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Workflow Step Bypass",
        description="Order completion can be triggered without proper payment/validation steps",
        url=WORKFLOW_FINAL_STEP,
        cwe="CWE-840",
        owasp=INSECURE_DESIGN,
        recommendation="Enforce workflow state machine on server-side",
    )


def evaluate_promo_race(endpoint: str, responses: list[ProbeResponse | None]) -> Finding | None:
    successes = count_successes(responses)
    if successes <= 1:
        return None
    return Finding(
        severity=Severity.MEDIUM,
        title="Potential Race Condition",
        description=f'Promo code endpoint "{endpoint}" may have race condition vulnerability',
        url=endpoint,
        evidence=f"{successes}/{len(responses)} requests succeeded simultaneously",
        cwe="CWE-362",
        owasp=INSECURE_DESIGN,
        recommendation="Implement proper locking mechanism for sensitive operations",
    )


def evaluate_toctou(endpoint: str, responses: list[ProbeResponse | None]) -> Finding | None:
    successes = count_successes(responses)
    if successes <= 1:
        return None
    return Finding(
        severity=Severity.HIGH,
        title="TOCTOU Race Condition",
        description=f'Endpoint "{endpoint}" may allow duplicate operations via race condition',
        url=endpoint,
        evidence=f"{successes}/{len(responses)} concurrent requests succeeded",
        cwe="CWE-362",
        owasp=INSECURE_DESIGN,
        recommendation="Use database transactions and proper locking",
    )


def evaluate_mass_assignment(endpoint: str, payload: dict, response: ProbeResponse) -> Finding | None:
    if response.status not in (200, 201):
        return None
    field = next(
        (f for f in PROTECTED_FIELDS if f in payload and f in response.body),
        None,
    )
    if field is None:
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Mass Assignment Vulnerability",
        description=f'Endpoint "{endpoint}" accepts protected field "{field}"',
        url=endpoint,
        payload=_compact(payload),
        cwe="CWE-915",
        owasp=INSECURE_DESIGN,
        recommendation="Use allowlists for accepted fields, never bind user input directly to model attributes",
    )


def evaluate_enumeration(endpoint: str, statuses: list[int]) -> Finding | None:
    """Distinct status codes across guessed codes reveal which ones exist."""
    distinct = list(dict.fromkeys(statuses))
    if len(distinct) <= 1:
        return None
    return Finding(
        severity=Severity.LOW,
        title="Discount Code Enumeration Possible",
        description=f'Endpoint "{endpoint}" responds differently to valid vs invalid codes',
        url=endpoint,
        evidence=f"Different status codes: {', '.join(str(s) for s in distinct)}",
        cwe="CWE-204",
        owasp=INSECURE_DESIGN,
        recommendation="Return identical responses for valid and invalid codes",
    )


def evaluate_negative_amount(endpoint: str, response: ProbeResponse) -> Finding | None:
    if response.status != 200 or not any(m in response.body for m in TRANSACTION_MARKERS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Negative Transaction Amount Accepted",
        description=f'Endpoint "{endpoint}" accepts negative amounts',
        url=endpoint,
        cwe="CWE-682",
        owasp=INSECURE_DESIGN,
        recommendation="Validate that transaction amounts are positive numbers",
    )


async def run(ctx: ProbeContext) -> None:
    for endpoint in CHECKOUT_ENDPOINTS:
        for payload in PRICE_PAYLOADS:
            response = await ctx.http.post(endpoint, json_body=payload, timeout=10)
            if response is None:
                continue
            finding = evaluate_price(endpoint, payload, response)
            if finding:
                ctx.report([finding])

    for endpoint in CART_ENDPOINTS:
        for payload in QUANTITY_PAYLOADS:
            response = await ctx.http.post(endpoint, json_body=payload, timeout=10)
            if response is None:
                continue
            finding = evaluate_quantity(endpoint, payload, response)
            if finding:
                ctx.report([finding])

    response = await ctx.http.post(
        WORKFLOW_FINAL_STEP, json_body={"orderId": "test123", "complete": True}, timeout=10
    )
    if response is not None:
        finding = evaluate_workflow(response)
        if finding:
            ctx.report([finding])

    for endpoint in PROMO_ENDPOINTS:
        responses = await fan_out(
            PROMO_BURST,
            lambda endpoint=endpoint: ctx.http.post(
                endpoint, json_body={"code": "PROMO20"}, timeout=BURST_TIMEOUT
            ),
        )
        finding = evaluate_promo_race(endpoint, responses)
        if finding:
            ctx.report([finding])

    for endpoint in BALANCE_ENDPOINTS:
        responses = await fan_out(
            TOCTOU_BURST,
            lambda endpoint=endpoint: ctx.http.post(
                endpoint,
                json_body={"amount": 100, "from": "account1", "to": "account2"},
                timeout=BURST_TIMEOUT,
            ),
        )
        finding = evaluate_toctou(endpoint, responses)
        if finding:
            ctx.report([finding])

    for endpoint in MASS_ASSIGNMENT_ENDPOINTS:
        for payload in MASS_ASSIGNMENT_PAYLOADS:
            response = await ctx.http.post(endpoint, json_body=payload, timeout=10)
            if response is None:
                continue
            finding = evaluate_mass_assignment(endpoint, payload, response)
            if finding:
                ctx.report([finding])

    for endpoint in DISCOUNT_ENDPOINTS:
        statuses = []
        for code in DISCOUNT_CODES:
            response = await ctx.http.post(endpoint, json_body={"code": code}, timeout=BURST_TIMEOUT)
            if response is not None:
                statuses.append(response.status)
        finding = evaluate_enumeration(endpoint, statuses)
        if finding:
            ctx.report([finding])

    for endpoint in TRANSACTION_ENDPOINTS:
        response = await ctx.http.post(endpoint, json_body={"amount": -100}, timeout=10)
        if response is None:
            continue
        finding = evaluate_negative_amount(endpoint, response)
        if finding:
            ctx.report([finding])
