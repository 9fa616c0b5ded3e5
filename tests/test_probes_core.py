"""
tests/test_probes_core.py — headers, cookies, CORS, traversal, SQLi, command injection, redirects
"""
import asyncio

import httpx

from dast_scanner.models import CookieInfo, Severity
from dast_scanner.probes import cmdi, cors, headers, redirect, sqli, traversal

from conftest import TARGET, FakeBrowser


# ── Security headers and cookies ──────────────────────────────────────────────

def test_all_security_headers_missing(response):
    findings = headers.check_security_headers(response())
    assert len(findings) == 9
    assert findings[0].title == "Missing Security Header: x-frame-options"
    assert {f.severity for f in findings} == {Severity.HIGH, Severity.MEDIUM, Severity.LOW}


def test_present_headers_not_reported(response):
    resp = response(headers={
        "X-Frame-Options": "DENY",
        "Content-Security-Policy": "default-src 'self'",
        "Server": "nginx/1.25",
    })
    titles = [f.title for f in headers.check_security_headers(resp)]
    assert "Missing Security Header: x-frame-options" not in titles
    assert "Missing Security Header: content-security-policy" not in titles
    disclosure = headers.check_info_disclosure(resp)
    assert [f.evidence for f in disclosure] == ["server: nginx/1.25"]


def test_insecure_session_cookie_lists_every_issue():
    cookie = CookieInfo(name="sessionid", value="x", secure=False, http_only=False, same_site="None")
    findings = headers.check_cookie_flags([cookie], "https://app.example.com/")
    assert len(findings) == 1
    assert findings[0].severity == Severity.MEDIUM
    assert findings[0].title == "Insecure Cookie: sessionid"
    assert findings[0].evidence == (
        "Missing Secure flag; Missing HttpOnly flag on sensitive cookie; Missing or lax SameSite attribute"
    )


def test_cookie_secure_flag_only_required_over_https():
    cookie = CookieInfo(name="theme", value="dark", same_site="Lax")
    assert headers.check_cookie_flags([cookie], "http://app.example.com/") == []


def test_headers_run_with_browser(mock_http, make_ctx, page):
    http = mock_http(lambda request: httpx.Response(200, headers={"X-Powered-By": "Express"}))
    snapshot = page(cookies=[CookieInfo(name="auth_token", value="t", same_site="Strict")])
    ctx = make_ctx(http, browser=FakeBrowser(pages={"/": snapshot}))

    asyncio.run(headers.run(ctx))

    titles = [f.title for f in ctx.reporter.get_findings()]
    assert "Information Disclosure: x-powered-by" in titles
    assert "Insecure Cookie: auth_token" in titles


# ── CORS ──────────────────────────────────────────────────────────────────────

def test_cors_wildcard(response):
    findings = cors.check_cors("/api", "https://evil.com", response(headers={"Access-Control-Allow-Origin": "*"}))
    assert [f.title for f in findings] == ["Overly Permissive CORS"]


def test_cors_reflected_origin_with_credentials(response):
    resp = response(headers={
        "Access-Control-Allow-Origin": "https://evil.com",
        "Access-Control-Allow-Credentials": "true",
    })
    findings = cors.check_cors("/api/user", "https://evil.com", resp)
    assert len(findings) == 1
    assert findings[0].severity == Severity.CRITICAL
    assert findings[0].evidence == "Origin: https://evil.com, ACAO: https://evil.com, ACAC: true"


def test_cors_null_origin_with_credentials_reports_both(response):
    resp = response(headers={
        "Access-Control-Allow-Origin": "null",
        "Access-Control-Allow-Credentials": "true",
    })
    titles = [f.title for f in cors.check_cors("/", "null", resp)]
    assert titles == ["CORS Allows Arbitrary Origin with Credentials", "CORS Allows Null Origin"]


def test_cors_reflection_without_credentials_is_fine(response):
    resp = response(headers={"Access-Control-Allow-Origin": "https://evil.com"})
    assert cors.check_cors("/", "https://evil.com", resp) == []


def test_cors_preflight(response):
    resp = response(headers={
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, DELETE",
    })
    finding = cors.check_preflight("/api", resp)
    assert finding.title == "CORS Exposes Dangerous Methods"
    assert cors.check_preflight("/api", response(headers={"Access-Control-Allow-Origin": "*"})) is None


# ── Path traversal ────────────────────────────────────────────────────────────

def test_traversal_passwd(response):
    finding = traversal.evaluate_param(
        "/?file=..%2F..%2Fetc%2Fpasswd", "../../etc/passwd", response(body="root:x:0:0:root:/root:/bin/bash"),
    )
    assert finding.severity == Severity.CRITICAL
    assert finding.title == "Path Traversal Vulnerability"
    assert finding.cwe == "CWE-22"
    assert finding.url == "/?file=..%2F..%2Fetc%2Fpasswd"
    assert finding.payload == "../../etc/passwd"
    assert finding.evidence == "Sensitive content pattern matched: root:x:0:0:"


def test_traversal_ignores_non_200(response):
    assert traversal.evaluate_param("/?file=x", "x", response(status=404, body="root:x:0:0:")) is None
    assert traversal.evaluate_param("/?file=x", "x", response(body="")) is None


def test_traversal_first_rule_only(response):
    finding = traversal.evaluate_param("/?file=x", "x", response(body="<?xml version='1.0'?> DEBUG LOG"))
    assert finding.evidence == "Sensitive content pattern matched: <\\?xml"


def test_traversal_run_reports_vulnerable_parameter(mock_http, make_ctx):
    def handler(request):
        if request.url.path == "/" and request.url.params.get("file"):
            return httpx.Response(200, text="root:x:0:0:root:/root:/bin/bash")
        return httpx.Response(404)

    ctx = make_ctx(mock_http(handler))
    asyncio.run(traversal.run(ctx))

    findings = ctx.reporter.get_findings()
    assert len(findings) == 5
    assert all(f.url.startswith("/?file=") for f in findings)


# ── SQL injection ─────────────────────────────────────────────────────────────

def test_sqli_error_pattern():
    finding = sqli.evaluate_error("/?q='", "'", "You have an error in your SQL syntax; check the manual for your MySQL server version")
    assert finding.severity == Severity.CRITICAL
    assert finding.cwe == "CWE-89"
    assert sqli.evaluate_error("/?q='", "'", "<html>no results</html>") is None


def test_sqli_timing(response):
    slow = response(elapsed_ms=5200)
    finding = sqli.evaluate_timing("/api/users", "1' AND SLEEP(5)--", slow)
    assert finding.title == "Potential Blind SQL Injection (Timing)"
    assert finding.evidence == "Response time: 5200ms"
    assert sqli.evaluate_timing("/api/users", "x", response(elapsed_ms=120)) is None


def test_sqli_timing_failed_request_is_inconclusive():
    assert sqli.evaluate_timing("/api/users", "1' AND SLEEP(5)--", None) is None


def test_sqli_form_submission(page):
    snapshot = page(url=f"{TARGET}/search", content="Warning: pg_query(): Query failed: ERROR: syntax error")
    finding = sqli.evaluate_form("q", "'", snapshot)
    assert finding.title == "SQL Injection in Form"
    assert finding.url == f"{TARGET}/search"


# ── Command injection ─────────────────────────────────────────────────────────

def test_cmdi_output_detected():
    finding = cmdi.evaluate_param("/?cmd=%3Bid", ";id", "uid=0(root) gid=0(root)")
    assert finding.title == "Command Injection Vulnerability"
    assert finding.evidence == "Pattern matched: uid=\\d+"


def test_cmdi_form_uses_narrower_patterns():
    assert cmdi.evaluate_form("/", ";id", "command not found") is None
    assert cmdi.evaluate_form("/", ";ls -la", "total 48\ndrwxr-xr-x") is not None


def test_cmdi_skipped_without_browser(mock_http, make_ctx):
    ctx = make_ctx(mock_http(lambda request: httpx.Response(200, text="uid=0(root)")))
    asyncio.run(cmdi.run(ctx))
    assert ctx.reporter.get_findings() == []


# ── Open redirect ─────────────────────────────────────────────────────────────

def test_redirect_navigation_leaving_origin():
    finding = redirect.evaluate_navigation(
        "next", "/?next=https%3A%2F%2Fevil.com", "https://evil.com", "https://evil.com/", TARGET,
    )
    assert finding.severity == Severity.HIGH
    assert finding.evidence == "Redirected to: https://evil.com/"
    assert redirect.evaluate_navigation("next", "/", "x", f"{TARGET}/home", TARGET) is None
    assert redirect.evaluate_navigation("next", "/", "x", "about:blank", TARGET) is None


def test_redirect_location_header(response):
    resp = response(status=302, headers={"Location": "https://evil.com/login"})
    finding = redirect.evaluate_header_redirect("//evil.com", resp)
    assert finding.title == "Potential Header-Based Redirect"
    assert redirect.evaluate_header_redirect("//evil.com", response(status=200)) is None


def test_redirect_meta_refresh(page):
    snapshot = page(meta_refresh="0; url=https://evil.com")
    finding = redirect.evaluate_meta_refresh("/?url=https%3A%2F%2Fevil.com", "https://evil.com", snapshot)
    assert finding.title == "Open Redirect via Meta Refresh"
    assert redirect.evaluate_meta_refresh("/", "x", page()) is None
