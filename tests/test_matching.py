"""tests/test_matching.py — rule engine and oracles"""
import base64
import json
import re

import pytest

from dast_scanner.matching import (
    DetectionRule,
    all_matches,
    calculate_similarity,
    decode_jwt,
    exceeds_threshold,
    find_jwt,
    first_indicator,
    first_match,
    rule_table,
)
from dast_scanner.models import Severity


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")


RULES = [
    DetectionRule(pattern=re.compile(r"SQL syntax.*MySQL", re.I), title="MySQL", severity=Severity.CRITICAL),
    DetectionRule(pattern="ORA-01756", title="Oracle", severity=Severity.CRITICAL),
    DetectionRule(pattern=re.compile(r"SQLite", re.I), title="SQLite", severity=Severity.HIGH),
]


def test_rule_search_regex_and_literal():
    assert RULES[0].search("You have an error in your SQL syntax; check the MySQL manual") is not None
    assert RULES[1].search("ORA-01756: quoted string not properly terminated") == "ORA-01756"
    assert RULES[1].search("ora-01756") is None
    assert RULES[0].search("") is None


def test_first_match_follows_table_order():
    text = "sqlite error near ORA-01756"
    assert first_match(RULES, text).title == "Oracle"
    assert first_match(RULES, "all good") is None


def test_all_matches():
    text = "SQLite and ORA-01756"
    assert [r.title for r in all_matches(RULES, text)] == ["Oracle", "SQLite"]


def test_rule_to_finding_overrides():
    finding = RULES[2].to_finding("/search", payload="'", evidence="SQLite", severity=Severity.LOW)
    assert finding.title == "SQLite"
    assert finding.severity == Severity.LOW
    assert finding.payload == "'"


def test_rule_table_shares_metadata():
    rules = rule_table(
        [re.compile("root:x:0:0"), r"\[boot loader\]"],
        flags=re.I,
        title="Path Traversal Vulnerability",
        severity=Severity.CRITICAL,
        cwe="CWE-22",
    )
    rule = first_match(rules, "[BOOT LOADER]\ntimeout=30")
    assert rule is rules[1]
    assert rule.source == r"\[boot loader\]"
    assert rules[0].source == "root:x:0:0"
    assert {r.cwe for r in rules} == {"CWE-22"}
    assert first_match(rules, None) is None


def test_first_indicator():
    assert first_indicator(["uid=", "gid="], "", "uid=0(root)") == "uid="
    assert first_indicator(["Welcome"], "WELCOME back", case_insensitive=True) == "Welcome"
    assert first_indicator(["Welcome"], "WELCOME back") is None


@pytest.mark.parametrize("a,b,expected", [
    ("", "", 1.0),
    ("abc", "", 0.0),
    ("hello", "hello", 1.0),
    ("abcd", "abcdefgh", 0.5),
    ("abcd", "abxd", 0.75),
])
def test_calculate_similarity(a, b, expected):
    assert calculate_similarity(a, b) == pytest.approx(expected)


def test_similarity_stays_in_range():
    for a, b in [("x" * 10, "y" * 3), ("abc", "cba"), ("{}", '{"id": 1}')]:
        assert 0.0 <= calculate_similarity(a, b) <= 1.0


def test_exceeds_threshold():
    assert exceeds_threshold(4500, 4500)
    assert exceeds_threshold(5100.2, 4500)
    assert not exceeds_threshold(4499.9, 4500)


def test_jwt_find_and_decode():
    token = f"{_b64({'alg': 'HS256', 'typ': 'JWT'})}.{_b64({'sub': '42'})}.sig"
    assert find_jwt(f"Bearer {token}") == token
    assert find_jwt("no token here") is None

    header, payload = decode_jwt(token)
    assert header["alg"] == "HS256"
    assert payload == {"sub": "42"}


def test_decode_jwt_rejects_malformed():
    with pytest.raises(ValueError):
        decode_jwt("only.two")
    with pytest.raises(ValueError):
        decode_jwt("eyJub3QganNvbg.eyJ4IjoxfQ.sig")
