"""
Detection rule engine.

Probes describe what they look for as tables of DetectionRule objects and
evaluate them with one generic matcher. Also holds the heuristic oracles
shared by several probes: response similarity (IDOR), latency threshold
(blind injection) and JWT parsing.
"""

import base64
import json
import re
from dataclasses import dataclass
from typing import Iterable, Pattern

from dast_scanner.models import Finding, Severity


@dataclass(frozen=True)
class DetectionRule:
    """
    A pattern plus the static metadata of the finding it produces.

    ``pattern`` is either a compiled regex or a literal substring.
    """
    pattern: Pattern[str] | str
    title: str
    severity: Severity
    description: str = ""
    cwe: str | None = None
    owasp: str | None = None
    recommendation: str = ""
    name: str = ""

    def search(self, text: str) -> str | None:
        """Return the matched text, or None."""
        if not text:
            return None
        if isinstance(self.pattern, str):
            return self.pattern if self.pattern in text else None
        match = self.pattern.search(text)
        return match.group(0) if match else None

    @property
    def source(self) -> str:
        """The regex source or literal, for evidence strings."""
        if isinstance(self.pattern, str):
            return self.pattern
        return self.pattern.pattern

    def matches(self, text: str) -> bool:
        return self.search(text) is not None

    def to_finding(
        self,
        url: str,
        payload: str | None = None,
        evidence: str | None = None,
        **overrides,
    ) -> Finding:
        data = dict(
            severity=self.severity,
            title=self.title,
            description=self.description,
            url=url,
            payload=payload,
            evidence=evidence,
            cwe=self.cwe,
            owasp=self.owasp,
            recommendation=self.recommendation,
        )
        data.update(overrides)
        return Finding(**data)


def first_match(rules: Iterable[DetectionRule], text: str) -> DetectionRule | None:
    """First rule (in table order) whose pattern matches ``text``."""
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def all_matches(rules: Iterable[DetectionRule], text: str) -> list[DetectionRule]:
    return [rule for rule in rules if rule.matches(text)]


def rule_table(patterns: Iterable[Pattern[str] | str], flags: int = 0, **meta) -> tuple[DetectionRule, ...]:
    """
    One rule per pattern, all producing the same kind of finding.

    String patterns are compiled with ``flags``; compiled ones are kept as is.
    """
    return tuple(
        DetectionRule(pattern=re.compile(p, flags) if isinstance(p, str) else p, **meta)
        for p in patterns
    )


def first_indicator(
    indicators: Iterable[str],
    *texts: str,
    case_insensitive: bool = False,
) -> str | None:
    """First literal indicator contained in any of ``texts``."""
    haystacks = [t for t in texts if t]
    if case_insensitive:
        haystacks = [t.lower() for t in haystacks]
    for indicator in indicators:
        needle = indicator.lower() if case_insensitive else indicator
        if any(needle in hay for hay in haystacks):
            return indicator
    return None


# ============================================================================
# Oracles
# ============================================================================

def calculate_similarity(a: str, b: str) -> float:
    """
    Rough similarity of two response bodies in [0, 1].

    Containment scores the length ratio; otherwise characters are compared
    position by position. Order-sensitive, no normalization.
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    longer, shorter = (a, b) if len(a) >= len(b) else (b, a)
    if shorter in longer:
        return len(shorter) / len(longer)

    same = sum(1 for x, y in zip(a, b) if x == y)
    return same / len(longer)


def exceeds_threshold(elapsed_ms: float, threshold_ms: float) -> bool:
    """Timing oracle: latency at or above the threshold is suspicious."""
    return elapsed_ms >= threshold_ms


# ============================================================================
# JWT
# ============================================================================

JWT_PATTERN = re.compile(r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*")


def find_jwt(value: str) -> str | None:
    if not value:
        return None
    match = JWT_PATTERN.search(value)
    return match.group(0) if match else None


def decode_jwt_part(segment: str) -> dict:
    """Decode one base64url JWT segment to a dict. Raises ValueError."""
    padded = segment + "=" * (-len(segment) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeError, json.JSONDecodeError, base64.binascii.Error) as e:
        raise ValueError(f"Malformed JWT segment: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("JWT segment is not a JSON object")
    return data


def decode_jwt(token: str) -> tuple[dict, dict]:
    """Return (header, payload). Raises ValueError on malformed tokens."""
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("JWT must have three segments")
    return decode_jwt_part(parts[0]), decode_jwt_part(parts[1])
