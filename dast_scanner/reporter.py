"""
Finding Reporter

Collects findings in detection order for the duration of one scan.
A single reporter is created per run and handed to every probe.
"""

import logging
from typing import Iterable

from uuid_extensions import uuid7str

from dast_scanner.models import SEVERITY_ORDER, Finding, ScanOutput, Severity

logger = logging.getLogger(__name__)

SEVERITY_EMOJI = {
    Severity.CRITICAL: "🔴",
    Severity.HIGH: "🟠",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "🔵",
    Severity.INFO: "⚪",
}


class DASTReporter:
    """Accumulates findings and renders a severity summary."""

    def __init__(self, target: str = "", scan_id: str | None = None):
        self.target = target
        self.scan_id = scan_id or uuid7str()
        self._findings: list[Finding] = []

    def add_finding(self, finding: Finding) -> None:
        """Append a finding. Duplicates are kept."""
        self._findings.append(finding)
        emoji = SEVERITY_EMOJI.get(finding.severity, "?")
        logger.info(f"  {emoji} [{finding.severity.value.upper()}] {finding.title} at {finding.url}")

    def extend(self, findings: Iterable[Finding]) -> None:
        for finding in findings:
            self.add_finding(finding)

    def get_findings(self) -> list[Finding]:
        """All findings in insertion order (a copy)."""
        return list(self._findings)

    def get_findings_by_severity(self, severity: Severity | str) -> list[Finding]:
        severity = Severity(severity)
        return [f for f in self._findings if f.severity == severity]

    def has_findings(self) -> bool:
        return len(self._findings) > 0

    def count_by_severity(self) -> dict[Severity, int]:
        """Counts per severity, critical first."""
        counts = {severity: 0 for severity in SEVERITY_ORDER}
        for finding in self._findings:
            counts[finding.severity] += 1
        return counts

    def generate_summary(self) -> str:
        counts = self.count_by_severity()
        lines = [
            "DAST Scan Summary",
            "=================",
            f"Critical: {counts[Severity.CRITICAL]}",
            f"High:     {counts[Severity.HIGH]}",
            f"Medium:   {counts[Severity.MEDIUM]}",
            f"Low:      {counts[Severity.LOW]}",
            f"Info:     {counts[Severity.INFO]}",
            f"Total:    {len(self._findings)}",
        ]
        return "\n".join(lines)

    def to_output(self) -> ScanOutput:
        counts = self.count_by_severity()
        summary = {severity.value: count for severity, count in counts.items()}
        summary["total"] = len(self._findings)
        return ScanOutput(
            scan_id=self.scan_id,
            target=self.target,
            summary=summary,
            findings=self.get_findings(),
        )
