"""
Scan report writers (JSON and self-contained HTML).
"""

import html
import json
import logging
from datetime import datetime
from pathlib import Path

from dast_scanner.config import REPORT_FORMATS
from dast_scanner.errors import ConfigError
from dast_scanner.models import SEVERITY_ORDER
from dast_scanner.reporter import DASTReporter

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "critical": "#7b1fa2",
    "high": "#d32f2f",
    "medium": "#f57c00",
    "low": "#1976d2",
    "info": "#616161",
}


def write_json_report(reporter: DASTReporter, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    output = reporter.to_output().model_dump(mode="json")
    with open(path, "w") as f:
        json.dump(output, f, indent=2, default=str)
    logger.info(f"JSON report written to: {path}")
    return path


def _esc(value: str | None) -> str:
    return html.escape(value or "")


def render_html(reporter: DASTReporter) -> str:
    """Findings as an HTML table in detection order. All values are escaped."""
    output = reporter.to_output()
    summary_cells = "".join(
        f'<td style="color:{SEVERITY_COLORS[s.value]}"><b>{output.summary.get(s.value, 0)}</b> {s.value}</td>'
        for s in SEVERITY_ORDER
    )

    rows = []
    for i, finding in enumerate(output.findings, 1):
        severity = finding.severity.value
        rows.append(
            f"<tr><td>{i}</td>"
            f'<td style="color:{SEVERITY_COLORS[severity]}"><b>{_esc(severity.upper())}</b></td>'
            f"<td>{_esc(finding.title)}<br><small>{_esc(finding.description)}</small></td>"
            f"<td><code>{_esc(finding.url)}</code></td>"
            f"<td><code>{_esc(finding.payload)}</code></td>"
            f"<td>{_esc(finding.evidence)}</td>"
            f"<td>{_esc(finding.cwe)}<br><small>{_esc(finding.owasp)}</small></td>"
            f"<td>{_esc(finding.recommendation)}</td></tr>"
        )
    body = "".join(rows) if rows else '<tr><td colspan="8">No findings.</td></tr>'

    return f"""<!doctype html>
<html lang="en"><head>
<meta charset="utf-8"><title>DAST Scan Report - {_esc(output.target)}</title>
<style>
body{{font-family: ui-sans-serif,system-ui,Segoe UI,Roboto,Arial,sans-serif; margin:24px;}}
table{{border-collapse:collapse;width:100%;margin:8px 0 24px 0;}}
th,td{{border:1px solid #ddd;padding:8px;vertical-align:top;}}
th{{background:#fafafa;text-align:left}}
code{{white-space:pre-wrap;word-break:break-all}}
.meta{{color:#555}}
</style>
</head><body>
<h1>DAST Scan Report</h1>
<p class="meta">Target: {_esc(output.target)}<br>Scan ID: {_esc(output.scan_id)}<br>
Generated: {_esc(output.generated_at.isoformat())}</p>
<table><tr>{summary_cells}<td><b>{output.summary.get("total", 0)}</b> total</td></tr></table>
<table><thead><tr><th>#</th><th>Severity</th><th>Finding</th><th>URL</th><th>Payload</th>
<th>Evidence</th><th>CWE / OWASP</th><th>Recommendation</th></tr></thead>
<tbody>{body}</tbody></table>
</body></html>"""


def write_html_report(reporter: DASTReporter, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_html(reporter), encoding="utf-8")
    logger.info(f"HTML report written to: {path}")
    return path


def write_reports(
    reporter: DASTReporter,
    report_dir: Path | str,
    fmt: str = "html",
    now: datetime | None = None,
) -> list[Path]:
    """Write ``dast-report-<timestamp>.<ext>`` files for the requested format."""
    if fmt not in REPORT_FORMATS:
        raise ConfigError(
            f"Unsupported report format: {fmt}",
            hint=f"Use one of: {', '.join(REPORT_FORMATS)}",
        )
    report_dir = Path(report_dir)
    stem = f"dast-report-{(now or datetime.now()).strftime('%Y%m%d_%H%M%S')}"

    written = []
    if fmt in ("json", "both"):
        written.append(write_json_report(reporter, report_dir / f"{stem}.json"))
    if fmt in ("html", "both"):
        written.append(write_html_report(reporter, report_dir / f"{stem}.html"))
    return written
