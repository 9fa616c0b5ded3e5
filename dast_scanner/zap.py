"""
OWASP ZAP orchestration over the ZAP REST API.

Scan modes:
- quick: spider + active scan + report
- full: spider + AJAX spider + active scan + report
- baseline: spider only (passive findings) + report
- api: OpenAPI import + active scan + report
- report: report from the current ZAP session
- status: daemon check
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx

from dast_scanner.config import ZAP_FORMATS, ScanConfig
from dast_scanner.errors import ConfigError, ToolUnavailableError

logger = logging.getLogger(__name__)

ZAP_HINT = "Start ZAP with: docker-compose up -d zap"

REPORT_ENDPOINTS = {
    "html": "/OTHER/core/other/htmlreport",
    "xml": "/OTHER/core/other/xmlreport",
    "json": "/JSON/core/view/alerts",
    "md": "/OTHER/core/other/mdreport",
}

ZAP_MODES = ("quick", "full", "baseline", "api", "report", "status")

RISK_LEVELS = {"high": "3", "medium": "2", "low": "1"}


class ZapClient:
    """Thin async client for the ZAP daemon API."""

    def __init__(
        self,
        api_url: str = "http://localhost:8080",
        timeout: float = 30.0,
        poll_interval: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.poll_interval = poll_interval
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.api_url, timeout=timeout)

    async def __aenter__(self) -> "ZapClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, path: str, **params: Any) -> httpx.Response:
        try:
            response = await self._client.get(path, params=params or None)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ToolUnavailableError(f"ZAP request {path} failed: {e}", hint=ZAP_HINT) from e
        return response

    async def _json(self, path: str, **params: Any) -> dict[str, Any]:
        response = await self._get(path, **params)
        try:
            return response.json()
        except ValueError as e:
            raise ToolUnavailableError(f"ZAP returned invalid JSON for {path}", hint=ZAP_HINT) from e

    # ========================================================================
    # Daemon
    # ========================================================================

    async def version(self) -> str:
        data = await self._json("/JSON/core/view/version")
        return str(data.get("version", "unknown"))

    async def check(self) -> str:
        """Return the ZAP version; raise ToolUnavailableError if ZAP is down."""
        logger.info(f"Checking ZAP daemon at {self.api_url}...")
        try:
            version = await self.version()
        except ToolUnavailableError as e:
            logger.error(f"✗ ZAP is not accessible at {self.api_url}")
            raise ToolUnavailableError(
                f"ZAP is not accessible at {self.api_url}", hint=ZAP_HINT
            ) from e
        logger.info(f"✓ ZAP is running (version: {version})")
        return version

    async def wait_until_ready(self, max_attempts: int = 30, interval: float = 2.0) -> str:
        logger.info("Waiting for ZAP to be ready...")
        for attempt in range(1, max_attempts + 1):
            try:
                version = await self.version()
            except ToolUnavailableError:
                logger.info(f"  Attempt {attempt}/{max_attempts}...")
                await asyncio.sleep(interval)
                continue
            logger.info("✓ ZAP is ready")
            return version
        raise ToolUnavailableError("ZAP did not become ready in time", hint=ZAP_HINT)

    # ========================================================================
    # Scans
    # ========================================================================

    async def spider(self, target: str) -> str:
        """Run the traditional spider to completion and return its scan id."""
        logger.info(f"=== Starting Spider Scan === Target: {target}")
        data = await self._json(
            "/JSON/spider/action/scan/", url=target, maxChildren=10, recurse="true"
        )
        scan_id = data.get("scan")
        if scan_id is None:
            raise ToolUnavailableError("Failed to start spider", hint=ZAP_HINT)
        logger.info(f"Spider started (ID: {scan_id})")

        while True:
            status = await self._json("/JSON/spider/view/status/", scanId=scan_id)
            progress = str(status.get("status", "0"))
            logger.info(f"  Spider progress: {progress}%")
            if progress == "100":
                break
            await asyncio.sleep(self.poll_interval)

        results = await self._json("/JSON/spider/view/results/", scanId=scan_id)
        logger.info(f"✓ Spider complete, URLs found: {len(results.get('results', []))}")
        return str(scan_id)

    async def ajax_spider(self, target: str) -> None:
        logger.info(f"=== Starting AJAX Spider === Target: {target}")
        await self._json("/JSON/ajaxSpider/action/scan/", url=target, inScope="true")
        while True:
            data = await self._json("/JSON/ajaxSpider/view/status")
            status = data.get("status", "running")
            logger.info(f"  AJAX Spider status: {status}")
            if status == "stopped":
                break
            await asyncio.sleep(self.poll_interval)
        logger.info("✓ AJAX Spider complete")

    async def active_scan(self, target: str) -> str:
        logger.info(f"=== Starting Active Scan === Target: {target}")
        data = await self._json(
            "/JSON/ascan/action/scan/", url=target, recurse="true", inScopeOnly="false"
        )
        scan_id = data.get("scan")
        if scan_id is None:
            raise ToolUnavailableError("Failed to start active scan", hint=ZAP_HINT)
        logger.info(f"Active scan started (ID: {scan_id})")

        while True:
            status = await self._json("/JSON/ascan/view/status/", scanId=scan_id)
            progress = str(status.get("status", "0"))
            logger.info(f"  Active scan progress: {progress}%")
            if progress == "100":
                break
            await asyncio.sleep(self.poll_interval)
        logger.info("✓ Active scan complete")
        return str(scan_id)

    async def import_openapi(self, openapi_url: str) -> bool:
        data = await self._json("/JSON/openapi/action/importUrl/", url=openapi_url)
        if data.get("result") == "OK":
            logger.info("✓ OpenAPI imported successfully")
            return True
        logger.warning(f"⚠ OpenAPI import may have issues: {data}")
        return False

    # ========================================================================
    # Reports
    # ========================================================================

    async def fetch_report(self, fmt: str) -> bytes:
        if fmt not in REPORT_ENDPOINTS:
            raise ConfigError(
                f"Unknown format: {fmt}",
                hint=f"Set ZAP_FORMAT to one of: {', '.join(ZAP_FORMATS)}",
            )
        response = await self._get(REPORT_ENDPOINTS[fmt])
        return response.content

    async def save_report(self, fmt: str, report_dir: Path | str, now: datetime | None = None) -> Path:
        report_dir = Path(report_dir)
        content = await self.fetch_report(fmt)
        report_dir.mkdir(parents=True, exist_ok=True)
        timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        path = report_dir / f"zap-report-{timestamp}.{fmt}"
        path.write_bytes(content)
        logger.info(f"✓ Report saved: {path}")
        return path

    async def alert_summary(self) -> dict[str, int]:
        data = await self._json("/JSON/core/view/alerts")
        alerts = data.get("alerts", [])
        summary = {"total": len(alerts)}
        for level, code in RISK_LEVELS.items():
            summary[level] = sum(1 for a in alerts if str(a.get("riskcode")) == code)
        return summary


async def run_zap_mode(
    config: ScanConfig,
    mode: str,
    client: ZapClient | None = None,
    wait: bool = False,
) -> Path | None:
    """
    Run one ZAP mode. Returns the saved report path, or None for ``status``.

    With ``wait`` the daemon is polled until it answers instead of being
    checked once.
    """
    if mode not in ZAP_MODES:
        raise ConfigError(f"Unknown ZAP command: {mode}", hint=f"Use one of: {', '.join(ZAP_MODES)}")
    if mode == "api" and not config.zap_openapi_url:
        raise ConfigError(
            "ZAP_OPENAPI_URL not set",
            hint="Set it in .env or environment, e.g. ZAP_OPENAPI_URL=http://localhost:3000/api-docs",
        )

    zap = client or ZapClient(config.zap_api_url)
    try:
        if wait:
            await zap.wait_until_ready()
        elif mode != "report":
            await zap.check()
        if mode == "status":
            return None

        target = config.target
        if mode in ("quick", "full", "baseline"):
            await zap.spider(target)
        if mode == "full":
            await zap.ajax_spider(target)
        if mode == "api":
            logger.info(f"OpenAPI URL: {config.zap_openapi_url}")
            await zap.import_openapi(config.zap_openapi_url)
        if mode in ("quick", "full", "api"):
            await zap.active_scan(target)

        path = await zap.save_report(config.zap_format, config.zap_report_dir)
        summary = await zap.alert_summary()
        logger.info("Scan Summary:")
        logger.info(f"  Total Alerts: {summary['total']}")
        logger.info(f"  High Risk: {summary['high']}")
        logger.info(f"  Medium Risk: {summary['medium']}")
        logger.info(f"  Low Risk: {summary['low']}")
        return path
    finally:
        if client is None:
            await zap.close()
