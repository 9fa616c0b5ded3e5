"""
Scan Runner

Runs probe categories against the target one at a time.

Features:
- Authentication gate before any traffic (unless skipped)
- Target reachability check
- One reporter shared by every probe
- Browser checks skipped when Chromium cannot be started
- A crashing probe is logged and the scan moves on
- Optional delay between categories
"""

import asyncio
import logging
import time

import aiohttp
from playwright.async_api import Error as PlaywrightError

from dast_scanner.auth import AuthGate
from dast_scanner.config import ScanConfig
from dast_scanner.errors import ConfigError, ToolUnavailableError
from dast_scanner.probes import PROBES, ProbeFunc
from dast_scanner.probes.base import ProbeContext
from dast_scanner.reporter import DASTReporter
from dast_scanner.transport import BrowserSession, HttpProbe

logger = logging.getLogger(__name__)


class ScanRunner:
    """
    Drives a scan.

    Probes run sequentially, each to completion, in registry order. All of
    them append to the same reporter, which is returned at the end.
    """

    def __init__(
        self,
        config: ScanConfig,
        reporter: DASTReporter | None = None,
        probes: dict[str, ProbeFunc] | None = None,
        http: HttpProbe | None = None,
        use_browser: bool = True,
    ):
        """
        Args:
            config: Scan configuration
            reporter: Collector for findings (a new one if omitted)
            probes: name -> probe coroutine (defaults to every category)
            http: Pre-built HTTP transport; the runner opens its own otherwise
            use_browser: Start a Chromium session for DOM-based checks
        """
        self.config = config
        self.reporter = reporter or DASTReporter(target=config.target)
        self.probes = dict(PROBES if probes is None else probes)
        self.http = http
        self.use_browser = use_browser

    # ========================================================================
    # Prechecks
    # ========================================================================

    def check_auth(self) -> None:
        """Raise AuthStateError unless the auth snapshot is fresh."""
        if self.config.skip_auth:
            logger.info("⏭️  Skipping authentication check")
            return
        AuthGate(self.config.auth_file).require_fresh()

    async def check_target(self) -> None:
        target = self.config.target
        logger.info(f"Checking target connectivity: {target}")
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10)) as session:
                async with session.get(target, ssl=False) as resp:
                    logger.info(f"✅ Target reachable (status: {resp.status})")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ Cannot reach target {target}: {e}")
            raise ToolUnavailableError(
                f"Cannot reach target {target}",
                hint="Make sure your target application is running (TARGET_ENDPOINT)",
            ) from e

    # ========================================================================
    # Running
    # ========================================================================

    async def run(self) -> DASTReporter:
        """Run every configured probe category."""
        return await self.run_selected(list(self.probes))

    async def run_selected(self, names: list[str]) -> DASTReporter:
        """Run the named categories, in registry order."""
        unknown = [name for name in names if name not in self.probes]
        if unknown:
            raise ConfigError(
                f"Unknown probe category: {', '.join(unknown)}",
                hint=f"Available: {', '.join(self.probes)}",
            )
        selected = [name for name in self.probes if name in names]

        self.check_auth()
        await self.check_target()

        start = time.perf_counter()
        logger.info(f"Starting scan of {self.config.target} ({len(selected)} categories)")

        http = self.http or HttpProbe(
            self.config.target,
            timeout=self.config.timeout,
            auth_file=None if self.config.skip_auth else self.config.auth_file,
        )
        browser = await self._open_browser() if self.use_browser else None
        try:
            ctx = ProbeContext(
                http=http,
                reporter=self.reporter,
                config=self.config,
                browser=browser,
            )
            for i, name in enumerate(selected, 1):
                logger.info(f"[{i}/{len(selected)}] Running {name} checks...")
                before = len(self.reporter.get_findings())
                await self._run_probe_safe(name, ctx)
                added = len(self.reporter.get_findings()) - before
                logger.info(f"  {name}: {added} finding(s)")

                if self.config.delay > 0 and i < len(selected):
                    await asyncio.sleep(self.config.delay)
        finally:
            if browser is not None:
                await browser.close()
            if self.http is None:
                await http.close()

        logger.info(f"⏱️  Scan finished in {time.perf_counter() - start:.1f}s")
        return self.reporter

    async def _open_browser(self) -> BrowserSession | None:
        session = BrowserSession(
            self.config.target,
            headless=self.config.headless,
            storage_state=None if self.config.skip_auth else self.config.auth_file,
            timeout=self.config.timeout,
        )
        try:
            await session.start()
        except PlaywrightError as e:
            logger.warning(f"⚠️  Could not start browser, DOM-based checks will be skipped: {e}")
            await session.close()
            return None
        return session

    async def _run_probe_safe(self, name: str, ctx: ProbeContext) -> None:
        """Run one probe; anything it raises is logged, not propagated."""
        try:
            await self.probes[name](ctx)
        except Exception as e:
            logger.error(f"❌ Error in {name} checks: {e}")
