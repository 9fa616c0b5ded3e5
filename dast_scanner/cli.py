#!/usr/bin/env python3
"""
DAST Scanner CLI

Runs black-box security probes against a web application, plus OWASP ZAP
and SAST orchestration.

Usage:
    # Capture an authenticated browser session (manual login)
    dast-scanner auth

    # Full scan with the stored session
    dast-scanner scan

    # Selected categories, JSON + HTML report, no authentication
    dast-scanner scan -c xss -c sqli --format both --skip-auth

    # ZAP and SAST
    dast-scanner zap quick
    dast-scanner sast

Exit codes:
    0  scan completed (findings or not)
    1  authentication missing or expired
    2  configuration error
    3  target or external tool unavailable
"""

import asyncio
import logging
import sys
from typing import Awaitable, Callable

import click

from dast_scanner.auth import AuthGate, capture_auth_state
from dast_scanner.config import REPORT_FORMATS, ScanConfig
from dast_scanner.errors import ScannerError
from dast_scanner.executor import ScanRunner
from dast_scanner.models import AuthState
from dast_scanner.probes import PROBE_NAMES
from dast_scanner.report import write_reports
from dast_scanner.reporter import DASTReporter
from dast_scanner.sast import load_semgrep_findings, run_sast
from dast_scanner.zap import ZAP_MODES, run_zap_mode

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def _load_config(ctx: click.Context, **overrides) -> ScanConfig:
    return ScanConfig.from_env(env_file=ctx.obj.get("env_file"), **overrides)


def _run(main: Callable[[], Awaitable[int]]) -> int:
    """Run an async command, mapping scanner errors to exit codes."""
    try:
        return asyncio.run(main())
    except ScannerError as e:
        logger.error(f"❌ {e.message}")
        if e.hint:
            logger.error(f"   {e.hint}")
        return e.exit_code


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False),
    help="Path to a .env file (default: .env in the working directory)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose logging"
)
@click.option(
    "--quiet", "-q",
    is_flag=True,
    help="Only warnings and errors"
)
@click.pass_context
def main(ctx: click.Context, env_file: str | None, verbose: bool, quiet: bool):
    """Dynamic application security testing for web applications."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif quiet:
        logging.getLogger().setLevel(logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    ctx.obj["quiet"] = quiet


# ============================================================================
# scan
# ============================================================================

@main.command()
@click.option(
    "--target", "-t",
    help="Target base URL (default: TARGET_ENDPOINT or http://localhost:3000)"
)
@click.option(
    "--category", "-c", "categories",
    type=click.Choice(PROBE_NAMES),
    multiple=True,
    help="Probe category to run (repeatable, default: all)"
)
@click.option(
    "--format", "-f", "report_format",
    type=click.Choice(REPORT_FORMATS),
    help="Report format (default: REPORT_FORMAT or html)"
)
@click.option(
    "--report-dir", "-o",
    type=click.Path(file_okay=False),
    help="Directory for reports (default: REPORT_DIR or reports/dast)"
)
@click.option(
    "--headless/--no-headless",
    default=None,
    help="Run browser in headless mode (default: HEADLESS or headless)"
)
@click.option(
    "--skip-auth",
    is_flag=True,
    help="Scan without the stored authentication session"
)
@click.option(
    "--timeout",
    type=float,
    help="Per-request timeout in seconds (default: 10)"
)
@click.option(
    "--delay",
    type=float,
    help="Delay between probe categories in seconds (default: 0)"
)
@click.pass_context
def scan(
    ctx: click.Context,
    target: str | None,
    categories: tuple[str, ...],
    report_format: str | None,
    report_dir: str | None,
    headless: bool | None,
    skip_auth: bool,
    timeout: float | None,
    delay: float | None,
):
    """
    Run DAST probes against the target.

    Examples:

        dast-scanner scan

        dast-scanner scan -t http://app.local -c xss -c cors --skip-auth
    """
    quiet = ctx.obj["quiet"]

    async def _async_main() -> int:
        config = _load_config(
            ctx,
            target=target,
            report_format=report_format,
            report_dir=report_dir,
            headless=headless,
            skip_auth=True if skip_auth else None,
            timeout=timeout,
            delay=delay,
        )
        if not quiet:
            _print_banner()
            logger.info(f"Target: {config.target}")
            logger.info(f"Categories: {', '.join(categories) if categories else 'all'}")
            logger.info(f"Headless: {config.headless}")
            logger.info("=" * 60)

        runner = ScanRunner(config)
        if categories:
            reporter = await runner.run_selected(list(categories))
        else:
            reporter = await runner.run()

        paths = write_reports(reporter, config.report_dir, config.report_format)
        _print_summary(reporter)
        for path in paths:
            click.echo(f"Report: {path}")
        return 0

    sys.exit(_run(_async_main))


# ============================================================================
# auth
# ============================================================================

@main.command()
@click.option("--target", "-t", help="Target base URL")
@click.pass_context
def auth(ctx: click.Context, target: str | None):
    """Log in manually in a browser window and save the session."""

    async def _async_main() -> int:
        config = _load_config(ctx, target=target)
        await capture_auth_state(config.target, config.auth_file)
        return 0

    sys.exit(_run(_async_main))


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Show whether the stored session is usable."""

    async def _async_main() -> int:
        config = _load_config(ctx)
        current = AuthGate(config.auth_file).status()
        if current.state == AuthState.ABSENT:
            click.echo(f"No authentication found at {current.path}")
            click.echo("Run: dast-scanner auth")
        elif current.state == AuthState.EXPIRED:
            click.echo(f"Authentication expired ({round(current.age_minutes)} minutes old)")
            click.echo("Run: dast-scanner auth")
        else:
            click.echo(f"Authentication is fresh ({round(current.age_minutes)} minutes old): {current.path}")
        return 0

    sys.exit(_run(_async_main))


@main.command()
@click.pass_context
def clear(ctx: click.Context):
    """Delete the stored session."""

    async def _async_main() -> int:
        config = _load_config(ctx)
        if AuthGate(config.auth_file).clear():
            click.echo(f"Removed {config.auth_file}")
        else:
            click.echo("No stored authentication to remove")
        return 0

    sys.exit(_run(_async_main))


# ============================================================================
# zap / sast
# ============================================================================

@main.command()
@click.argument("mode", type=click.Choice(ZAP_MODES), default="quick")
@click.option("--target", "-t", help="Target base URL")
@click.option(
    "--format", "-f", "zap_format",
    type=click.Choice(["html", "xml", "json", "md"]),
    help="Report format (default: ZAP_FORMAT or html)"
)
@click.option(
    "--wait",
    is_flag=True,
    help="Poll the ZAP daemon until it is up (about a minute) instead of failing at once"
)
@click.pass_context
def zap(ctx: click.Context, mode: str, target: str | None, zap_format: str | None, wait: bool):
    """
    Drive an OWASP ZAP daemon.

    MODE is one of quick, full, baseline, api, report, status.
    """

    async def _async_main() -> int:
        config = _load_config(ctx, target=target, zap_format=zap_format)
        path = await run_zap_mode(config, mode, wait=wait)
        if path is not None:
            click.echo(f"Report: {path}")
        return 0

    sys.exit(_run(_async_main))


@main.command()
@click.option(
    "--tool",
    type=click.Choice(["sonarqube", "semgrep"]),
    help="SAST tool (default: SAST_TOOL or sonarqube)"
)
@click.option(
    "--source",
    type=click.Path(file_okay=False),
    help="Source directory (default: SOURCE_CODE_PATH or ./source_code)"
)
@click.pass_context
def sast(ctx: click.Context, tool: str | None, source: str | None):
    """Run SonarQube or Semgrep over the source code via Docker."""

    async def _async_main() -> int:
        config = _load_config(ctx, sast_tool=tool, source_path=source)
        report_path = await asyncio.to_thread(run_sast, config)
        if report_path is not None:
            reporter = DASTReporter(target=str(config.source_path))
            reporter.extend(load_semgrep_findings(report_path))
            _print_summary(reporter)
            click.echo(f"Report: {report_path}")
        return 0

    sys.exit(_run(_async_main))


def _print_banner():
    """Print CLI banner."""
    banner = """
╔══════════════════════════════════════════════════════════════╗
║           🔍 DAST Scanner                                    ║
║              Playwright + httpx probes                       ║
╚══════════════════════════════════════════════════════════════╝
"""
    logger.info(banner)


def _print_summary(reporter: DASTReporter):
    """Print scan summary and the critical/high findings."""
    logger.info("=" * 60)
    logger.info("SCAN COMPLETE")
    logger.info("=" * 60)
    click.echo(reporter.generate_summary())

    serious = [
        f for f in reporter.get_findings()
        if f.severity.value in ("critical", "high")
    ]
    if serious:
        logger.info("\n🔴 CRITICAL / HIGH FINDINGS:")
        for f in serious:
            logger.info(f"  - [{f.severity.value.upper()}] {f.title}: {f.url}")


if __name__ == "__main__":
    main()
