"""
Authentication state gate.

Scans reuse a browser storage-state snapshot captured by a manual login.
The snapshot is valid for one hour from its last modification; past that
(age of exactly 60 minutes included) it is expired and must be recaptured.
"""

import asyncio
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable

from playwright.async_api import async_playwright

from dast_scanner.errors import AuthStateError
from dast_scanner.models import AuthState, AuthStatus

logger = logging.getLogger(__name__)

AUTH_MAX_AGE = timedelta(minutes=60)
AUTH_HINT = "Run: dast-scanner auth"

AUTH_COOKIE_MARKERS = ("jwt", "token", "auth", "session")
TOKEN_STORAGE_MARKERS = ("token", "jwt", "auth")


class AuthGate:
    """Decides whether the stored auth snapshot may be used."""

    def __init__(self, auth_file: Path | str, max_age: timedelta = AUTH_MAX_AGE):
        self.auth_file = Path(auth_file)
        self.max_age = max_age

    def status(self, now: float | None = None) -> AuthStatus:
        """
        Classify the snapshot as absent, fresh or expired.

        Args:
            now: Epoch seconds to compare against (defaults to time.time())
        """
        if not self.auth_file.exists():
            return AuthStatus(state=AuthState.ABSENT, path=str(self.auth_file))

        now = time.time() if now is None else now
        age = max(0.0, now - self.auth_file.stat().st_mtime)
        state = AuthState.EXPIRED if age >= self.max_age.total_seconds() else AuthState.FRESH
        return AuthStatus(state=state, path=str(self.auth_file), age_seconds=age)

    def require_fresh(self, now: float | None = None) -> AuthStatus:
        """Return the status, raising AuthStateError unless it is fresh."""
        status = self.status(now)
        if status.state == AuthState.ABSENT:
            raise AuthStateError("No authentication found.", hint=AUTH_HINT)
        if status.state == AuthState.EXPIRED:
            raise AuthStateError(
                f"Authentication expired ({round(status.age_minutes)} minutes old).",
                hint=AUTH_HINT,
            )
        logger.info(f"✓ Using stored authentication (age: {round(status.age_minutes)} minutes)")
        return status

    def clear(self) -> bool:
        """Delete the snapshot. Returns False if there was none."""
        if not self.auth_file.exists():
            return False
        self.auth_file.unlink()
        return True


def _prompt_enter() -> None:
    input("\nPress Enter after you have logged in...")


async def capture_auth_state(
    target: str,
    auth_file: Path | str,
    wait_for_login: Callable[[], None] = _prompt_enter,
    gate: AuthGate | None = None,
) -> AuthStatus:
    """
    Open a visible browser at the target and save its state after login.

    A fresh existing snapshot is kept as is.
    """
    gate = gate or AuthGate(auth_file)
    current = gate.status()
    if current.state == AuthState.FRESH:
        logger.info(f"✓ Using stored authentication (age: {round(current.age_minutes)} minutes)")
        logger.info("  To force re-authentication, run: dast-scanner clear")
        return current

    logger.info("=" * 60)
    logger.info("MANUAL AUTHENTICATION REQUIRED")
    logger.info("=" * 60)
    logger.info(f"Target: {target}")
    logger.info("1. Log in to the application in the browser window")
    logger.info("2. Complete any MFA/2FA if required")
    logger.info("3. Once authenticated, come back here and press Enter")

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=False)
        try:
            context = await browser.new_context()
            page = await context.new_page()
            await page.goto(target)

            await asyncio.to_thread(wait_for_login)
            await page.wait_for_timeout(2000)

            cookies = await context.cookies()
            logger.info("✓ Authentication captured")
            logger.info(f"  Cookies found: {len(cookies)}")
            if cookies:
                logger.info(f"  Cookie names: {', '.join(c['name'] for c in cookies)}")
            auth_cookies = [
                c["name"] for c in cookies
                if any(marker in c["name"].lower() for marker in AUTH_COOKIE_MARKERS)
            ]
            if auth_cookies:
                logger.info(f"  Auth cookies: {', '.join(auth_cookies)}")

            storage = await page.evaluate("() => Object.keys(window.localStorage)")
            token_keys = [
                key for key in storage
                if any(marker in key.lower() for marker in TOKEN_STORAGE_MARKERS)
            ]
            if token_keys:
                logger.info(f"  localStorage tokens: {', '.join(token_keys)}")

            gate.auth_file.parent.mkdir(parents=True, exist_ok=True)
            await context.storage_state(path=str(gate.auth_file))
        finally:
            await browser.close()

    logger.info(f"✓ Authentication saved to: {gate.auth_file}")
    return gate.status()
