"""
Transport layer for probes.

HttpProbe wraps httpx.AsyncClient and BrowserSession wraps a Playwright
Chromium context. Both capture what the target returned into plain models
(ProbeResponse, PageSnapshot) and swallow transport failures: a timeout,
refused connection or broken response yields None, which probes treat as
"no finding". There is no retry.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from dast_scanner.models import CookieInfo, FormInfo, PageSnapshot, ProbeResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
USER_AGENT = "dast-scanner/0.1"


def load_storage_cookies(auth_file: Path | str | None) -> list[dict[str, Any]]:
    """Cookies from a Playwright storage-state file, or [] if unreadable."""
    if not auth_file:
        return []
    path = Path(auth_file)
    if not path.exists():
        return []
    try:
        state = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to read auth state {path}: {e}")
        return []
    return list(state.get("cookies", []))


# ============================================================================
# HTTP
# ============================================================================

class HttpProbe:
    """
    Single-shot HTTP requests against the target.

    Relative paths are resolved against ``base_url``. Redirects are followed
    unless a call asks otherwise.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        auth_file: Path | str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            verify=False,
            headers={"User-Agent": USER_AGENT},
        )
        for cookie in load_storage_cookies(auth_file):
            self._client.cookies.set(
                cookie.get("name", ""),
                cookie.get("value", ""),
                domain=cookie.get("domain", ""),
                path=cookie.get("path", "/"),
            )

    async def __aenter__(self) -> "HttpProbe":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def url(self, path: str) -> str:
        """Absolute URL for a path (absolute URLs pass through)."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        data: dict[str, Any] | None = None,
        json_body: Any = None,
        content: str | bytes | None = None,
        files: dict[str, tuple] | None = None,
        timeout: float | None = None,
        follow_redirects: bool = True,
    ) -> ProbeResponse | None:
        """Issue one request. Returns None on any transport failure."""
        url = self.url(path)
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method.upper(),
                url,
                params=params,
                headers=headers,
                data=data,
                json=json_body,
                content=content,
                files=files,
                timeout=timeout or self.timeout,
                follow_redirects=follow_redirects,
            )
        except httpx.HTTPError as e:
            logger.debug(f"{method.upper()} {url} failed: {type(e).__name__}: {e}")
            return None
        elapsed_ms = (time.perf_counter() - started) * 1000

        try:
            body = response.text
        except (UnicodeDecodeError, LookupError):
            body = response.content.decode("utf-8", errors="replace")

        return ProbeResponse(
            url=str(response.url),
            status=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=body,
            elapsed_ms=elapsed_ms,
        )

    async def get(self, path: str, **kwargs) -> ProbeResponse | None:
        return await self.send("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> ProbeResponse | None:
        return await self.send("POST", path, **kwargs)


async def fan_out(
    count: int,
    factory: Callable[[], Awaitable[ProbeResponse | None]],
    limit: int | None = None,
) -> list[ProbeResponse | None]:
    """
    Issue ``count`` calls concurrently and collect every result.

    At most ``limit`` calls are in flight at once (all of them when None).
    Result order carries no meaning. Failed calls come back as None.
    """
    semaphore = asyncio.Semaphore(limit or count)

    async def one() -> ProbeResponse | None:
        async with semaphore:
            return await factory()

    results = await asyncio.gather(*(one() for _ in range(count)), return_exceptions=True)

    collected: list[ProbeResponse | None] = []
    for result in results:
        if isinstance(result, Exception):
            logger.debug(f"Burst request failed: {result}")
            collected.append(None)
        else:
            collected.append(result)
    return collected


def count_successes(
    responses: Iterable[ProbeResponse | None],
    statuses: Iterable[int] = (200,),
) -> int:
    accepted = set(statuses)
    return sum(1 for r in responses if r is not None and r.status in accepted)


# ============================================================================
# Browser
# ============================================================================

# Collected in one evaluate() call after each navigation
_SNAPSHOT_JS = """
() => {
  const storage = {};
  try {
    for (let i = 0; i < window.localStorage.length; i++) {
      const key = window.localStorage.key(i);
      if (key) storage[key] = window.localStorage.getItem(key) || '';
    }
  } catch (e) {}
  const forms = Array.from(document.querySelectorAll('form')).map(f => ({
    action: f.getAttribute('action') || '',
    method: (f.getAttribute('method') || 'get').toLowerCase(),
    enctype: f.getAttribute('enctype') || '',
    element_id: f.getAttribute('id') || '',
    inputs: Array.from(f.querySelectorAll('input, textarea, select'))
      .filter(i => (i.getAttribute('type') || '').toLowerCase() !== 'hidden')
      .map(i => i.getAttribute('name')).filter(Boolean),
    hidden_inputs: Array.from(f.querySelectorAll('input[type="hidden"]'))
      .map(i => i.getAttribute('name')).filter(Boolean),
  }));
  const meta = document.querySelector('meta[http-equiv="refresh" i]');
  return {
    body_text: document.body ? document.body.innerText : '',
    local_storage: storage,
    forms: forms,
    script_sources: Array.from(document.querySelectorAll('script[src]'))
      .map(s => s.src).filter(Boolean),
    meta_refresh: meta ? meta.getAttribute('content') : null,
    password_inputs: Array.from(document.querySelectorAll('input[type="password"]'))
      .map(i => ({
        name: i.getAttribute('name') || '',
        minlength: i.getAttribute('minlength') || '',
        maxlength: i.getAttribute('maxlength') || '',
        pattern: i.getAttribute('pattern') || '',
      })),
    xss_triggered: Object.prototype.hasOwnProperty.call(window, '__xss_triggered__'),
  };
}
"""


class BrowserSession:
    """
    A Chromium context reused for every navigation in a scan.

    When ``storage_state`` points to an existing file the context starts
    with those cookies and local storage (the authenticated session).
    """

    def __init__(
        self,
        base_url: str,
        headless: bool = True,
        storage_state: Path | str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.headless = headless
        self.storage_state = Path(storage_state) if storage_state else None
        self.timeout = timeout
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        state = None
        if self.storage_state and self.storage_state.exists():
            state = str(self.storage_state)
        self._context = await self._browser.new_context(
            base_url=self.base_url,
            storage_state=state,
            ignore_https_errors=True,
        )
        self._context.set_default_timeout(self.timeout * 1000)
        self._page = await self._context.new_page()
        # Dialogs would block navigation; record them as executed script instead
        self._page.on("dialog", self._on_dialog)

    async def close(self) -> None:
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except PlaywrightError as e:
            logger.debug(f"Error stopping browser: {e}")
        finally:
            if self._playwright:
                await self._playwright.stop()
            self._playwright = self._browser = self._context = self._page = None

    async def _on_dialog(self, dialog) -> None:
        try:
            await self._page.evaluate("() => { window.__xss_triggered__ = true; }")
            await dialog.dismiss()
        except PlaywrightError as e:
            logger.debug(f"Dialog handling failed: {e}")

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _snapshot(self, status: int | None) -> PageSnapshot:
        page = self._page
        content = await page.content()
        data = await page.evaluate(_SNAPSHOT_JS)
        cookies = await self._context.cookies()
        return PageSnapshot(
            url=page.url,
            status=status,
            content=content,
            body_text=data.get("body_text") or "",
            cookies=[CookieInfo.from_browser(c) for c in cookies],
            local_storage=data.get("local_storage") or {},
            forms=[FormInfo(**f) for f in data.get("forms") or []],
            script_sources=data.get("script_sources") or [],
            meta_refresh=data.get("meta_refresh"),
            password_inputs=data.get("password_inputs") or [],
            xss_triggered=bool(data.get("xss_triggered")),
        )

    async def visit(self, path: str, settle_ms: int = 0) -> PageSnapshot | None:
        """Navigate and capture the resulting page. None on failure."""
        url = self.url(path)
        try:
            response = await self._page.goto(url, wait_until="domcontentloaded")
            if settle_ms:
                await self._page.wait_for_timeout(settle_ms)
            return await self._snapshot(response.status if response else None)
        except PlaywrightError as e:
            logger.debug(f"Navigation to {url} failed: {e}")
            return None

    async def submit_form(
        self,
        path: str,
        fields: dict[str, str],
        settle_ms: int = 1000,
        navigate: bool = True,
    ) -> PageSnapshot | None:
        """
        Open ``path``, fill fields and click the first submit button.

        ``fields`` maps CSS selectors to values; the first element matching
        each selector is filled. With ``navigate=False`` the current page is
        used as is. Returns None when a field or the submit button is
        missing, or when the browser fails.
        """
        try:
            if navigate:
                await self._page.goto(self.url(path), wait_until="domcontentloaded")
            for selector, value in fields.items():
                field = self._page.locator(selector).first
                if await field.count() == 0:
                    return None
                await field.fill(value)
            submit = self._page.locator('button[type="submit"], input[type="submit"]').first
            if await submit.count() == 0:
                return None
            await submit.click()
            await self._page.wait_for_timeout(settle_ms)
            return await self._snapshot(None)
        except PlaywrightError as e:
            logger.debug(f"Form submission on {path} failed: {e}")
            return None
