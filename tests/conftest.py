"""
tests/conftest.py — shared fixtures for the DAST scanner tests
"""
import httpx
import pytest

from dast_scanner.config import ScanConfig
from dast_scanner.models import PageSnapshot, ProbeResponse
from dast_scanner.probes.base import ProbeContext
from dast_scanner.reporter import DASTReporter
from dast_scanner.transport import HttpProbe

TARGET = "http://testserver"

CONFIG_ENV_VARS = [
    "TARGET_ENDPOINT", "HEADLESS", "SKIP_AUTH", "AUTH_FILE", "REPORT_DIR",
    "REPORT_FORMAT", "REQUEST_TIMEOUT", "SCAN_DELAY", "ZAP_API_URL", "ZAP_FORMAT",
    "ZAP_REPORT_DIR", "ZAP_OPENAPI_URL", "SAST_TOOL", "SOURCE_CODE_PATH",
    "SONARQUBE_TOKEN", "SONARQUBE_URL", "SONAR_PROJECT_KEY", "SONAR_EXCLUSIONS",
    "SEMGREP_RULES",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No scanner settings leak in from the developer's shell or .env."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def config(tmp_path):
    return ScanConfig(
        target=TARGET,
        skip_auth=True,
        auth_file=tmp_path / ".auth" / "user.json",
        report_dir=tmp_path / "reports",
        zap_report_dir=tmp_path / "zap",
    )


@pytest.fixture()
def reporter():
    return DASTReporter(target=TARGET)


# ── Transport doubles ─────────────────────────────────────────────────────────

@pytest.fixture()
def mock_http():
    """
    Build an HttpProbe whose traffic goes to ``handler(request) -> httpx.Response``.
    """
    def build(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        return HttpProbe(TARGET, client=client)
    return build


def refuse_all(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


def not_found(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, text="Not Found")


class FakeBrowser:
    """Serves prepared snapshots by path; everything else fails like a dead page."""

    def __init__(self, pages: dict[str, PageSnapshot] | None = None, submitted: PageSnapshot | None = None):
        self.pages = pages or {}
        self.submitted = submitted
        self.visited: list[str] = []

    async def visit(self, path, settle_ms=0):
        self.visited.append(path)
        return self.pages.get(path)

    async def submit_form(self, path, fields, settle_ms=1000, navigate=True):
        return self.submitted

    async def close(self):
        pass


@pytest.fixture()
def make_ctx(config, reporter):
    def build(http, browser=None):
        return ProbeContext(http=http, reporter=reporter, config=config, browser=browser)
    return build


@pytest.fixture()
def response():
    def build(status=200, body="", headers=None, url=f"{TARGET}/", elapsed_ms=0.0):
        return ProbeResponse(
            url=url,
            status=status,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            body=body,
            elapsed_ms=elapsed_ms,
        )
    return build


@pytest.fixture()
def page():
    def build(url=f"{TARGET}/", **kwargs):
        return PageSnapshot(url=url, **kwargs)
    return build
