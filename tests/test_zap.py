"""tests/test_zap.py — ZAP API orchestration against a mocked daemon"""
import asyncio
from datetime import datetime

import httpx
import pytest

from dast_scanner.errors import ConfigError, ToolUnavailableError
from dast_scanner.zap import ZapClient, run_zap_mode

from conftest import refuse_all

ZAP_URL = "http://zap.test:8080"


class FakeZap:
    """Answers the ZAP endpoints the client uses and records which were called."""

    def __init__(self, alerts=None):
        self.calls: list[str] = []
        self.alerts = alerts or []
        self.spider_polls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)
        if path == "/JSON/core/view/version":
            return httpx.Response(200, json={"version": "2.14.0"})
        if path in ("/JSON/spider/action/scan/", "/JSON/ascan/action/scan/"):
            return httpx.Response(200, json={"scan": "7"})
        if path == "/JSON/spider/view/status/":
            self.spider_polls += 1
            return httpx.Response(200, json={"status": "100" if self.spider_polls > 1 else "40"})
        if path == "/JSON/spider/view/results/":
            return httpx.Response(200, json={"results": ["http://testserver/", "http://testserver/login"]})
        if path == "/JSON/ascan/view/status/":
            return httpx.Response(200, json={"status": "100"})
        if path == "/JSON/ajaxSpider/action/scan/":
            return httpx.Response(200, json={"Result": "OK"})
        if path == "/JSON/ajaxSpider/view/status":
            return httpx.Response(200, json={"status": "stopped"})
        if path == "/JSON/openapi/action/importUrl/":
            return httpx.Response(200, json={"result": "OK"})
        if path == "/OTHER/core/other/htmlreport":
            return httpx.Response(200, text="<html>zap report</html>")
        if path == "/JSON/core/view/alerts":
            return httpx.Response(200, json={"alerts": self.alerts})
        return httpx.Response(404)


def zap_client(handler) -> ZapClient:
    client = httpx.AsyncClient(base_url=ZAP_URL, transport=httpx.MockTransport(handler))
    return ZapClient(ZAP_URL, poll_interval=0, client=client)


def test_quick_scan_saves_report(config):
    fake = FakeZap(alerts=[{"riskcode": "3"}, {"riskcode": "2"}, {"riskcode": "2"}, {"riskcode": "0"}])

    path = asyncio.run(run_zap_mode(config, "quick", client=zap_client(fake)))

    assert path.parent == config.zap_report_dir
    assert path.name.startswith("zap-report-") and path.suffix == ".html"
    assert path.read_text() == "<html>zap report</html>"
    assert fake.spider_polls == 2
    assert "/JSON/ascan/action/scan/" in fake.calls
    assert "/JSON/ajaxSpider/action/scan/" not in fake.calls


def test_full_scan_runs_ajax_spider(config):
    fake = FakeZap()
    asyncio.run(run_zap_mode(config, "full", client=zap_client(fake)))
    assert fake.calls.index("/JSON/ajaxSpider/action/scan/") < fake.calls.index("/JSON/ascan/action/scan/")


def test_baseline_is_passive_only(config):
    fake = FakeZap()
    asyncio.run(run_zap_mode(config, "baseline", client=zap_client(fake)))
    assert "/JSON/spider/action/scan/" in fake.calls
    assert "/JSON/ascan/action/scan/" not in fake.calls


def test_api_mode_needs_openapi_url(config):
    with pytest.raises(ConfigError):
        asyncio.run(run_zap_mode(config, "api", client=zap_client(FakeZap())))


def test_api_mode_imports_definition(config):
    config.zap_openapi_url = "http://testserver/api-docs"
    fake = FakeZap()
    asyncio.run(run_zap_mode(config, "api", client=zap_client(fake)))
    assert "/JSON/openapi/action/importUrl/" in fake.calls
    assert "/JSON/spider/action/scan/" not in fake.calls


def test_status_returns_none(config):
    fake = FakeZap()
    assert asyncio.run(run_zap_mode(config, "status", client=zap_client(fake))) is None
    assert fake.calls == ["/JSON/core/view/version"]


def test_unknown_mode(config):
    with pytest.raises(ConfigError):
        asyncio.run(run_zap_mode(config, "turbo", client=zap_client(FakeZap())))


def test_daemon_down(config):
    with pytest.raises(ToolUnavailableError) as exc:
        asyncio.run(run_zap_mode(config, "quick", client=zap_client(refuse_all)))
    assert "docker-compose up -d zap" in exc.value.hint


def test_wait_until_ready_gives_up():
    zap = zap_client(refuse_all)
    with pytest.raises(ToolUnavailableError):
        asyncio.run(zap.wait_until_ready(max_attempts=2, interval=0))


def test_wait_until_ready_after_retry():
    attempts = []

    def flaky(request):
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("starting", request=request)
        return httpx.Response(200, json={"version": "2.14.0"})

    assert asyncio.run(zap_client(flaky).wait_until_ready(max_attempts=5, interval=0)) == "2.14.0"
    assert len(attempts) == 3


def test_save_report_filename(tmp_path):
    zap = zap_client(FakeZap())
    path = asyncio.run(zap.save_report("html", tmp_path, now=datetime(2024, 1, 2, 3, 4, 5)))
    assert path == tmp_path / "zap-report-20240102_030405.html"


def test_unknown_report_format(tmp_path):
    with pytest.raises(ConfigError):
        asyncio.run(zap_client(FakeZap()).save_report("pdf", tmp_path))


def test_alert_summary():
    fake = FakeZap(alerts=[{"riskcode": "3"}, {"riskcode": 2}, {"riskcode": "1"}, {"riskcode": "1"}, {"riskcode": "0"}])
    summary = asyncio.run(zap_client(fake).alert_summary())
    assert summary == {"total": 5, "high": 1, "medium": 1, "low": 2}
