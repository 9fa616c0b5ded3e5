"""tests/test_executor.py — scan ordering, crash containment and prechecks"""
import asyncio

import pytest

from dast_scanner.errors import AuthStateError, ConfigError, ToolUnavailableError
from dast_scanner.executor import ScanRunner
from dast_scanner.models import Finding, Severity

from conftest import not_found


@pytest.fixture()
def reachable(monkeypatch):
    async def ok(self):
        return None
    monkeypatch.setattr(ScanRunner, "check_target", ok)


def recording_probe(name: str, calls: list[str]):
    async def probe(ctx):
        calls.append(name)
        ctx.reporter.add_finding(Finding(severity=Severity.LOW, title=name, description="", url="/"))
    return probe


def test_registry_order_wins(config, mock_http, reachable):
    calls = []
    probes = {name: recording_probe(name, calls) for name in ["alpha", "beta", "gamma"]}
    runner = ScanRunner(config, probes=probes, http=mock_http(not_found), use_browser=False)

    reporter = asyncio.run(runner.run_selected(["gamma", "alpha"]))

    assert calls == ["alpha", "gamma"]
    assert [f.title for f in reporter.get_findings()] == ["alpha", "gamma"]


def test_crashing_probe_does_not_stop_scan(config, mock_http, reachable):
    calls = []

    async def broken(ctx):
        calls.append("broken")
        raise RuntimeError("probe exploded")

    probes = {
        "first": recording_probe("first", calls),
        "broken": broken,
        "last": recording_probe("last", calls),
    }
    runner = ScanRunner(config, probes=probes, http=mock_http(not_found), use_browser=False)

    reporter = asyncio.run(runner.run())

    assert calls == ["first", "broken", "last"]
    assert len(reporter.get_findings()) == 2


def test_missing_auth_stops_before_any_probe(config, mock_http, reachable):
    calls = []
    config.skip_auth = False
    runner = ScanRunner(
        config, probes={"alpha": recording_probe("alpha", calls)}, http=mock_http(not_found), use_browser=False,
    )

    with pytest.raises(AuthStateError):
        asyncio.run(runner.run())
    assert calls == []


def test_unknown_category(config, mock_http, reachable):
    runner = ScanRunner(config, http=mock_http(not_found), use_browser=False)
    with pytest.raises(ConfigError) as exc:
        asyncio.run(runner.run_selected(["xss", "telepathy"]))
    assert "telepathy" in exc.value.message
    assert "xss" in exc.value.hint


def test_unreachable_target(config):
    config.target = "http://127.0.0.1:9"
    runner = ScanRunner(config, use_browser=False)
    with pytest.raises(ToolUnavailableError) as exc:
        asyncio.run(runner.check_target())
    assert exc.value.exit_code == 3
