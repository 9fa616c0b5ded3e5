"""tests/test_transport.py — HTTP probe, bursts and stored cookies"""
import asyncio
import json

import httpx

from dast_scanner.models import ProbeResponse
from dast_scanner.transport import HttpProbe, count_successes, fan_out, load_storage_cookies

from conftest import TARGET, refuse_all


def test_url_resolution():
    http = HttpProbe(TARGET + "/")
    assert http.url("/api/users") == f"{TARGET}/api/users"
    assert http.url("api/users") == f"{TARGET}/api/users"
    assert http.url("/?file=../../etc/passwd") == f"{TARGET}/?file=../../etc/passwd"
    assert http.url("https://other.example/x") == "https://other.example/x"
    asyncio.run(http.close())


def test_send_captures_response(mock_http):
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["origin"] = request.headers.get("origin")
        return httpx.Response(201, text="created", headers={"X-Test": "yes"})

    async def go():
        http = mock_http(handler)
        return await http.post("/api/items", headers={"Origin": "https://evil.com"}, json_body={"a": 1})

    result = asyncio.run(go())
    assert result.status == 201
    assert result.body == "created"
    assert result.header("X-TEST") == "yes"
    assert result.url == f"{TARGET}/api/items"
    assert result.elapsed_ms >= 0
    assert seen == {"method": "POST", "origin": "https://evil.com"}


def test_transport_failure_yields_none(mock_http):
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async def go():
        return await mock_http(refuse_all).get("/"), await mock_http(timeout).get("/")

    assert asyncio.run(go()) == (None, None)


def test_fan_out_collects_every_result():
    calls = []

    async def factory():
        calls.append(1)
        if len(calls) == 2:
            raise RuntimeError("boom")
        return ProbeResponse(url="/", status=200)

    results = asyncio.run(fan_out(4, factory))
    assert len(results) == 4
    assert results.count(None) == 1
    assert count_successes(results) == 3


def test_fan_out_limit_caps_in_flight_calls():
    in_flight = []
    peak = []

    async def factory():
        in_flight.append(1)
        peak.append(len(in_flight))
        await asyncio.sleep(0)
        in_flight.pop()
        return ProbeResponse(url="/", status=200)

    assert count_successes(asyncio.run(fan_out(6, factory, limit=2))) == 6
    assert max(peak) == 2

    peak.clear()
    asyncio.run(fan_out(5, factory))
    assert max(peak) == 5


def test_count_successes_statuses():
    responses = [
        ProbeResponse(url="/", status=200),
        ProbeResponse(url="/", status=201),
        None,
        ProbeResponse(url="/", status=409),
    ]
    assert count_successes(responses) == 1
    assert count_successes(responses, statuses=(200, 201)) == 2


def test_load_storage_cookies(tmp_path):
    assert load_storage_cookies(None) == []
    assert load_storage_cookies(tmp_path / "missing.json") == []

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert load_storage_cookies(broken) == []

    state = tmp_path / "user.json"
    state.write_text(json.dumps({"cookies": [{"name": "sid", "value": "abc", "domain": "testserver", "path": "/"}]}))
    assert load_storage_cookies(state)[0]["name"] == "sid"


def test_stored_cookies_are_sent(tmp_path):
    state = tmp_path / "user.json"
    state.write_text(json.dumps({"cookies": [{"name": "sid", "value": "abc", "domain": "app.example.com", "path": "/"}]}))
    seen = {}

    def handler(request):
        seen["cookie"] = request.headers.get("cookie")
        return httpx.Response(200)

    async def go():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        http = HttpProbe("http://app.example.com", auth_file=state, client=client)
        await http.get("/profile")
        await client.aclose()

    asyncio.run(go())
    assert seen["cookie"] == "sid=abc"
