"""
Tests for the HTTP surface, driven through Flask's test client.

Load generators are patched out except for one end-to-end CPU run.
"""

import os
import time
from unittest.mock import patch

from podprobe.load import LoadKind, LoadRequest, LoadResult
from podprobe.routes import ROUTES


def fake_run_load(request):
    return LoadResult(request, elapsed_ms=request.duration_ms)


def test_ping(client):
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.get_json() == {"code": 0, "msg": "pong"}


def test_root_lists_routes(client):
    assert client.get("/").get_json() == {"routes": ROUTES}


def test_unknown_path_lists_routes(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.get_json() == {"routes": ROUTES}


def test_echo_get(client):
    body = client.get("/echo?a=1&a=2&b=x", headers={"X-Probe": "yes"}).get_json()
    assert body["code"] == 0
    assert body["data"]["method"] == "GET"
    assert body["data"]["query"] == {"a": ["1", "2"], "b": ["x"]}
    assert body["data"]["body"] == ""
    assert body["data"]["headers"]["X-Probe"] == ["yes"]


def test_echo_post_returns_body(client):
    data = client.post("/echo", data="hello probe").get_json()["data"]
    assert data["method"] == "POST"
    assert data["body"] == "hello probe"


def test_echo_put_ignores_body(client):
    data = client.put("/echo", data="ignored").get_json()["data"]
    assert data["method"] == "PUT"
    assert data["body"] == ""


def test_ip_forwarded_for(client):
    response = client.get("/ip", headers={"X-Forwarded-For": "1.2.3.4, 5.6.7.8"})
    assert response.get_json() == {"code": 0, "msg": "", "data": "1.2.3.4"}


def test_ip_real_ip(client):
    assert client.get("/ip", headers={"X-Real-Ip": "9.9.9.9"}).get_json()["data"] == "9.9.9.9"


def test_ip_peer_address(client):
    response = client.get("/ip", environ_base={"REMOTE_ADDR": "10.1.2.3", "REMOTE_PORT": "51000"})
    assert response.get_json()["data"] == "10.1.2.3"


def test_ip_ipv6_peer(client):
    response = client.get("/ip", environ_base={"REMOTE_ADDR": "::1", "REMOTE_PORT": "51000"})
    assert response.get_json()["data"] == "::1"


@patch.dict(os.environ, {"POD_NAME": "probe-1", "NODE_NAME": "node-b", "VERSION": "1.4.0"})
def test_env(client):
    assert client.get("/env").get_json()["data"] == {
        "POD_NAME": "probe-1",
        "NODE_NAME": "node-b",
        "VERSION": "1.4.0",
        "START_TIME": "2024-05-01T08:30:00+00:00",
    }


def test_delay(client):
    started = time.monotonic()
    response = client.get("/delay?ms=50")
    assert time.monotonic() - started >= 0.05
    assert response.get_json() == {"code": 0, "msg": "slept 50ms"}


@patch("podprobe.routes.time.sleep")
def test_delay_malformed_uses_default(mock_sleep, client):
    assert client.get("/delay?ms=soon").get_json()["msg"] == "slept 100ms"
    mock_sleep.assert_called_once_with(0.1)


@patch("podprobe.routes.run_load", side_effect=fake_run_load)
def test_mem_defaults_on_bad_size(mock_run_load, client):
    response = client.get("/mem?mb=0&ms=3000")
    assert response.status_code == 200
    assert response.get_json()["msg"] == "allocated 1 MiB over 1500 ms, maintained for 1500 ms"
    mock_run_load.assert_called_once_with(LoadRequest(LoadKind.MEMORY, duration_ms=3000, size_mib=1))


@patch("podprobe.routes.run_load", side_effect=fake_run_load)
def test_mem_transient(_, client):
    assert client.get("/mem?mb=8&duration=0").get_json()["msg"] == "allocated 8 MiB"


@patch("podprobe.params.available_cores", return_value=2)
@patch("podprobe.routes.run_load", side_effect=fake_run_load)
def test_cpu_out_of_range_percent(mock_run_load, _, client):
    response = client.get("/cpu?percent=150&cores=9&ms=300")
    assert response.get_json()["msg"] == "CPU test completed: 2 core(s) at 80% for 300ms"
    mock_run_load.assert_called_once_with(
        LoadRequest(LoadKind.CPU, duration_ms=300, cores=2, percent=80)
    )


@patch("podprobe.load.logger")
@patch("podprobe.routes.run_load", side_effect=fake_run_load)
def test_cpu_async_is_accepted(_, mock_logger, client):
    response = client.get("/cpu?ms=200&cores=1&percent=50&async=1")
    assert response.status_code == 202
    assert response.get_json() == {"code": 0, "msg": "accepted: 1 core(s) at 50% for 200ms"}

    deadline = time.monotonic() + 5
    while not mock_logger.info.called and time.monotonic() < deadline:
        time.sleep(0.01)
    mock_logger.info.assert_called_with("Background %s", "CPU test completed: 1 core(s) at 50% for 200ms")


def test_cpu_end_to_end(client):
    response = client.get("/cpu?ms=200&cores=1&percent=50")
    assert response.status_code == 200
    assert "1 core(s) at 50% for 200ms" in response.get_json()["msg"]


@patch("podprobe.load.release_memory")
def test_mem_too_large_is_answered(mock_release, client):
    calls = []

    def allocate(size):
        calls.append(size)
        if len(calls) == 3:
            raise MemoryError
        return b""

    with patch("podprobe.load.touched", side_effect=allocate):
        response = client.get("/mem?mb=100000000&ms=10")

    assert response.status_code == 200
    assert response.get_json() == {
        "code": 0,
        "msg": "out of memory after allocating 2000000 of 100000000 MiB",
    }
    mock_release.assert_called_once()
