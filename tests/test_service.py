import json
import logging
import socket
import uuid

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from ylineworker.config import Config
from ylineworker.service import (
    NOT_FOUND_BODY,
    build_app,
    connect_to_server,
    main,
    make_http_response,
    make_json_response,
    server_url,
)
from ylineworker.sysmutex import SysMutex
from ylineworker.worker_state import Worker, WorkerData


@pytest.fixture(autouse=True)
def _propagating_logs(monkeypatch):
    monkeypatch.setattr(logging.getLogger("ylineworker"), "propagate", True)


@pytest.fixture
def config():
    return Config(
        worker_ip="127.0.0.1",
        worker_port=0,
        register_secret="secret",
        server_ip="10.0.0.1",
        server_port=33383,
        intranet_ip_filter=True,
        local_host_filter=True,
        log_level=logging.INFO,
    )


@pytest.fixture
def worker():
    return Worker(WorkerData(register_secret="secret"), worker_uuid=uuid.UUID(int=1))


def test_json_response_round_trip():
    data = {"command": "usage", "values": [1, 2]}
    resp = make_json_response(data, 201)
    assert resp.status == 201
    assert resp.content_type == "application/json"
    assert json.loads(resp.text) == data


def test_http_response_carries_body_and_type():
    resp = make_http_response("hello", 404, "text/plain")
    assert resp.status == 404
    assert resp.text == "hello"
    assert resp.content_type == "text/plain"


def test_server_url_uses_ws_scheme(config):
    assert server_url(config) == "ws://10.0.0.1:33383"


def test_build_app_logs_enabled_filters(config, caplog):
    caplog.set_level(logging.INFO)
    build_app(config)
    assert "Intranet IP filter enabled" in caplog.text
    assert "Local host filter enabled" in caplog.text


@pytest.mark.asyncio
async def test_unknown_path_returns_custom_404(config):
    async with TestClient(TestServer(build_app(config))) as client:
        resp = await client.get("/nope")
        assert resp.status == 404
        assert NOT_FOUND_BODY in await resp.text()


@pytest.mark.asyncio
async def test_connect_sends_register_message(worker, caplog):
    caplog.set_level(logging.INFO)
    received = []

    async def ws_handler(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        msg = await ws.receive()
        received.append(json.loads(msg.data))
        await ws.send_str("hello")
        await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/ws/worker", ws_handler)
    async with TestServer(app) as server:
        url = f"ws://{server.host}:{server.port}"
        async with aiohttp.ClientSession() as session:
            ok = await connect_to_server(worker, url, session)

    assert ok is True
    assert received == [worker.register_json()]
    assert "Received message: hello" in caplog.text
    assert worker.usage_task is None


@pytest.mark.asyncio
async def test_connect_to_unreachable_server_fails(worker, caplog):
    caplog.set_level(logging.INFO)
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    async with aiohttp.ClientSession() as session:
        ok = await connect_to_server(worker, f"ws://127.0.0.1:{port}", session)
    assert ok is False
    assert "Failed to connect to server" in caplog.text


def test_main_refuses_second_instance(tmp_path):
    holder = SysMutex("YLineWorker", tmp_path)
    assert holder.try_lock()
    try:
        assert main(["--lock-dir", str(tmp_path)]) == 1
    finally:
        holder.close()


def test_main_fails_on_missing_config_and_releases_lock(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    lock_dir = tmp_path / "locks"
    missing = tmp_path / "absent.toml"
    assert main(["--config", str(missing), "--lock-dir", str(lock_dir)]) == 1
    again = SysMutex("YLineWorker", lock_dir)
    try:
        assert again.try_lock() is True
    finally:
        again.close()