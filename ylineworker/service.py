"""The worker service: a small HTTP endpoint plus a WebSocket link to the server."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from http import HTTPStatus
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

import aiohttp
from aiohttp import web

from .config import Config, ConfigError, parse_config
from .console import set_console_utf8
from .logger import create_logger, level_name
from .nvml import NVMLError, Nvml
from .sysmutex import SysMutex
from .worker_state import Worker, WorkerData, collect_machine_info, log_machine_info

log = logging.getLogger(__name__)

MUTEX_NAME = "YLineWorker"
WS_PATH = "/ws/worker"
USAGE_INTERVAL = 1.0
NOT_FOUND_BODY = "404 Not Found, YLineWorker 不存在该端点"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def make_json_response(data: Any, status: int | HTTPStatus = HTTPStatus.OK) -> web.Response:
    """A JSON response with the given status."""
    return web.json_response(data, status=int(status))


def make_http_response(
    body: str, status: int | HTTPStatus = HTTPStatus.OK, content_type: str = "text/html"
) -> web.Response:
    """A text response with the given status and content type."""
    return web.Response(text=body, status=int(status), content_type=content_type)


@web.middleware
async def _not_found_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return make_http_response(NOT_FOUND_BODY, HTTPStatus.NOT_FOUND, "text/html")


@web.middleware
async def _compression_middleware(request: web.Request, handler: _Handler) -> web.StreamResponse:
    response = await handler(request)
    if isinstance(response, web.Response) and not response.prepared:
        response.enable_compression()
    return response


def build_app(config: Config) -> web.Application:
    """The worker's HTTP application: compressed responses and a custom 404 page."""
    app = web.Application(middlewares=[_not_found_middleware, _compression_middleware])
    if config.intranet_ip_filter:
        log.info("Intranet IP filter enabled 内网 IP 过滤器已启用")
    if config.local_host_filter:
        log.info("Local host filter enabled 本地主机过滤器已启用")
    return app


def server_url(config: Config) -> str:
    """WebSocket address of the scheduling server."""
    return f"ws://{config.server_ip}:{config.server_port}"


async def _report_usage(worker: Worker, ws: aiohttp.ClientWebSocketResponse) -> None:
    while True:
        await asyncio.sleep(USAGE_INTERVAL)
        message = await asyncio.to_thread(worker.usage_json)
        if ws.closed:
            return
        await ws.send_json(message)


async def connect_to_server(
    worker: Worker, url: str, session: aiohttp.ClientSession
) -> bool:
    """Register with the server at ``url`` and stay connected until it closes.

    Usage reports are sent every second while connected. Returns False when
    the connection could not be made, True once an established connection ends.
    """
    endpoint = url.rstrip("/") + WS_PATH
    log.info("Connecting to server 连接到服务器: %s", url)
    try:
        ws = await session.ws_connect(endpoint)
    except (aiohttp.ClientError, OSError) as exc:
        log.error("Failed to connect to server 连接服务器失败: %s", exc)
        return False

    worker.data.client = ws
    log.info("Connected to server 成功连接到服务器")
    async with ws:
        await ws.send_json(worker.register_json())
        task = asyncio.create_task(_report_usage(worker, ws))
        worker.usage_task = task
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    log.info("Received message: %s", message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    break
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, ConnectionError, RuntimeError):
                await task
            worker.usage_task = None
    log.warning("Server Connection closed 服务器连接已断开")
    return True


async def _serve(config: Config, worker: Worker, logger: logging.Logger) -> None:
    runner = web.AppRunner(build_app(config))
    await runner.setup()
    try:
        site = web.TCPSite(runner, config.worker_ip, config.worker_port)
        await site.start()
        async with aiohttp.ClientSession() as session:
            connection = asyncio.create_task(
                connect_to_server(worker, server_url(config), session)
            )
            logger.info("YLineWorker Service started 服务已启动")
            try:
                await asyncio.Event().wait()
            finally:
                connection.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await connection
    finally:
        await runner.cleanup()


def run_worker(config: Config, logger: logging.Logger | None = None) -> None:
    """Gather machine information, connect to the server and serve until stopped."""
    logger = logger or log
    machine_info = collect_machine_info()
    log_machine_info(machine_info)

    worker = Worker(
        WorkerData(register_secret=config.register_secret, machine_info=machine_info)
    )

    try:
        # No NVML backend ships with the worker, so Nvml reports it as unavailable.
        worker.init_nvml(Nvml(None))
        logger.info("NVML initialized 初始化成功 NVML")
        worker.log_nvml_info()
    except NVMLError as exc:
        logger.warning("Failed to initialize NVML: %s", exc)
        logger.warning("NVML related features may not work properly NVML 相关功能无法正常工作")
        logger.warning(
            "This maynot be a problem if you do not have Nvidia GPU 如果您没有 Nvidia GPU, 这可能不是问题"
        )

    try:
        asyncio.run(_serve(config, worker, logger))
    finally:
        if worker.nvml is not None:
            worker.nvml.close()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ylineworker", description="YLine worker service")
    parser.add_argument("--config", type=Path, default=None, help="configuration file")
    parser.add_argument("--lock-dir", type=Path, default=None, help="directory for the instance lock")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Start the worker service; returns the process exit status."""
    args = _parse_args(argv)
    set_console_utf8()

    mutex = SysMutex(MUTEX_NAME, args.lock_dir)
    if not mutex.try_lock():
        log.critical("Worker instance already exists 工人实例已经存在")
        return EXIT_FAILURE

    try:
        logger = create_logger()
        logger.info("YLineWorker Service starting 启动中...")
        config = parse_config(args.config)
        logger.info("Config file parsed successfully 配置文件解析成功")
        logger.setLevel(config.log_level)
        logger.info("Log level 日志等级: %s", level_name(logger.level))
        logger.debug(
            "YLineWorker Service IP 服务器地址: %s, Port 服务器端口: %s",
            config.worker_ip,
            config.worker_port,
        )
        run_worker(config, logger)
        logger.info("YLineWorker Service stopped 停止")
    except ConfigError as exc:
        log.critical("Config Parsing failed 配置文件解析失败:%s", exc)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        log.info("YLineWorker Service stopped 停止")
    except Exception as exc:
        log.critical("Unknown 未知错误:%s", exc)
        return EXIT_FAILURE
    finally:
        mutex.close()
    return EXIT_SUCCESS