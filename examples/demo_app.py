"""
Shared pieces of the seamless example servers.

A FastAPI app answering with the PID of the generation that served the
request, served by uvicorn on a socket bound by the caller. uvicorn runs in a
background thread so it leaves signal handling to seamless, while the main
thread waits for the restart sequence to complete.
"""

import argparse
import asyncio
import logging
import os
import socket
import threading
import time
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

import seamless

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="seamless demo")

    @app.get("/", response_class=PlainTextResponse)
    async def index(delay: float = 0.0) -> str:
        # ?delay=5 simulates a slow in-flight request during a restart
        if delay > 0:
            await asyncio.sleep(delay)
        return f"Server pid: {os.getpid()}\n"

    return app


def add_common_arguments(parser: argparse.ArgumentParser, name: str) -> None:
    parser.add_argument("--pid-file", default=str(seamless.config.default_pid_file(name)), help="Seamless restart PID file (empty disables seamless)")
    parser.add_argument("--graceful-timeout", type=float, default=60.0, help="Maximum seconds to wait for in-flight requests")
    parser.add_argument("--log-file", type=Path, default=None, help="Also log to this file (rotated daily)")


def serve(sock: socket.socket, graceful_timeout: float) -> None:
    """Serve the demo app on sock until a newer generation takes over."""
    config = uvicorn.Config(create_app(), log_level="warning", access_log=False, lifespan="off")
    server = uvicorn.Server(config)
    server_thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, name="uvicorn")

    # Graceful shutdown, triggered once the new process serves traffic.
    def shutdown() -> None:
        server.should_exit = True
        server_thread.join(graceful_timeout)
        if server_thread.is_alive():
            logger.warning("Graceful shutdown timeout, force closing")
            server.force_exit = True
            server_thread.join()

    seamless.on_shutdown(shutdown)

    def announce() -> None:
        while not server.started:
            if not server_thread.is_alive():
                logger.error("Server stopped before it was ready")
                return
            time.sleep(0.05)
        # The socket is bound and served: seamless may now TERM the old process.
        seamless.started()

    server_thread.start()
    threading.Thread(target=announce, name="announce-started", daemon=True).start()

    # Do not exit before the graceful shutdown completed.
    seamless.wait()
    server_thread.join()
