from __future__ import annotations
import threading

import structlog

from synq.protocol.constants import PROTO_VER

from .listener import RelayServer

logger = structlog.get_logger()


def build_status_app(server: RelayServer):
    from fastapi import FastAPI
    from pydantic import BaseModel

    app = FastAPI(title="Synq Relay Status", version=PROTO_VER)

    class StatusResp(BaseModel):
        users: int
        binds: int
        slots_used: int
        max_clients: int
        keyless_waiting: int
        keyed_waiting: int

    @app.get("/status", response_model=StatusResp)
    def status():
        return StatusResp(**server.status())

    return app


def run_status_server(server: RelayServer, host: str, port: int) -> threading.Thread:
    import uvicorn

    app = build_status_app(server)
    uv = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_config=None))
    t = threading.Thread(target=uv.run, name="synq-status", daemon=True)
    t.start()
    logger.info("status_endpoint_started", host=host, port=port)
    return t
