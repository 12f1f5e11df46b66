# occupancy_engine/middleware/request_id.py
from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
sweep_id_ctx: ContextVar[str | None] = ContextVar("sweep_id", default=None)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def get_sweep_id() -> str | None:
    return sweep_id_ctx.get()


@contextmanager
def bind_sweep_id(sweep_id: str | None = None) -> Iterator[str]:
    """
    Tags every log line emitted during one scheduled sweep with the same id.
    """
    sid = sweep_id or str(uuid.uuid4())
    token = sweep_id_ctx.set(sid)
    try:
        yield sid
    finally:
        sweep_id_ctx.reset(token)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Sets a per-request id and returns it in response headers.

    - Accepts incoming X-Request-ID (preferred) or X-Request-Id
    - Otherwise generates UUID4
    - Stores in ContextVar so logging can retrieve it anywhere
    """

    header_out = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get("X-Request-ID") or request.headers.get("X-Request-Id")
        if not rid:
            rid = str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[self.header_out] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
