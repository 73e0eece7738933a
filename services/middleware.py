"""Request tagging and access logging (pure ASGI)."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class RequestIdMiddleware:
    """Tag each HTTP exchange with ``X-Request-ID`` and log one access line.

    A client-supplied id is kept so worksheet frontend logs can be joined
    with ours; otherwise an 8-character id is minted. The id is exposed to
    handlers as ``request.state.request_id``. Server errors log at WARNING.
    """

    header = "x-request-id"

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get(self.header) or uuid.uuid4().hex[:8]
        scope.setdefault("state", {})["request_id"] = request_id
        status = 500
        started = time.perf_counter()

        async def tagged_send(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                message.setdefault("headers", [])
                MutableHeaders(scope=message)[self.header] = request_id
            await send(message)

        try:
            await self.app(scope, receive, tagged_send)
        finally:
            logger.log(
                logging.WARNING if status >= 500 else logging.INFO,
                "[%s] %s %s -> %d (%.1f ms)",
                request_id,
                scope.get("method", ""),
                scope.get("path", ""),
                status,
                (time.perf_counter() - started) * 1000,
            )
