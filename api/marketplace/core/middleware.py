import asyncio
import logging

from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)


class RequestDeadlineMiddleware:
    """Cancels a request that outlives its deadline and answers 504.

    Cancellation reaches the handler itself, so an open repository
    transaction rolls back instead of committing after the client gave up.
    """

    def __init__(self, app: ASGIApp, *, timeout_seconds: float) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "request deadline exceeded method=%s path=%s timeout_seconds=%s",
                scope.get("method"),
                scope.get("path"),
                self.timeout_seconds,
            )
            if response_started:
                raise
            response = JSONResponse(status_code=504, content={"success": False, "error": "request timed out"})
            await response(scope, receive, send)


class RequestBodyLimitMiddleware:
    """Rejects request bodies larger than ``max_bytes`` with 413.

    A declared Content-Length is checked up front. Bodies without one
    (chunked uploads) are counted as the application reads them, and the
    read fails with an HTTPException once the limit is crossed, before
    the handler sees any of the payload.
    """

    def __init__(self, app: ASGIApp, *, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = _header(scope, b"content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                size = -1
            if size < 0:
                await _reject(scope, receive, send, 400, "invalid content-length header")
                return
            if size > self.max_bytes:
                await _reject(scope, receive, send, 413, "request body too large")
                return

        received = 0

        async def receive_wrapper() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning(
                        "request body over limit method=%s path=%s max_bytes=%s",
                        scope.get("method"),
                        scope.get("path"),
                        self.max_bytes,
                    )
                    raise HTTPException(status_code=413, detail="request body too large")
            return message

        await self.app(scope, receive_wrapper, send)


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1")
    return None


async def _reject(scope: Scope, receive: Receive, send: Send, status_code: int, message: str) -> None:
    response = JSONResponse(status_code=status_code, content={"success": False, "error": message})
    await response(scope, receive, send)
