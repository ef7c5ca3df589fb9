# billscan/middleware/request_logger.py
import logging
import time
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("billscan.http")


class RequestLoggerMiddleware:
    """
    Logs every HTTP request with:
      - method, path, status, duration
      - X-Req-Id (from client, echoed back on the response)
      - declared body size (bodies are not read: uploads pass through untouched)
    """
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        rid = headers.get("x-req-id", "-")
        method = scope.get("method", "-")
        path = scope.get("path", "-")
        start = time.time()
        status = {"code": 0}

        logger.info("[HTTP ►] rid=%s %s %s len=%s", rid, method, path, headers.get("content-length", "-"))

        async def send_wrapper(message: Message):
            if message["type"] == "http.response.start":
                status["code"] = message["status"]
                if rid != "-":
                    message["headers"] = list(message.get("headers", [])) + [
                        (b"x-req-id", rid.encode("latin-1"))
                    ]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            dur_ms = (time.time() - start) * 1000
            logger.info("[HTTP ◄] rid=%s %s %s status=%d in %.1fms", rid, method, path, status["code"], dur_ms)
