import logging
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.integrations.identity import TENANT_HEADER

logger = logging.getLogger("app.core.middleware")

REQUEST_ID_HEADER = "x-request-id"
_MAX_REQUEST_ID_LENGTH = 128
_QUIET_PATHS = frozenset({"/health"})
_STRIPPED_RESPONSE_HEADERS = ("server", "x-powered-by")


def _request_target(scope: Scope) -> str:
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  return f"{path}?{query_string.decode('latin-1')}" if query_string else path


class RequestLoggingMiddleware:
  """Tag every HTTP exchange with a request id and log its outcome with the caller's tenant."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = Headers(scope=scope)
    # Honor a gateway-supplied request id so traces line up across services.
    request_id = (headers.get(REQUEST_ID_HEADER) or "")[:_MAX_REQUEST_ID_LENGTH] or str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id
    tenant_id = headers.get(TENANT_HEADER) or "-"
    level = logging.DEBUG if scope.get("path") in _QUIET_PATHS else logging.INFO

    started = time.perf_counter()
    status_code = 0

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        response_headers = MutableHeaders(scope=message)
        response_headers.setdefault(REQUEST_ID_HEADER, request_id)
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      logger.log(level, "request_id=%s tenant_id=%s %s %s status=%s took=%.2fms", request_id, tenant_id, scope.get("method", "UNKNOWN"), _request_target(scope), status_code, elapsed_ms)


class SecurityHeadersMiddleware:
  """Drop server fingerprinting headers and keep job and content responses out of shared caches."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    api_request = scope.get("path", "").startswith("/v1/")

    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in _STRIPPED_RESPONSE_HEADERS:
          if name in headers:
            del headers[name]
        # Job progress changes between polls; tenant content must never be cached upstream.
        if api_request:
          headers.setdefault("cache-control", "no-store")
      await send(message)

    await self.app(scope, receive, send_wrapper)
