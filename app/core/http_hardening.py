from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("app.http")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    # Scoped list results differ per caller.
    "Cache-Control": "no-store",
}


def request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if value and _REQUEST_ID_RE.fullmatch(value):
        return value
    return uuid4().hex


def _stamp(response: Response, request_id: str) -> None:
    response.headers.update(SECURITY_HEADERS)
    response.headers[REQUEST_ID_HEADER] = request_id


def install_http_hardening(app: FastAPI) -> None:
    """Stamp every response with security headers and a request id, and log it."""

    @app.middleware("http")
    async def _request_log_middleware(request: Request, call_next):
        request_id = request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()
        response = await call_next(request)
        _stamp(response, request_id)

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        _LOG.log(
            level,
            "%s %s status=%s duration_ms=%.2f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (perf_counter() - started_at) * 1000.0,
            request_id,
        )
        return response
