"""Response headers and the per-request access line for every route.

Runs outermost among the app's own layers so error envelopes produced by the
exception handlers carry the same headers as successful responses.
"""

from __future__ import annotations

import logging
import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request

REQUEST_ID_HEADER = "X-Request-ID"
HSTS_VALUE = "max-age=15552000; includeSubDomains"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = logging.getLogger("tours_api.http")

# The API only ever answers with JSON, so nothing may be framed, sniffed or
# pulled in from elsewhere.
_BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    "Cache-Control": "no-store",
}


def security_headers(*, hsts: bool) -> dict[str, str]:
    headers = dict(_BASE_HEADERS)
    if hsts:
        headers["Strict-Transport-Security"] = HSTS_VALUE
    return headers


def request_id_for(request: Request) -> str:
    incoming = str(request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return incoming if _REQUEST_ID_RE.fullmatch(incoming) else uuid4().hex


def _user_id(request: Request) -> str:
    user = getattr(request.state, "user", None)
    return str(user.id) if user is not None else "-"


def install_http_hardening(app: FastAPI, *, hsts: bool = False) -> None:
    headers = security_headers(hsts=hsts)

    @app.middleware("http")
    async def _http_hardening_middleware(request: Request, call_next):
        request.state.request_id = request_id_for(request)
        started_at = perf_counter()

        response = await call_next(request)

        response.headers.update(headers)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        _LOG.info(
            "%s %s status=%s duration_ms=%.2f user=%s request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (perf_counter() - started_at) * 1000.0,
            _user_id(request),
            request.state.request_id,
        )
        return response
