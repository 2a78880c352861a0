"""
IP Platform - Gateway Middleware

Request/response middleware for:
- Bearer token authentication (Request Authenticator)
- Request ID injection for tracing
- Security headers

Authentication outcome per request:
    no "Bearer " header  -> passes through unauthenticated
    valid access token   -> claims attached to request.state.claims
    expired token        -> 401 {"error_code": "TOKEN_EXPIRED"}   (client should refresh)
    anything else        -> 401 {"error_code": "TOKEN_INVALID"}   (client should log in)
"""

import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ipplatform.auth.tokens import InvalidTokenError, TokenExpiredError, TokenType


logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """
    Stateless per-request token gate.

    Only verifies the token; authorization is left to route dependencies so
    anonymous routes keep working without a header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.claims = None

        header = request.headers.get("Authorization")
        if not header or not header.startswith(BEARER_PREFIX):
            return await call_next(request)

        token = header[len(BEARER_PREFIX):].strip()
        signer = request.app.state.signer

        try:
            claims = signer.verify(token, TokenType.ACCESS)
        except TokenExpiredError:
            return self._reject("Token expired", "TOKEN_EXPIRED")
        except InvalidTokenError as e:
            logger.info("Rejected bearer token on %s: %s", request.url.path, e)
            return self._reject("Invalid token", "TOKEN_INVALID")

        request.state.claims = claims
        return await call_next(request)

    @staticmethod
    def _reject(detail: str, error_code: str) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": detail, "error_code": error_code},
            headers={"WWW-Authenticate": "Bearer"},
        )


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Security-focused middleware for all incoming requests.

    Responsibilities:
    1. Inject X-Request-ID header for tracing
    2. Add security headers to response
    3. Log method, path, status and timing
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        logger.debug(
            "%s %s -> %d (%.1f ms) [%s]",
            request.method, request.url.path, response.status_code, duration_ms, request_id,
        )
        return response
