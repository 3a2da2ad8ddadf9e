"""
Access Logging Middleware

Logs every API request with a correlation id, the caller and the company in
context, and the time it took. Slow requests are logged at WARNING.
"""

import time
import uuid
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger("jobboard.access")


class AccessLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all API access.

    Captures:
    - User context (user_id, organization_id, company_role)
    - Request details (method, path, IP)
    - Performance (duration)
    - Request tracking (request_id, echoed as X-Request-ID)
    """

    def __init__(self, app: ASGIApp, enabled: bool = True, slow_request_ms: int = 1000):
        """
        Initialize the middleware.

        Args:
            app: FastAPI application
            enabled: Whether logging is enabled
            slow_request_ms: Duration above which a request is logged as slow
        """
        super().__init__(app)
        self.enabled = enabled
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse the caller's correlation id when one is sent
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        if not self.enabled or request.url.path in ["/", "/health", "/docs", "/openapi.json"]:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        # Set by get_current_user and require_company_role
        user_id = getattr(request.state, "user_id", None)
        organization_id = getattr(request.state, "organization_id", None) or request.path_params.get("organization_id")
        company_role = getattr(request.state, "company_role", None)

        message = (
            f"request_id={request_id} {request.method} {request.url.path} "
            f"status={response.status_code} duration_ms={duration_ms} "
            f"ip={self._get_client_ip(request)} user={user_id} org={organization_id} role={company_role}"
        )
        if duration_ms > self.slow_request_ms:
            logger.warning(f"slow request {message}")
        else:
            logger.info(message)

        response.headers["X-Request-ID"] = request_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        """
        Extract client IP address from request.

        Checks X-Forwarded-For header first (for proxied requests),
        then falls back to direct client IP.
        """
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # Take first IP in the chain
            return forwarded_for.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"
