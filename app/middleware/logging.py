import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from app.core.request_context import HDR_REQUEST_ID, get_request_context

logger = logging.getLogger("access")

class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        context = get_request_context(request)

        # Log request
        logger.info(
            f"🌐 {context['endpoint']} - "
            f"Client: {context['ip_address'] or 'unknown'} - "
            f"Actor: {context['actor_id'] or 'anonymous'} - "
            f"Request-Id: {context['request_id'] or '-'}"
        )

        # Process request
        response = await call_next(request)

        # Calculate processing time
        process_time = time.time() - start_time

        # Log response
        log = logger.warning if response.status_code >= 400 else logger.info
        log(
            f"{'⚠️' if response.status_code >= 400 else '✅'} {context['endpoint']} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.4f}s"
        )

        # Add process time to response headers
        response.headers["X-Process-Time"] = str(process_time)
        if context["request_id"]:
            response.headers[HDR_REQUEST_ID] = context["request_id"]

        return response
