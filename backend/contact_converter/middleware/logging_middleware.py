"""
Logging Middleware

Injects request_id into the logging context for all requests. The sender
id is added later by the conversation controller once the webhook form
has been parsed.
"""

import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..logging_config import request_id_var, user_id_var, get_logger

logger = get_logger(__name__)

SKIP_PATHS = ("/health", "/favicon.ico")
REDACTED_PREFIXES = ("/files/", "/download/")


def _redact(path: str) -> str:
    """Download paths carry the artifact id, the only credential for password-less files."""
    for prefix in REDACTED_PREFIXES:
        if path.startswith(prefix):
            return f"{prefix}<id>"
    return path


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up logging context for each request.

    - Generates unique request_id for tracing
    - Logs request start/end with timing
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)

        start_time = time.time()
        method = request.method
        path = request.url.path

        log_path = _redact(path)
        skip_logging = path in SKIP_PATHS

        if not skip_logging:
            logger.info(
                "Request started",
                extra={
                    "action": "request_start",
                    "extra_data": {
                        "method": method,
                        "path": log_path,
                    }
                }
            )

        try:
            response = await call_next(request)

            if not skip_logging:
                duration_ms = int((time.time() - start_time) * 1000)
                logger.info(
                    "Request completed",
                    extra={
                        "action": "request_end",
                        "extra_data": {
                            "method": method,
                            "path": log_path,
                            "status_code": response.status_code,
                            "duration_ms": duration_ms,
                        }
                    }
                )

            return response

        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(
                f"Request failed: {str(e)}",
                extra={
                    "action": "request_error",
                    "extra_data": {
                        "method": method,
                        "path": log_path,
                        "error": str(e),
                        "duration_ms": duration_ms,
                    }
                },
                exc_info=True
            )
            raise
        finally:
            # Clear context vars
            request_id_var.set(None)
            user_id_var.set(None)
