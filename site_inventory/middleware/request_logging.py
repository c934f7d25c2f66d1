import time
import logging

from fastapi import Request

logger = logging.getLogger("access")


def _client(request: Request) -> str:
    # behind the proxy the real caller is the first forwarded hop
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def request_logging_middleware(request: Request, call_next):
    started = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "%s %s %s",
            request.method,
            request.url.path,
            status_code,
            extra={
                "client_addr": _client(request),
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "process_time_ms": elapsed_ms,
            },
        )
