import logging
from typing import List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# Read endpoints are safe to cache at the edge for 5 minutes
CACHE_HEADERS = {
    "Cache-Control": "public, s-maxage=300, stale-while-revalidate=600",
}

# Fact endpoints carry per-caller votes and random picks
NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0, s-maxage=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def bad_request(message: str) -> JSONResponse:
    """400 with a descriptive message."""
    return JSONResponse({"error": message}, status_code=400)


def not_found(message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=404)


def server_error(summary: str, exc: Exception) -> JSONResponse:
    """500 envelope for anything that escaped a handler."""
    logger.exception(summary)
    return JSONResponse({"error": summary, "details": str(exc)}, status_code=500)


def split_csv(value: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def client_ip(request: Request) -> str:
    """Caller address for vote tracking: proxy headers first, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def parse_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
