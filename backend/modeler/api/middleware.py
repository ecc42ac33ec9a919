"""
Edge middleware for every API request: security headers, audit logging,
rate limiting and identity resolution.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from modeler.auth.sessions import resolve_session
from modeler.config import (
    RATE_LIMIT_ADMIN,
    RATE_LIMIT_AUTH,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WINDOW_SECONDS,
    SESSION_COOKIE_NAME,
)
from modeler.db import session as db_session
from modeler.db.models import ApiRequest
from modeler.log import get_logger

logger = get_logger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: blob:; font-src 'self'; connect-src 'self'; frame-ancestors 'none';"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), interest-cohort=()",
}


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def session_token(request: Request) -> Optional[str]:
    """Session cookie, or a bearer token for non-browser clients."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token
    parts = request.headers.get("authorization", "").split(" ")
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


# ============================
# Rate limiting
# ============================

@dataclass
class RateLimitStatus:
    limited: bool
    limit: int
    remaining: int
    reset: int

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class RateLimiter:
    """Fixed-window counters per (client IP, path), held in process memory."""

    def __init__(self, window_seconds: int = RATE_LIMIT_WINDOW_SECONDS):
        self.window_seconds = window_seconds
        self._windows: Dict[Tuple[str, str], Tuple[float, int]] = {}
        self._next_sweep = 0.0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    @staticmethod
    def limit_for(path: str) -> int:
        if path.startswith("/api/auth"):
            return RATE_LIMIT_AUTH
        if path.startswith("/api/admin"):
            return RATE_LIMIT_ADMIN
        return RATE_LIMIT_DEFAULT

    def hit(self, ip: str, path: str, now: Optional[float] = None) -> RateLimitStatus:
        now = time.time() if now is None else now
        limit = self.limit_for(path)
        key = (ip, path)
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            reset_at, count = self._windows.get(key, (0.0, 0))
            if now > reset_at:
                reset_at, count = now + self.window_seconds, 0
            count += 1
            self._windows[key] = (reset_at, count)
        return RateLimitStatus(
            limited=count > limit,
            limit=limit,
            remaining=max(0, limit - count),
            reset=int(math.ceil(reset_at)),
        )

    def _sweep(self, now: float) -> None:
        """Drop expired windows; the caller holds the lock."""
        expired = [key for key, (reset_at, _) in self._windows.items() if now > reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._next_sweep = 0.0


rate_limiter = RateLimiter()


# ============================
# Middleware functions
# ============================

async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


def record_request(entry: ApiRequest) -> None:
    """Write one audit row in its own session; failures are logged, never raised."""
    db = db_session.SessionLocal()
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(f"[AUDIT] failed to record {entry.method} {entry.path}: {exc}")
    finally:
        db.close()


async def request_logger(request: Request, call_next):
    if not request.url.path.startswith("/api"):
        return await call_next(request)

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    user = getattr(request.state, "user", None)
    await run_in_threadpool(
        record_request,
        ApiRequest(
            user_id=user.id if user is not None else None,
            path=request.url.path,
            method=request.method,
            status_code=response.status_code,
            response_time_ms=elapsed_ms,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        ),
    )
    logger.debug(f"[API] {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms} ms)")
    return response


async def rate_limit(request: Request, call_next):
    if not request.url.path.startswith("/api"):
        return await call_next(request)

    status = rate_limiter.hit(client_ip(request), request.url.path)
    if status.limited:
        logger.warning(f"[RATE] {client_ip(request)} exceeded {status.limit}/window on {request.url.path}")
        headers = status.headers()
        headers["Retry-After"] = str(max(1, status.reset - int(time.time())))
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too Many Requests",
                "message": "Rate limit exceeded. Please try again later.",
            },
            headers=headers,
        )

    response = await call_next(request)
    for name, value in status.headers().items():
        response.headers[name] = value
    return response


def load_user(token: str):
    """Resolve a session token in a short-lived session of its own."""
    db = db_session.SessionLocal()
    try:
        return resolve_session(db, token)
    finally:
        db.close()


async def identity(request: Request, call_next):
    """Resolve the caller once per request; routes read request.state.user."""
    request.state.user = None
    request.state.roles = {}
    token = session_token(request)
    if token:
        request.state.user = await run_in_threadpool(load_user, token)
    return await call_next(request)
