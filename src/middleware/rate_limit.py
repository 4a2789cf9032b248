import asyncio
import logging
import math
import threading
import time
from typing import Callable, Dict, NamedTuple, Optional, Tuple

import redis.asyncio as redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from config.settings import QuizSettings, get_settings
from src.cache.connection import get_redis

logger = logging.getLogger(__name__)

NAMESPACE = "quiz:"

ATTEMPT_START = "attempt_start"
ADMIN = "admin"
QUIZ = "quiz"

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Lua script for atomic fixed window increment
LUA_SCRIPT = """
local key = KEYS[1]
local expiry = tonumber(ARGV[1])
local count = redis.call("INCR", key)
if count == 1 then
    redis.call("EXPIRE", key, expiry)
end
return count
"""


class WindowHit(NamedTuple):
    count: int
    retry_after: int  # seconds until the current window resets


def limits_from_settings(settings: QuizSettings) -> Dict[str, int]:
    return {
        ATTEMPT_START: settings.rate_limit_attempt_start,
        ADMIN: settings.rate_limit_admin,
        QUIZ: settings.rate_limit_quiz,
    }


def resolve_group(method: str, path: str) -> Optional[str]:
    """Maps a request to its rate limit group. None means the request is not limited."""
    if not path.startswith("/api/"):
        return None
    if path.rstrip("/").endswith("/attempts/start"):
        return ATTEMPT_START
    if method.upper() in WRITE_METHODS and ("/tests" in path or "/blueprints" in path):
        return ADMIN
    return QUIZ


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class MemoryRateLimitBackend:
    """Process-local fixed windows. Expired windows are dropped whenever the store is touched."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}

    def _purge(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]

    async def hit(self, key: str, window_seconds: int) -> Optional[WindowHit]:
        with self._lock:
            now = self._clock()
            self._purge(now)
            count, reset_at = self._windows.get(key, (0, now + window_seconds))
            count += 1
            self._windows[key] = (count, reset_at)
        return WindowHit(count=count, retry_after=max(1, math.ceil(reset_at - now)))

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimitBackend:
    """
    Fixed windows shared between processes through Redis.
    Returns None from hit() when Redis is unavailable so callers fail open.
    """

    def __init__(self, connection_factory=get_redis, clock: Callable[[], float] = time.time):
        self._connection_factory = connection_factory
        self._clock = clock
        self._lua_sha: Optional[str] = None
        self._lua_sha_lock = asyncio.Lock()

    async def _get_lua_sha(self, redis_conn: redis.Redis) -> Optional[str]:
        async with self._lua_sha_lock:
            if self._lua_sha is None:
                try:
                    self._lua_sha = await redis_conn.script_load(LUA_SCRIPT)
                    logger.info(f"Loaded rate limiting Lua script with SHA: {self._lua_sha}")
                except RedisError as e:
                    logger.error(f"Failed to load Lua script into Redis: {e}")
                    self._lua_sha = None
            return self._lua_sha

    async def hit(self, key: str, window_seconds: int) -> Optional[WindowHit]:
        redis_conn = await self._connection_factory()
        if not redis_conn:
            logger.warning("Redis unavailable, skipping rate limiting.")
            return None

        now = self._clock()
        window = int(now // window_seconds)
        redis_key = f"{NAMESPACE}rl:{key}:{window}"
        expiry_seconds = window_seconds * 2

        try:
            sha = await self._get_lua_sha(redis_conn)
            if sha:
                count = await redis_conn.evalsha(sha, 1, redis_key, str(expiry_seconds))
            else:
                logger.warning("Lua script SHA not available, using EVAL.")
                count = await redis_conn.eval(LUA_SCRIPT, 1, redis_key, str(expiry_seconds))
        except RedisError as e:
            logger.error(f"Redis error during rate limiting for {key}: {e}. Allowing request.")
            return None

        retry_after = max(1, math.ceil((window + 1) * window_seconds - now))
        return WindowHit(count=int(count), retry_after=retry_after)


def build_backend(settings: QuizSettings):
    if settings.rate_limit_backend == "redis":
        return RedisRateLimitBackend()
    return MemoryRateLimitBackend()


class RateLimitingMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        backend=None,
        limits: Optional[Dict[str, int]] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        settings = get_settings()
        self.backend = backend if backend is not None else build_backend(settings)
        self.limits = limits if limits is not None else limits_from_settings(settings)
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        group = resolve_group(request.method, request.url.path)
        if group is None or group not in self.limits:
            return await call_next(request)

        limit = self.limits[group]
        key = f"{group}:{client_ip(request)}"
        hit = await self.backend.hit(key, self.window_seconds)
        if hit is None:
            return await call_next(request)

        if hit.count > limit:
            logger.warning(f"Rate limit exceeded for {key}. Count: {hit.count}, Limit: {limit}")
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."},
                headers={
                    "x-ratelimit-limit": str(limit),
                    "x-ratelimit-remaining": "0",
                    "retry-after": str(hit.retry_after),
                },
            )

        response = await call_next(request)
        response.headers["x-ratelimit-limit"] = str(limit)
        response.headers["x-ratelimit-remaining"] = str(max(0, limit - hit.count))
        return response
