from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from coursehub.core.config import settings
from coursehub.core.redis_client import get_redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    key: str
    limit: int
    window_seconds: int


def client_ip(request: Request) -> str | None:
    if bool(settings.trust_proxy_headers):
        xri = str(request.headers.get("x-real-ip") or "").strip()
        if xri:
            return xri
        xff = request.headers.get("x-forwarded-for")
        if xff:
            ip = xff.split(",")[0].strip()
            if ip:
                return ip
    if request.client and request.client.host:
        return request.client.host
    return None


def rate_limit(*, key_prefix: str, limit: int | None = None, window_seconds: int = 60):
    """Fixed-window limiter keyed by route and client IP.

    ``limit=None`` reads ``QUIZ_RATE_LIMIT_PER_MINUTE`` at request time.
    Redis outages let the request through.
    """

    async def _dep(request: Request) -> RateLimit:
        eff_limit = int(limit if limit is not None else settings.quiz_rate_limit_per_minute)
        ip = client_ip(request) or "unknown"
        key = f"rl:{key_prefix}:{request.method}:{request.url.path}:{ip}"

        try:
            r = get_redis()
            current = r.incr(key)
            if current == 1:
                r.expire(key, int(window_seconds))
        except Exception:
            logger.warning("rate limiter unavailable, allowing request key=%s", key)
            return RateLimit(key=key, limit=eff_limit, window_seconds=int(window_seconds))

        if int(current) > eff_limit:
            ttl = r.ttl(key)
            retry_after = int(ttl) if ttl and ttl > 0 else int(window_seconds)
            raise HTTPException(
                status_code=429,
                detail="rate limit exceeded",
                headers={"Retry-After": str(retry_after)},
            )

        return RateLimit(key=key, limit=eff_limit, window_seconds=int(window_seconds))

    return Depends(_dep)
