"""
Rate limiting for ledger writes

Every write under /api/ counts against a sliding window per client and rule.
Cash-moving endpoints (batch create/update/transfer, stock actions) share a
tighter budget; the bulk reconcile and repair endpoints are tighter still.
"""
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple
import threading
import time
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from stockledger.core.config import settings

logger = logging.getLogger(__name__)

READ_METHODS = {"GET", "HEAD", "OPTIONS"}


class RateLimitRule:
    def __init__(self, name: str, prefixes: Tuple[str, ...], limit: int, window_seconds: int):
        self.name = name
        self.prefixes = prefixes
        self.limit = limit
        self.window_seconds = window_seconds

    def matches(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.prefixes)


def default_rules() -> List[RateLimitRule]:
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    return [
        RateLimitRule(
            "maintenance",
            ("/api/v1/inventory/reconcile", "/api/v1/inventory/consistency/fix"),
            settings.RATE_LIMIT_MAINTENANCE,
            window,
        ),
        RateLimitRule(
            "ledger",
            ("/api/v1/batches", "/api/v1/inventory/add", "/api/v1/inventory/sell", "/api/v1/inventory/remove"),
            settings.RATE_LIMIT_LEDGER_WRITES,
            window,
        ),
        RateLimitRule("default", ("/api/",), settings.RATE_LIMIT_DEFAULT, window),
    ]


class RateLimiter:
    """In-memory sliding window; one process only"""

    def __init__(self, rules: Optional[List[RateLimitRule]] = None, clock=time.monotonic):
        self.rules = rules if rules is not None else default_rules()
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    @staticmethod
    def client_key(request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            address = forwarded.split(",")[0].strip()
        else:
            address = request.client.host if request.client else "unknown"
        # the signature tail tells callers behind one address apart
        auth = request.headers.get("Authorization", "")
        caller = auth[-12:] if auth.startswith("Bearer ") else "anonymous"
        return f"{address}:{caller}"

    def rule_for(self, path: str) -> Optional[RateLimitRule]:
        for rule in self.rules:
            if rule.matches(path):
                return rule
        return None

    def hit(self, rule: RateLimitRule, client: str) -> Tuple[bool, int, float]:
        """
        Record one request. Returns (allowed, remaining, retry_after_seconds);
        a rejected request is not recorded.
        """
        now = self._clock()
        key = f"{rule.name}:{client}"
        with self._lock:
            hits = self._hits[key]
            while hits and hits[0] <= now - rule.window_seconds:
                hits.popleft()
            if len(hits) >= rule.limit:
                return False, 0, hits[0] + rule.window_seconds - now
            hits.append(now)
            return True, rule.limit - len(hits), 0.0


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, rate_limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter or RateLimiter()

    async def dispatch(self, request: Request, call_next):
        if request.method in READ_METHODS:
            return await call_next(request)
        rule = self.rate_limiter.rule_for(request.url.path)
        if rule is None:
            return await call_next(request)

        client = self.rate_limiter.client_key(request)
        allowed, remaining, retry_after = self.rate_limiter.hit(rule, client)
        if not allowed:
            wait = max(1, int(retry_after + 0.999))
            logger.warning(f"Rate limit '{rule.name}' exceeded by {client} on {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Too many requests. Please try again later.", "retry_after": wait},
                headers={
                    "Retry-After": str(wait),
                    "X-RateLimit-Limit": str(rule.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rule.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
