"""Redis-backed rate limiting and abuse detection middleware."""
import logging
import time
from typing import Optional, Tuple
import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import RATE_LIMIT_PER_MINUTE_IP, RATE_LIMIT_PER_MINUTE_USER
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)

# (status predicate, pattern name, threshold within the detection window)
SUSPICIOUS_PATTERNS = (
    (lambda status: status == 401, "credential_stuffing", 5),
    (lambda status: status == 403, "privilege_probing", 5),
    (lambda status: status == 404, "endpoint_scanning", 10),
    (lambda status: 400 <= status < 500, "abuse", 20),
)


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Sliding window rate limiter shared by every market-service instance.

    Two tiers are enforced:
    - Per client IP, with a higher limit for clients behind shared addresses
    - Per session token, so a single signed-in caller cannot exhaust the API

    Redis outages never block traffic: a failed check lets the request through.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = RATE_LIMIT_PER_MINUTE_IP,
        requests_per_minute_user: int = RATE_LIMIT_PER_MINUTE_USER,
        window_seconds: int = 60,
        detection_window_seconds: int = 300
    ):
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds
        self.detection_window_seconds = detection_window_seconds

    def _check_rate_limit(self, key: str, limit: int, window: int) -> Tuple[bool, int]:
        """
        Check a limit with a Redis sorted set of request timestamps.

        Old entries are trimmed, the remaining ones counted, and the current
        request recorded in the same pipeline.

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, current_time - window)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count before the current request was added
            count = results[1]
            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            return True, 0

    def _reject(self, limit_type: str, subject: str, count: int, limit: int) -> JSONResponse:
        rate_limit_exceeded_counter.add(1, {"limit_type": limit_type})
        logger.warning(f"Rate limit exceeded for {limit_type} {subject}: {count}/{limit} requests")
        return JSONResponse(
            status_code=429,
            content={"detail": f"Rate limit exceeded for {limit_type}. Maximum {limit} requests per minute."},
            headers={"Retry-After": str(self.window_seconds)}
        )

    @staticmethod
    def _client_ip(request: Request) -> str:
        if "x-forwarded-for" in request.headers:
            return request.headers["x-forwarded-for"].split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    @staticmethod
    def _session_subject(request: Request) -> Optional[str]:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            # A token prefix is enough to tell sessions apart without logging secrets
            return f"session_{auth_header.split(' ', 1)[1][:10]}"
        return None

    async def dispatch(self, request: Request, call_next):
        client_ip = self._client_ip(request)
        subject = self._session_subject(request)

        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )
        if not ip_allowed:
            return self._reject("ip", client_ip, ip_count, self.requests_per_minute_ip)

        if subject:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{subject}",
                self.requests_per_minute_user,
                self.window_seconds
            )
            if not user_allowed:
                return self._reject("user", subject, user_count, self.requests_per_minute_user)

        response = await call_next(request)

        self._detect_suspicious_activity(response.status_code, client_ip)

        return response

    def _detect_suspicious_activity(self, status_code: int, client_ip: str) -> None:
        """Count error responses per IP and flag patterns crossing their threshold."""
        window = self.detection_window_seconds
        try:
            current_time = time.time()
            for matches, pattern, threshold in SUSPICIOUS_PATTERNS:
                if not matches(status_code):
                    continue

                key = f"suspicious:{pattern}:{client_ip}"
                self.redis.zadd(key, {str(current_time): current_time})
                self.redis.expire(key, window + 1)

                count = self.redis.zcount(key, current_time - window, current_time)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": pattern})
                    logger.warning(
                        f"Suspicious activity: {pattern} from {client_ip} "
                        f"({count} responses with status {status_code} in {window // 60} min)"
                    )

        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
