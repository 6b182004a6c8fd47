"""
Rate Limiting Service
"""

import time
import redis
from typing import Optional, Dict, Any
from shortsfusion.config.settings import settings


RATE_LIMIT_WINDOW_S = 60


class RateLimitError(Exception):
    """Rate limiting error."""

    def __init__(self, message: str, reset_at: Optional[int] = None):
        self.reset_at = reset_at
        super().__init__(message)


class RateLimiter:
    """
    Sliding window rate limiter using Redis, keyed per user
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        redis_client: Optional[redis.Redis] = None,
        requests_per_minute: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        """
        Initialize rate limiter

        Args:
            redis_url: Redis connection URL (defaults to settings.redis_url)
            redis_client: Pre-built client, mainly for tests
            requests_per_minute: Admissions allowed per window
            window_seconds: Window length
        """
        self.redis_url = redis_url or settings.redis_url
        self.redis_client = redis_client or redis.from_url(
            self.redis_url,
            decode_responses=True,
        )
        self.requests_per_minute = requests_per_minute or settings.rate_limit_per_min
        self.window_seconds = window_seconds or RATE_LIMIT_WINDOW_S

        # Allowlist for bypassing rate limits (e.g., internal accounts)
        self.rate_limit_allowlist: set = set()

    def _key(self, user_id: str) -> str:
        return f"ratelimit:user:{user_id}"

    def check_rate_limit(self, user_id: str) -> Dict[str, Any]:
        """
        Record an admission attempt and check it against the window

        Args:
            user_id: Requesting user

        Returns:
            Dict with {
                "allowed": bool,
                "remaining": int,
                "reset_at": int (unix timestamp)
            }
        """
        limit = self.requests_per_minute
        window = self.window_seconds

        if user_id in self.rate_limit_allowlist:
            return {
                "allowed": True,
                "remaining": limit,
                "reset_at": int(time.time()) + window,
            }

        key = self._key(user_id)
        now = time.time()
        window_start = now - window

        # Remove timestamps outside current window
        self.redis_client.zremrangebyscore(key, 0, window_start)

        # Count requests in current window
        current_count = self.redis_client.zcard(key)

        if current_count < limit:
            # Add current request
            self.redis_client.zadd(key, {str(now): now})
            self.redis_client.expire(key, window)
            return {
                "allowed": True,
                "remaining": limit - (current_count + 1),
                "reset_at": int(now) + window,
            }

        # Rate limit exceeded
        oldest_request = self.redis_client.zrange(key, 0, 0, withscores=True)
        reset_at = int(oldest_request[0][1]) + window if oldest_request else int(now) + window
        return {
            "allowed": False,
            "remaining": 0,
            "reset_at": reset_at,
        }

    def enforce(self, user_id: str) -> Dict[str, Any]:
        """
        Check the limit and raise when exceeded

        Raises:
            RateLimitError: If the user is over the limit
        """
        result = self.check_rate_limit(user_id)
        if not result["allowed"]:
            raise RateLimitError(
                f"Rate limit exceeded. Try again at {result['reset_at']}",
                reset_at=result["reset_at"],
            )
        return result

    def add_to_allowlist(self, user_id: str) -> None:
        self.rate_limit_allowlist.add(user_id)

    def remove_from_allowlist(self, user_id: str) -> None:
        self.rate_limit_allowlist.discard(user_id)

    def reset_rate_limit(self, user_id: str) -> None:
        """Reset rate limit window for a user."""
        self.redis_client.delete(self._key(user_id))
