"""Utilities module - queue client and rate limiter."""
from quizduel.config import get_settings
from quizduel.utils.queue_client import QueueClient
from quizduel.utils.rate_limiter import RateLimiter
from quizduel.utils.datetime_helpers import ensure_utc, utc_now

settings = get_settings()

# Create singleton instances
queue_client = QueueClient(settings.redis_url if settings.redis_url else None)
rate_limiter = RateLimiter(settings.redis_url if settings.redis_url else None)

__all__ = ["queue_client", "rate_limiter", "ensure_utc", "utc_now"]
