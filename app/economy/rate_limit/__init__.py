from app.economy.rate_limit.rules import RateLimitRule, get_rule
from app.economy.rate_limit.service import WindowedRateLimiter
from app.economy.rate_limit.types import RateLimitDecision

__all__ = ["RateLimitDecision", "RateLimitRule", "WindowedRateLimiter", "get_rule"]
