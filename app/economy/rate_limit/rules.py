from __future__ import annotations

import json
from dataclasses import dataclass, replace

import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

GENERATE_RESUME = "generate-resume"
DOWNLOAD_RESUME = "download-resume"
BILLING_ORDER = "billing-order"


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    endpoint: str
    max_requests: int
    window_seconds: int
    premium_max_requests: int | None = None
    fail_open: bool = True

    def limit_for(self, *, is_premium: bool) -> int:
        if is_premium and self.premium_max_requests is not None:
            return self.premium_max_requests
        return self.max_requests


DEFAULT_RULES: dict[str, RateLimitRule] = {
    GENERATE_RESUME: RateLimitRule(
        endpoint=GENERATE_RESUME,
        max_requests=1,
        premium_max_requests=5,
        window_seconds=60,
    ),
    DOWNLOAD_RESUME: RateLimitRule(
        endpoint=DOWNLOAD_RESUME,
        max_requests=30,
        window_seconds=60,
    ),
    BILLING_ORDER: RateLimitRule(
        endpoint=BILLING_ORDER,
        max_requests=5,
        window_seconds=300,
    ),
}
FALLBACK_RULE = RateLimitRule(endpoint="*", max_requests=5, window_seconds=60)


def _positive_int(raw_value: object, fallback: int) -> int:
    if isinstance(raw_value, bool) or not isinstance(raw_value, int):
        return fallback
    return raw_value if raw_value > 0 else fallback


def _parse_rule_overrides(raw_rules: str) -> dict[str, dict[str, object]]:
    if not raw_rules:
        return {}

    try:
        parsed = json.loads(raw_rules)
    except json.JSONDecodeError:
        logger.warning("rate_limit_rules_parse_failed")
        return {}

    if not isinstance(parsed, dict):
        logger.warning("rate_limit_rules_invalid_shape")
        return {}

    return {
        endpoint: override
        for endpoint, override in parsed.items()
        if isinstance(endpoint, str) and isinstance(override, dict)
    }


def resolve_rule(endpoint: str, *, raw_overrides: str) -> RateLimitRule:
    base_rule = DEFAULT_RULES.get(endpoint) or replace(FALLBACK_RULE, endpoint=endpoint)
    override = _parse_rule_overrides(raw_overrides).get(endpoint)
    if override is None:
        return base_rule

    premium_max_requests = base_rule.premium_max_requests
    if "premium_max_requests" in override:
        raw_premium = override["premium_max_requests"]
        premium_max_requests = (
            None if raw_premium is None else _positive_int(raw_premium, base_rule.max_requests)
        )
    fail_open = override.get("fail_open")
    return RateLimitRule(
        endpoint=endpoint,
        max_requests=_positive_int(override.get("max_requests"), base_rule.max_requests),
        window_seconds=_positive_int(override.get("window_seconds"), base_rule.window_seconds),
        premium_max_requests=premium_max_requests,
        fail_open=fail_open if isinstance(fail_open, bool) else base_rule.fail_open,
    )


def get_rule(endpoint: str) -> RateLimitRule:
    return resolve_rule(endpoint, raw_overrides=get_settings().rate_limit_rules)
