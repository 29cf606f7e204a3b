from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

PAYMENT_PROVIDER = "paypal"


@dataclass(frozen=True, slots=True)
class PlanSpec:
    plan_type: str
    title: str
    item_name: str
    amount: str
    currency: str
    duration_months: int


PLANS: dict[str, PlanSpec] = {
    "monthly": PlanSpec(
        plan_type="monthly",
        title="GetQuickResume Premium - Monthly",
        item_name="1 Month Premium Subscription",
        amount="10.00",
        currency="USD",
        duration_months=1,
    ),
    "yearly": PlanSpec(
        plan_type="yearly",
        title="GetQuickResume Premium - Yearly",
        item_name="1 Year Premium Subscription",
        amount="60.00",
        currency="USD",
        duration_months=12,
    ),
}


def _normalize_amount(raw_amount: object, fallback: str) -> str:
    if not isinstance(raw_amount, str):
        return fallback
    try:
        value = Decimal(raw_amount)
    except InvalidOperation:
        return fallback
    if not value.is_finite() or value <= 0:
        return fallback
    return str(value.quantize(Decimal("0.01")))


def _normalize_currency(raw_currency: object, fallback: str) -> str:
    if not isinstance(raw_currency, str):
        return fallback
    currency = raw_currency.strip().upper()
    return currency if len(currency) == 3 and currency.isalpha() else fallback


def resolve_plans(raw_prices: str) -> dict[str, PlanSpec]:
    if not raw_prices:
        return dict(PLANS)

    try:
        parsed = json.loads(raw_prices)
    except json.JSONDecodeError:
        logger.warning("plan_prices_parse_failed")
        return dict(PLANS)

    if not isinstance(parsed, dict):
        logger.warning("plan_prices_invalid_shape")
        return dict(PLANS)

    plans = dict(PLANS)
    for plan_type, override in parsed.items():
        base = PLANS.get(plan_type)
        if base is None or not isinstance(override, dict):
            continue
        plans[plan_type] = PlanSpec(
            plan_type=plan_type,
            title=base.title,
            item_name=base.item_name,
            amount=_normalize_amount(override.get("amount"), base.amount),
            currency=_normalize_currency(override.get("currency"), base.currency),
            duration_months=base.duration_months,
        )
    return plans


def get_plan(plan_type: str) -> PlanSpec | None:
    return resolve_plans(get_settings().plan_prices).get(plan_type)


def amount_matches(plan: PlanSpec, *, amount: str | None, currency: str | None) -> bool:
    if amount is None or currency is None or currency != plan.currency:
        return False
    try:
        return Decimal(amount) == Decimal(plan.amount)
    except InvalidOperation:
        return False
