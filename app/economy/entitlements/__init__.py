from app.economy.entitlements.types import PremiumStatus
from app.economy.entitlements.validator import EntitlementValidator

__all__ = ["EntitlementValidator", "PremiumStatus"]
