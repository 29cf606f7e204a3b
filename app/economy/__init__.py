from app.economy.entitlements import EntitlementValidator
from app.economy.payments import PaymentService
from app.economy.quota import QuotaTracker
from app.economy.rate_limit import WindowedRateLimiter
