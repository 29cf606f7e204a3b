from app.workers.tasks.notifications import send_premium_confirmation_email
from app.workers.tasks.payments_reconciliation import run_payments_reconciliation

__all__ = [
    "run_payments_reconciliation",
    "send_premium_confirmation_email",
]
