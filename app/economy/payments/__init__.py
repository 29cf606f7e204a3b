from app.economy.payments.service import PaymentService

__all__ = ["PaymentService"]
