from __future__ import annotations

from .capture import capture_order
from .create_order import create_order


class PaymentService:
    create_order = staticmethod(create_order)
    capture_order = staticmethod(capture_order)


__all__ = ["PaymentService"]
