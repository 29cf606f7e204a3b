from app.economy.idempotency.gate import FlagGate, GateResult, IdempotencyGate, MarkerGate

__all__ = ["FlagGate", "GateResult", "IdempotencyGate", "MarkerGate"]
