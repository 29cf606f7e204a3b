from app.db.models.processed_orders import ProcessedOrder
from app.db.models.rate_limits import RateLimitRecord
from app.db.models.resumes import Resume
from app.db.models.users import User

__all__ = [
    "ProcessedOrder",
    "RateLimitRecord",
    "Resume",
    "User",
]
