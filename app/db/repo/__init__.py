from app.db.repo.processed_orders_repo import ProcessedOrdersRepo
from app.db.repo.rate_limits_repo import RateLimitsRepo
from app.db.repo.resumes_repo import ResumesRepo
from app.db.repo.users_repo import UsersRepo

__all__ = [
    "ProcessedOrdersRepo",
    "RateLimitsRepo",
    "ResumesRepo",
    "UsersRepo",
]
