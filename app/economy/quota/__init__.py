from app.economy.quota.tracker import QuotaTracker
from app.economy.quota.types import DownloadResult, ResumeGrant

__all__ = ["DownloadResult", "QuotaTracker", "ResumeGrant"]
