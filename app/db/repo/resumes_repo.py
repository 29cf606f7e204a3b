from __future__ import annotations

from datetime import datetime

from app.db.kv_store import RESUMES_TABLE, KeyValueStore
from app.db.records import ResumeRecord


class ResumesRepo:
    @staticmethod
    async def get_by_id(store: KeyValueStore, resume_id: str) -> ResumeRecord | None:
        item = await store.get(RESUMES_TABLE, resume_id)
        if item is None:
            return None
        return ResumeRecord.from_item(item)

    @staticmethod
    async def create(
        store: KeyValueStore,
        *,
        resume_id: str,
        user_id: str,
        title: str | None,
        now_utc: datetime,
    ) -> ResumeRecord:
        item = {"id": resume_id, "user_id": user_id, "title": title, "created_at": now_utc}
        await store.put(RESUMES_TABLE, item)
        return ResumeRecord.from_item(item)
