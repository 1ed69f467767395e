"""
Temporary storage for parsed uploads awaiting a header mapping.
Stores parsed CSV data in memory with TTL expiration.
Single-server only: uploads do not survive a restart.
"""
import asyncio
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import structlog

from config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TmpUpload:
    """Parsed CSV kept until it is mapped or expires. Never mutated."""
    id: str
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    created_at: datetime
    expires_at: datetime
    filename: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _now()) >= self.expires_at


_cache: dict[str, TmpUpload] = {}
_lock = threading.Lock()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_upload(
    headers: tuple[str, ...],
    rows: tuple[tuple[str, ...], ...],
    filename: Optional[str] = None,
    ttl_minutes: Optional[int] = None,
) -> str:
    """Store parsed data, return upload id."""
    upload_id = str(uuid.uuid4())
    created_at = _now()
    ttl = ttl_minutes if ttl_minutes is not None else settings.tmp_upload_ttl_minutes
    upload = TmpUpload(
        id=upload_id,
        headers=tuple(headers),
        rows=tuple(tuple(row) for row in rows),
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=ttl),
        filename=filename,
    )
    with _lock:
        _cache[upload_id] = upload
    purge_expired()
    logger.debug("tmp_upload_stored", upload_id=upload_id, rows=upload.row_count)
    return upload_id


def get_upload(upload_id: str) -> Optional[TmpUpload]:
    """Retrieve upload by id. Returns None if expired/not found."""
    with _lock:
        upload = _cache.get(upload_id)
        if upload is None:
            return None
        if upload.is_expired():
            del _cache[upload_id]
            logger.info("tmp_upload_expired", upload_id=upload_id)
            return None
        return upload


def delete_upload(upload_id: str) -> None:
    """Remove upload after a successful mapping."""
    with _lock:
        _cache.pop(upload_id, None)


def purge_expired() -> int:
    """Remove all expired entries. Returns how many were removed."""
    now = _now()
    with _lock:
        expired = [k for k, upload in _cache.items() if upload.is_expired(now)]
        for k in expired:
            del _cache[k]
    if expired:
        logger.info("tmp_uploads_purged", count=len(expired))
    return len(expired)


def clear() -> None:
    """Drop every stored upload."""
    with _lock:
        _cache.clear()


async def reap_expired_uploads(interval_seconds: int) -> None:
    """Purge expired uploads every interval_seconds until cancelled."""
    logger.info("tmp_upload_reaper_started", interval_seconds=interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        purge_expired()
