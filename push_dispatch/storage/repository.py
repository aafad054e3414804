from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from datetime import timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from push_dispatch.models.notification import AuditEntry, PushStatus
from push_dispatch.models.tables import PushLog


class AuditLog(ABC):
    @abstractmethod
    def append(self, entries: list[AuditEntry]) -> None:
        """Store the entries of one dispatch as a single contiguous batch."""
        raise NotImplementedError

    @abstractmethod
    def list_entries(self, limit: int = 100) -> list[AuditEntry]:
        """Return up to ``limit`` most recent entries, oldest first."""
        raise NotImplementedError


class MemoryAuditLog(AuditLog):
    def __init__(self, max_entries: int = 10000) -> None:
        self._entries: deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entries: list[AuditEntry]) -> None:
        with self._lock:
            self._entries.extend(entries)

    def list_entries(self, limit: int = 100) -> list[AuditEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries[-limit:] if limit > 0 else []


class SqlAuditLog(AuditLog):
    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    def append(self, entries: list[AuditEntry]) -> None:
        if not entries:
            return
        db: Session = self.session_factory()
        try:
            db.add_all(
                [
                    PushLog(
                        status=entry.status.value,
                        platform=entry.platform,
                        token=entry.token,
                        message=entry.message,
                        error=entry.error,
                        created_at=entry.created_at.replace(tzinfo=None),
                    )
                    for entry in entries
                ]
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_entries(self, limit: int = 100) -> list[AuditEntry]:
        if limit <= 0:
            return []
        db: Session = self.session_factory()
        try:
            rows = db.execute(select(PushLog).order_by(PushLog.id.desc()).limit(limit)).scalars().all()
        finally:
            db.close()
        return [
            AuditEntry(
                status=PushStatus(row.status),
                platform=row.platform,
                token=row.token,
                message=row.message,
                error=row.error,
                created_at=row.created_at.replace(tzinfo=timezone.utc),
            )
            for row in reversed(rows)
        ]
