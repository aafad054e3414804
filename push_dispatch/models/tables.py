from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from push_dispatch.models.db import Base


class PushLog(Base):
    __tablename__ = "push_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(16), nullable=False, default="android")
    token: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
