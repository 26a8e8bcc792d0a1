"""Journal of SMS exchanged with the panel."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Integer, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class SmsDirection(str, Enum):
    OUTGOING = "out"
    INCOMING = "in"


class SmsStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"
    RECEIVED = "received"


class SmsLogModel(Base):
    __tablename__ = "sms_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    direction: Mapped[str] = mapped_column(Text, nullable=False)  # out, in
    peer: Mapped[str] = mapped_column(Text, default="")
    text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    message_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), index=True
    )
