"""Single-row record of the panel's identity and last known state."""

from datetime import datetime, timezone

from sqlalchemy import Integer, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base

ALARM_CONFIG_ID = 1


class AlarmConfigModel(Base):
    __tablename__ = "alarm_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=ALARM_CONFIG_ID)
    phone_number: Mapped[str] = mapped_column(Text, default="")
    firmware_version: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_main: Mapped[int] = mapped_column(Integer, default=0)
    main_permissions: Mapped[int] = mapped_column(Integer, default=0)
    last_status: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_scenario: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_zones: Mapped[str | None] = mapped_column(Text, nullable=True)  # raw ZONES value
    last_check: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    configured: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
