"""ORM models for the records downloaded from the panel."""

from datetime import datetime, timezone

from sqlalchemy import Integer, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class ZoneModel(Base):
    __tablename__ = "zones"

    slot: Mapped[int] = mapped_column(Integer, primary_key=True)  # 1-8
    name: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[int] = mapped_column(Integer, default=1)  # bool-as-int for SQLite


class ScenarioModel(Base):
    """Predefined (1-16) and custom (> 100) scenarios."""

    __tablename__ = "scenarios"

    slot: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[int] = mapped_column(Integer, default=1)
    zone_mask: Mapped[int] = mapped_column(Integer, default=0)  # bit n-1 = zone n
    is_custom: Mapped[int] = mapped_column(Integer, default=0, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )


class UserModel(Base):
    __tablename__ = "users"

    slot: Mapped[int] = mapped_column(Integer, primary_key=True)  # 0 = Joker
    name: Mapped[str] = mapped_column(Text, nullable=False)
    enabled: Mapped[int] = mapped_column(Integer, default=1)
    permission_mask: Mapped[int] = mapped_column(Integer, default=0)  # RX1 RX2 VERIFY CMD
    is_joker: Mapped[int] = mapped_column(Integer, default=0)
