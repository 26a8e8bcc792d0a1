"""Database engine and session factory for SQLAlchemy."""

from sqlalchemy import create_engine, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from ..config import settings


class Base(DeclarativeBase):
    pass


engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False},  # SQLite needs this for multi-thread
    echo=False,
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def register_models() -> None:
    """Import models so they register with Base.metadata."""
    from . import alarm_config  # noqa: F401
    from . import panel_records  # noqa: F401
    from . import sms_log  # noqa: F401


def init_database(bind=None) -> None:
    """Create all tables on bind (default: the configured engine)."""
    register_models()
    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    if bind.dialect.name == "sqlite" and settings.db_path != ":memory:" and bind is engine:
        with bind.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.commit()
