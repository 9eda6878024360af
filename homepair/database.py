"""Database connection and initialization."""

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from homepair.config import settings

# Import all models so SQLModel registers them
import homepair.models  # noqa: F401


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create a SQLite engine with foreign keys enforced on every connection."""
    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


engine = make_engine(f"sqlite:///{settings.db_path}", echo=settings.debug)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables and enable WAL mode."""
    bind = bind or engine
    SQLModel.metadata.create_all(bind)

    # Enable WAL mode for better concurrent read performance
    with bind.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.commit()
