from contextlib import contextmanager
from typing import Iterator

from sqlmodel import SQLModel, Session, create_engine

from .config import db_path

# (url, engine) for the database NTS_DB_PATH pointed at when last asked
_cached = None


def database_url() -> str:
    path = db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def get_engine():
    """Engine for the current NTS_DB_PATH; rebuilt whenever the path changes."""
    global _cached
    url = database_url()
    if _cached is not None and _cached[0] == url:
        return _cached[1]
    reset_engine()
    # uvicorn and the async tests touch the connection from worker threads
    engine = create_engine(url, connect_args={"check_same_thread": False})
    _cached = (url, engine)
    return engine


def reset_engine() -> None:
    global _cached
    if _cached is not None:
        _cached[1].dispose()
    _cached = None


def init_db() -> None:
    from . import models  # noqa: F401  registers the note table

    SQLModel.metadata.create_all(get_engine())


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    One unit of work. Commits when the block exits cleanly, rolls back and
    re-raises otherwise. Loaded rows stay readable after the commit.
    """
    with Session(get_engine(), expire_on_commit=False) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
