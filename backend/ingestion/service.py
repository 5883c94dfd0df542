from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator

from sqlalchemy.orm import Session, sessionmaker

from app.db import SessionLocal

SessionScope = Callable[[], ContextManager[Session]]


def make_session_scope(factory: sessionmaker[Session]) -> SessionScope:
    """Build a commit-or-rollback scope bound to ``factory``."""

    @contextmanager
    def scope() -> Iterator[Session]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


session_scope = make_session_scope(SessionLocal)

__all__ = ["SessionScope", "make_session_scope", "session_scope"]
