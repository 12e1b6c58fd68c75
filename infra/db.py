"""Engine/sessoes SQLAlchemy do armazenamento de snapshots.

Uso
---
from infra.db import get_engine, session_scope

with session_scope(engine) as s:
    s.execute(...)
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from infra.config import load_config

_ENGINE: Engine | None = None


def criar_engine(url: str) -> Engine:
    """Engine novo, sem cache (testes usam um banco SQLite por caso)."""
    return create_engine(url, pool_pre_ping=True)


def get_engine(*, database_url: str | None = None) -> Engine:
    """Engine compartilhado, criado no primeiro uso a partir da config."""

    global _ENGINE
    if _ENGINE is None:
        url = database_url or load_config().banco_dados.url
        _ENGINE = criar_engine(url)
    elif database_url is not None and _ENGINE.url.render_as_string(hide_password=False) != database_url:
        raise RuntimeError(
            "get_engine() ja inicializado com outra URL; use criar_engine() para bancos adicionais"
        )
    return _ENGINE


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Escopo transacional: commit no sucesso, rollback em qualquer erro."""

    session = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "criar_engine",
    "get_engine",
    "session_scope",
]
