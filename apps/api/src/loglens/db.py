from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase

from loglens.config import get_settings


class Base(DeclarativeBase):
    pass


@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    url = make_url(settings.ledger_database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        url,
        echo=settings.ledger_db_echo,
        pool_pre_ping=True,
    )


def init_db(engine: Engine | None = None) -> Engine:
    # imported for its side effect of registering the ledger tables on Base
    import loglens.models  # noqa: F401

    resolved = engine or get_engine()
    Base.metadata.create_all(bind=resolved)
    return resolved
