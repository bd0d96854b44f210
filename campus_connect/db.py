import logging

from sqlalchemy import BigInteger, Integer, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from . import config

logger = logging.getLogger(__name__)

# BIGINT everywhere except SQLite, where only INTEGER PRIMARY KEY aliases the rowid
# and autoincrements.
BigId = BigInteger().with_variant(Integer, "sqlite")

Base = declarative_base()


def _set_sqlite_pragma(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY clauses unless this is switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, echo: bool = False) -> Engine:
    """Build an engine for ``url``; SQLite engines get FK enforcement turned on."""
    kwargs = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragma)
    logger.debug("engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def init_db(bind: Engine):
    """Create every table that does not exist yet."""
    # models must be imported so their tables are registered on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind)
    logger.info("schema ready: %s", ", ".join(sorted(Base.metadata.tables)))


engine = make_engine(config.database_url(), echo=config.echo_sql())
SessionLocal = make_session_factory(engine)
