from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """
    Current time as naive UTC.

    Timestamps are stored without tzinfo so SQLite and PostgreSQL
    compare them the same way.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create engine with appropriate settings.

    check_same_thread=False needed for SQLite with FastAPI's threadpool.
    pool_pre_ping drops connections PostgreSQL closed behind our back.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True, echo=echo)

    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        echo=echo,
    )

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT.
    # Let SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory handed to each service. No module-level handle."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Initialize database schema.
    Creates all tables defined in models, plus the PostgreSQL
    search-vector trigger attached to the pages table.
    Call this on application startup.
    """
    from oggole import models  # noqa: F401  registers tables on Base

    Base.metadata.create_all(bind=engine)
