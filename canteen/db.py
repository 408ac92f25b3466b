from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from canteen.config import settings
from canteen.errors import PersistenceFailure


class Base(DeclarativeBase):
    pass


def _serialize_sqlite_writes(engine: Engine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first DML statement, so two sessions can both hold a
    read lock and then deadlock when upgrading. Taking the write lock up front makes
    concurrent writers wait on the busy timeout instead.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": settings.db_timeout_seconds}
    elif url.startswith("postgresql"):
        connect_args = {"options": f"-c statement_timeout={settings.db_timeout_seconds * 1000}"}
    else:
        connect_args = {}
    engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args, **kwargs)
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_writes(engine)
    return engine


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def commit(db: Session) -> None:
    """Commit ``db``; store errors roll the transaction back and surface as PersistenceFailure."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceFailure() from exc
