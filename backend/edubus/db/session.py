from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from edubus.core.config import get_settings

settings = get_settings()


def enable_sqlite_savepoints(target: Engine) -> Engine:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT nests correctly."""

    @event.listens_for(target, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return target


connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
if settings.database_url.startswith("sqlite"):
    enable_sqlite_savepoints(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
