import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.schema import CreateIndex

from errors import StorageFailure

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


class Database:
    """Storage handle shared by the services.

    Open it once at process start and ``close()`` it at shutdown. Every
    operation runs inside its own ``session_scope()``.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        connect_args: dict[str, object] = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(database_url, connect_args=connect_args)
        if database_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_pragmas)
        self._sessions = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session: Session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning(f"storage_failure: {exc.__class__.__name__}: {exc}")
            raise StorageFailure(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()


def ensure_schema(db: Database) -> None:
    """Create missing tables and columns for older installations."""
    from models import category_name_index  # registers the tables on Base.metadata

    try:
        Base.metadata.create_all(db.engine)
        # create_all skips indexes of tables that already exist.
        try:
            with db.engine.begin() as conn:
                conn.execute(CreateIndex(category_name_index, if_not_exists=True))
        except IntegrityError as exc:
            logger.warning(
                f"schema_index_skipped: name={category_name_index.name} error={exc}"
            )
        columns = {c["name"] for c in inspect(db.engine).get_columns("transactions")}
        if "kind" not in columns:
            with db.engine.begin() as conn:
                conn.execute(
                    text(
                        "ALTER TABLE transactions "
                        "ADD COLUMN kind INTEGER NOT NULL DEFAULT 0"
                    )
                )
            logger.info("schema_migrated: added transactions.kind")
    except SQLAlchemyError as exc:
        raise StorageFailure(str(exc)) from exc
