"""
SQLAlchemy-backed overlay store
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, List, Union
import copy
import logging

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from .db_models import Base, OverlayEntryModel
from .overlays import OverlayStore

logger = logging.getLogger(__name__)


class SQLOverlayStore(OverlayStore):
    """Overlay store persisted in a SQLite (or any SQLAlchemy) database"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", echo: bool = False):
        """
        Initialize database connection

        Args:
            db_path: SQLite file path, ``:memory:``, or a full SQLAlchemy URL
            echo: If True, log all SQL statements
        """
        super().__init__()
        db_path = str(db_path)
        if "://" in db_path:
            self.db_path = db_path
            self.engine = create_engine(db_path, echo=echo)
        else:
            if db_path != ":memory:":
                try:
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                except (PermissionError, OSError) as e:
                    raise ValueError(f"Cannot create overlay database directory: {e}") from e
            self.db_path = db_path
            # StaticPool keeps a single connection so :memory: databases persist
            self.engine = create_engine(
                f"sqlite:///{db_path}",
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )

        self.Session = scoped_session(sessionmaker(bind=self.engine))
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema"""
        Base.metadata.create_all(self.engine)
        logger.info(f"Overlay database initialized at {self.db_path}")

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope for database operations"""
        session = self.Session()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.error(f"Database integrity error: {e}")
            raise
        except OperationalError as e:
            session.rollback()
            logger.error(f"Database operational error: {e}")
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Unexpected error in database transaction: {e}")
            raise
        finally:
            session.close()

    def get(self, key: str, default: Any = None) -> Any:
        with self.session_scope() as session:
            entry = session.get(OverlayEntryModel, key)
            return copy.deepcopy(entry.value) if entry is not None else default

    def set(self, key: str, value: Any) -> None:
        with self.session_scope() as session:
            self._write(session, key, value)

    def delete(self, key: str) -> None:
        with self.session_scope() as session:
            entry = session.get(OverlayEntryModel, key)
            if entry is not None:
                session.delete(entry)

    def keys(self, prefix: str = "") -> List[str]:
        with self.session_scope() as session:
            stmt = select(OverlayEntryModel.key).order_by(OverlayEntryModel.key)
            if prefix:
                stmt = stmt.where(OverlayEntryModel.key.startswith(prefix, autoescape=True))
            return list(session.scalars(stmt))

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Read-modify-write in one transaction, serialized per key"""
        with self.lock_for(key):
            with self.session_scope() as session:
                entry = session.get(OverlayEntryModel, key)
                current = copy.deepcopy(entry.value) if entry is not None else copy.deepcopy(default)
                new_value = fn(current)
                if new_value is None:
                    if entry is not None:
                        session.delete(entry)
                else:
                    self._write(session, key, new_value, entry)
                return new_value

    @staticmethod
    def _write(session, key: str, value: Any, entry=None):
        if entry is None:
            entry = session.get(OverlayEntryModel, key)
        if entry is None:
            session.add(OverlayEntryModel(key=key, value=value))
        else:
            # Reassign so the JSON column is flagged dirty
            entry.value = copy.deepcopy(value)

    def close(self):
        """Close database connection"""
        self.Session.remove()
        self.engine.dispose()
        logger.info("Overlay database connection closed")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.close()
