"""
Key/value storage backends

``InMemoryKeyValueStore`` lives as long as the process (session scope);
``SQLAlchemyKeyValueStore`` persists across restarts.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.domain.repositories.key_value_repository import KeyValueRepository
from storefront.infrastructure.storage.models import Base, StorageEntry

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(KeyValueRepository):
    """Dictionary-backed storage"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return sorted(self._data)


class SQLAlchemyKeyValueStore(KeyValueRepository):
    """SQLAlchemy implementation of the key/value repository"""

    def __init__(self, database_url: str):
        url = make_url(database_url)
        engine_kwargs = {}
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        self._logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def managed_session(self) -> Generator[Session, None, None]:
        """Session scope with commit on success and rollback on failure"""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            self._logger.error("💥 STORAGE ERROR: %s", e)
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str) -> Optional[str]:
        with self.managed_session() as session:
            entry = session.get(StorageEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self.managed_session() as session:
            entry = session.get(StorageEntry, key)
            if entry is None:
                session.add(StorageEntry(key=key, value=value))
            else:
                entry.value = value

    def delete(self, key: str) -> bool:
        with self.managed_session() as session:
            entry = session.get(StorageEntry, key)
            if entry is None:
                return False
            session.delete(entry)
            return True

    def close(self) -> None:
        self._engine.dispose()
