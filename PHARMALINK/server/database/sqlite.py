from __future__ import annotations

import os
from datetime import datetime, timezone

import sqlalchemy
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from PHARMALINK.server.database.schema import Base, KeyValueEntry
from PHARMALINK.server.utils.configurations import DatabaseSettings
from PHARMALINK.server.utils.constants import DATA_PATH
from PHARMALINK.server.utils.logger import logger
from PHARMALINK.server.utils.services.errors import StorageError, StorageQuotaError


# [SQLITE KEY VALUE STORE]
###############################################################################
class SQLiteKeyValueRepository:
    def __init__(self, settings: DatabaseSettings, db_path: str | None = None) -> None:
        self.db_path: str | None = db_path or os.path.join(
            DATA_PATH, settings.database_filename
        )
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        self.engine: Engine = sqlalchemy.create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            future=True,
            connect_args={"timeout": settings.connect_timeout},
        )
        self.session_factory = sessionmaker(bind=self.engine, future=True)
        self.max_value_bytes = settings.max_value_bytes
        Base.metadata.create_all(self.engine)

    # -------------------------------------------------------------------------
    def get(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            value = result.scalar()
        return value

    # -------------------------------------------------------------------------
    def set(self, key: str, value: str) -> None:
        size = len(value.encode("utf-8"))
        if self.max_value_bytes and size > self.max_value_bytes:
            raise StorageQuotaError(key, size, self.max_value_bytes)
        table = KeyValueEntry.__table__
        stmt = insert(table).values(
            key=key, value=value, updated_at=datetime.now(timezone.utc)
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={
                "value": stmt.excluded.value,  # type: ignore[attr-defined]
                "updated_at": stmt.excluded.updated_at,  # type: ignore[attr-defined]
            },
        )
        session = self.session_factory()
        try:
            session.execute(stmt)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Unable to persist key {key}") from exc
        finally:
            session.close()

    # -------------------------------------------------------------------------
    def delete(self, key: str) -> None:
        table = KeyValueEntry.__table__
        with self.engine.begin() as conn:
            conn.execute(table.delete().where(table.c.key == key))
        logger.debug("Removed key %s from %s", key, self.db_path)
