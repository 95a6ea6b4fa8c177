"""
Business Entity Storage

The pipeline only needs five operations from the persistence engine:
existence check by key, get by key, find by keys, save one, save many.
BusinessEntityStorage is that seam; SqlAlchemyBusinessEntityStorage is the
production implementation.

Database exceptions are translated into the ingestion taxonomy:
- IntegrityError  → StoreConflictError(DUPLICATE_KEY)
- StaleDataError  → StoreConflictError(VERSION_CONFLICT)
- OperationalError → StoreUnavailableError (fatal for the run)
- other SQLAlchemyError → StoreWriteError
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from sqlalchemy import select, exists
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from bizreg.core.database import get_db
from bizreg.core.exceptions import (
    ConflictKind,
    IngestionError,
    StoreConflictError,
    StoreUnavailableError,
    StoreWriteError,
)
from bizreg.models.business_entity import BusinessEntity, DedupKey
from bizreg.schemas.business_entity import (
    BusinessEntityCreate,
    BusinessEntityReplace,
    BusinessEntityResponse,
)

logger = logging.getLogger(__name__)

EntityInput = Union[BusinessEntityCreate, BusinessEntityReplace]


class BusinessEntityStorage(ABC):
    """Store operations used by the ingestion pipeline"""

    @abstractmethod
    def exists_by_key(self, key: DedupKey, value: str) -> bool:
        ...

    @abstractmethod
    def get_by_key(self, key: DedupKey, value: str) -> Optional[BusinessEntityResponse]:
        ...

    @abstractmethod
    def find_by_keys_in(self, key: DedupKey, values: Sequence[str]) -> list[BusinessEntityResponse]:
        ...

    @abstractmethod
    def save(self, entity: EntityInput) -> BusinessEntityResponse:
        """Insert a new entity, or fully replace one when id/version are given"""

    @abstractmethod
    def save_many(self, entities: Sequence[BusinessEntityCreate]) -> list[BusinessEntityResponse]:
        """Insert all entities in one transaction; all or nothing"""


def _entity_key(entity: EntityInput) -> Optional[str]:
    return entity.business_number or entity.mail_order_sales_number


class SqlAlchemyBusinessEntityStorage(BusinessEntityStorage):
    """SQLAlchemy implementation; one short-lived session per operation"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _translate(error: SQLAlchemyError, key: Optional[str] = None) -> IngestionError:
        if isinstance(error, StaleDataError):
            return StoreConflictError(
                f"Version conflict for {key}: {error}",
                kind=ConflictKind.VERSION_CONFLICT,
                key=key,
            )
        if isinstance(error, IntegrityError):
            return StoreConflictError(
                f"Key already exists for {key}: {error.orig}",
                kind=ConflictKind.DUPLICATE_KEY,
                key=key,
            )
        if isinstance(error, OperationalError):
            return StoreUnavailableError(f"Store unavailable: {error.orig}", key=key)
        return StoreWriteError(f"Write failed for {key}: {error}", key=key)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def exists_by_key(self, key: DedupKey, value: str) -> bool:
        try:
            with get_db(self._session_factory) as db:
                stmt = select(exists().where(key.column == value))
                return bool(db.execute(stmt).scalar())
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Existence check failed: {e}", key=value) from e

    def get_by_key(self, key: DedupKey, value: str) -> Optional[BusinessEntityResponse]:
        try:
            with get_db(self._session_factory) as db:
                stmt = select(BusinessEntity).where(key.column == value)
                row = db.execute(stmt).scalar_one_or_none()
                return BusinessEntityResponse.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Lookup failed: {e}", key=value) from e

    def find_by_keys_in(self, key: DedupKey, values: Sequence[str]) -> list[BusinessEntityResponse]:
        if not values:
            return []
        try:
            with get_db(self._session_factory) as db:
                stmt = select(BusinessEntity).where(key.column.in_(list(values)))
                rows = db.execute(stmt).scalars().all()
                return [BusinessEntityResponse.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Batch lookup failed: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, entity: EntityInput) -> BusinessEntityResponse:
        key = _entity_key(entity)
        try:
            with get_db(self._session_factory) as db:
                if isinstance(entity, BusinessEntityReplace):
                    row = db.get(BusinessEntity, entity.id)
                    if row is None:
                        raise StoreWriteError(f"Entity id={entity.id} does not exist", key=key)
                    if row.version != entity.version:
                        raise StoreConflictError(
                            f"Version conflict for {key}: stored={row.version}, given={entity.version}",
                            kind=ConflictKind.VERSION_CONFLICT,
                            key=key,
                        )
                    for field, value in entity.model_dump(exclude={"id", "version"}).items():
                        setattr(row, field, value)
                else:
                    row = BusinessEntity(**entity.model_dump())
                    db.add(row)

                db.commit()
                return BusinessEntityResponse.model_validate(row)
        except SQLAlchemyError as e:
            raise self._translate(e, key) from e

    def save_many(self, entities: Sequence[BusinessEntityCreate]) -> list[BusinessEntityResponse]:
        if not entities:
            return []
        try:
            with get_db(self._session_factory) as db:
                rows = [BusinessEntity(**entity.model_dump()) for entity in entities]
                db.add_all(rows)
                db.commit()
                return [BusinessEntityResponse.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise self._translate(e, f"batch of {len(entities)}") from e
