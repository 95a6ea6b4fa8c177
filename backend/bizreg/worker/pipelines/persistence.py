"""
Deduplication & Persistence Coordinator

- 국내사업자: 한 건씩 저장, 저장 직전 존재 여부 재확인
- 국외사업자: 키 목록을 배치 단위로 조회해 기존 키 제외, 배치 저장
  (배치 저장 실패 시 해당 배치만 한 건씩 저장)

The store's unique constraint and version check settle races; their
rejections are ordinary outcomes here. Only StoreUnavailableError escapes.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from bizreg.core.exceptions import (
    ConflictKind,
    StoreConflictError,
    StoreUnavailableError,
    StoreWriteError,
)
from bizreg.models.business_entity import DedupKey
from bizreg.schemas.business_entity import BusinessEntityCreate
from bizreg.services.entity_store import BusinessEntityStorage
from bizreg.worker.pipelines.report import FailureHistogram, FailureReason

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
PROGRESS_LOG_INTERVAL = 50


@dataclass
class PersistenceOutcome:
    """저장 단계 결과"""
    deduplicated: int = 0  # 중복 제거 후 저장을 시도한 건수
    saved: int = 0
    already_existed: int = 0
    histogram: FailureHistogram = field(default_factory=FailureHistogram)

    @property
    def failed(self) -> int:
        return (
            self.histogram.count(FailureReason.VERSION_CONFLICT)
            + self.histogram.count(FailureReason.WRITE_ERROR)
        )


def _key_of(entity: BusinessEntityCreate, key: DedupKey) -> str:
    return getattr(entity, key.value)


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class PersistenceCoordinator:
    """중복 제거 후 저장"""

    def __init__(self, storage: BusinessEntityStorage, batch_size: int = DEFAULT_BATCH_SIZE):
        self.storage = storage
        self.batch_size = batch_size

    @classmethod
    def from_settings(cls, storage, settings) -> "PersistenceCoordinator":
        return cls(storage, batch_size=settings.PERSIST_BATCH_SIZE)

    # ------------------------------------------------------------------
    # 국내사업자: one at a time
    # ------------------------------------------------------------------

    def persist_one_by_one(
        self,
        entities: Sequence[BusinessEntityCreate],
        key: DedupKey = DedupKey.BUSINESS_NUMBER,
    ) -> PersistenceOutcome:
        outcome = PersistenceOutcome()

        for entity in entities:
            value = _key_of(entity, key)
            if self.storage.exists_by_key(key, value):
                logger.debug(f"[Persistence] Exists right before save, skipping: {value}")
                outcome.already_existed += 1
                outcome.histogram.record(FailureReason.ALREADY_IN_STORE, value)
                continue

            outcome.deduplicated += 1
            self._save_single(entity, value, outcome)

        logger.info(
            f"[Persistence] One-by-one done: saved={outcome.saved} "
            f"already_existed={outcome.already_existed} failed={outcome.failed}"
        )
        return outcome

    # ------------------------------------------------------------------
    # 국외사업자: batched
    # ------------------------------------------------------------------

    def persist_in_batches(
        self,
        entities: Sequence[BusinessEntityCreate],
        key: DedupKey = DedupKey.MAIL_ORDER_SALES_NUMBER,
    ) -> PersistenceOutcome:
        outcome = PersistenceOutcome()

        # 같은 실행 안의 중복 키는 첫 번째만 남긴다
        unique: dict[str, BusinessEntityCreate] = {}
        for entity in entities:
            value = _key_of(entity, key)
            if value in unique:
                outcome.histogram.record(FailureReason.ALREADY_PROCESSED, value)
                continue
            unique[value] = entity

        keys = list(unique)
        existing: set[str] = set()
        for batch in _chunks(keys, self.batch_size):
            for stored in self.storage.find_by_keys_in(key, batch):
                existing.add(getattr(stored, key.value))

        for value in keys:
            if value in existing:
                outcome.already_existed += 1
                outcome.histogram.record(FailureReason.ALREADY_IN_STORE, value)

        survivors = [entity for value, entity in unique.items() if value not in existing]
        outcome.deduplicated = len(survivors)
        logger.info(
            f"[Persistence] {len(entities)} entities, {len(existing)} already stored, "
            f"{len(survivors)} to save (batch_size={self.batch_size})"
        )

        for batch in _chunks(survivors, self.batch_size):
            try:
                saved = self.storage.save_many(batch)
                outcome.saved += len(saved)
                logger.info(f"[Persistence] Batch saved: {len(saved)} (total {outcome.saved})")
            except StoreUnavailableError:
                raise
            except (StoreConflictError, StoreWriteError) as e:
                logger.warning(f"[Persistence] Batch save failed, falling back to single saves: {e.message}")
                for entity in batch:
                    self._save_single(entity, _key_of(entity, key), outcome)

        logger.info(
            f"[Persistence] Batched done: saved={outcome.saved} "
            f"already_existed={outcome.already_existed} failed={outcome.failed}"
        )
        return outcome

    # ------------------------------------------------------------------

    def _save_single(self, entity: BusinessEntityCreate, value: str, outcome: PersistenceOutcome) -> None:
        try:
            self.storage.save(entity)
        except StoreUnavailableError:
            raise
        except StoreConflictError as e:
            if e.kind == ConflictKind.VERSION_CONFLICT:
                logger.warning(f"[Persistence] Version conflict, not retried: {value}")
                outcome.histogram.record(FailureReason.VERSION_CONFLICT, value)
            else:
                logger.info(f"[Persistence] Already stored by another writer: {value}")
                outcome.already_existed += 1
                outcome.histogram.record(FailureReason.ALREADY_IN_STORE, value)
            return
        except StoreWriteError as e:
            logger.error(f"[Persistence] Save failed: {value}, error={e.message}")
            outcome.histogram.record(FailureReason.WRITE_ERROR, value)
            return

        outcome.saved += 1
        if outcome.saved == 1 or outcome.saved % PROGRESS_LOG_INTERVAL == 0:
            logger.info(f"[Persistence] {outcome.saved} entities saved so far")
