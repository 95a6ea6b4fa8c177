"""
Enrichment Orchestrator
Fan candidate records out to a bounded worker pool and collect entity drafts

Each task:
1. claims its key in the run-wide "seen" set (중복 처리 방지)
2. skips keys already in the store
3. skips the lookup once the registry reported rate limiting
4. calls the registry client and keeps only complete results

Results are collected on the calling thread with a bounded wait per task
and an overall deadline for the whole run. A task that times out or raises
is counted and never stops the rest. The pool is always shut down before
enrich() returns.
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Iterable, Optional

from pydantic import ValidationError

from bizreg.core.exceptions import StoreUnavailableError
from bizreg.models.business_entity import DedupKey
from bizreg.schemas.business_entity import BusinessEntityCreate
from bizreg.services.entity_store import BusinessEntityStorage
from bizreg.services.registry_client import LookupStatus, RegistryLookupClient
from bizreg.worker.pipelines.report import FailureHistogram, FailureReason
from bizreg.worker.pipelines.source_parser import CandidateRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 10
DEFAULT_TASK_TIMEOUT = 30.0  # seconds
DEFAULT_RUN_TIMEOUT = 300.0  # seconds

_STATUS_TO_REASON = {
    LookupStatus.NOT_FOUND: FailureReason.NO_RESULT,
    LookupStatus.RATE_LIMITED: FailureReason.RATE_LIMITED,
    LookupStatus.MALFORMED_RESPONSE: FailureReason.LOOKUP_ERROR,
    LookupStatus.TRANSPORT_ERROR: FailureReason.LOOKUP_ERROR,
}


@dataclass
class EnrichmentOutcome:
    """보강 단계 결과"""
    entities: list[BusinessEntityCreate] = field(default_factory=list)
    histogram: FailureHistogram = field(default_factory=FailureHistogram)
    submitted: int = 0
    timed_out: int = 0
    rate_limited: bool = False

    @property
    def enriched(self) -> int:
        return len(self.entities)


@dataclass
class _RunState:
    """State shared by the tasks of one enrich() call"""
    seen: set = field(default_factory=set)
    seen_lock: threading.Lock = field(default_factory=threading.Lock)
    rate_limited: threading.Event = field(default_factory=threading.Event)

    def claim(self, key: str) -> bool:
        with self.seen_lock:
            if key in self.seen:
                return False
            self.seen.add(key)
            return True


class EnrichmentOrchestrator:
    """국내사업자 후보 레코드 병렬 보강"""

    def __init__(
        self,
        client: RegistryLookupClient,
        storage: BusinessEntityStorage,
        max_workers: int = DEFAULT_MAX_WORKERS,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
        run_timeout: float = DEFAULT_RUN_TIMEOUT,
    ):
        """
        Args:
            client: 등록상세 조회 클라이언트
            storage: 중복 확인용 저장소
            max_workers: 동시 조회 수 상한
            task_timeout: 결과 하나를 기다리는 최대 시간 (초)
            run_timeout: 전체 결과를 기다리는 최대 시간 (초)
        """
        self.client = client
        self.storage = storage
        self.max_workers = max_workers
        self.task_timeout = task_timeout
        self.run_timeout = run_timeout

    @classmethod
    def from_settings(cls, client, storage, settings) -> "EnrichmentOrchestrator":
        return cls(
            client,
            storage,
            max_workers=settings.ENRICHMENT_MAX_WORKERS,
            task_timeout=settings.ENRICHMENT_TASK_TIMEOUT,
            run_timeout=settings.ENRICHMENT_RUN_TIMEOUT,
        )

    def enrich(self, candidates: Iterable[CandidateRecord]) -> EnrichmentOutcome:
        outcome = EnrichmentOutcome()
        state = _RunState()
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="enrich")
        futures: list[tuple[CandidateRecord, Future]] = []
        start_time = time.monotonic()

        try:
            for candidate in candidates:
                context = contextvars.copy_context()
                future = executor.submit(context.run, self._enrich_one, candidate, state)
                futures.append((candidate, future))

            outcome.submitted = len(futures)
            logger.info(
                f"[Enrichment] Submitted {outcome.submitted} candidates "
                f"(workers={self.max_workers}, task_timeout={self.task_timeout}s)"
            )

            deadline = start_time + self.run_timeout
            for candidate, future in futures:
                self._collect(candidate, future, deadline, outcome)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        outcome.rate_limited = state.rate_limited.is_set()
        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(
            f"[Enrichment] Completed submitted={outcome.submitted} "
            f"enriched={outcome.enriched} failed={outcome.histogram.total} "
            f"timed_out={outcome.timed_out} rate_limited={outcome.rate_limited} "
            f"elapsed_ms={elapsed_ms}"
        )
        return outcome

    def _collect(
        self,
        candidate: CandidateRecord,
        future: Future,
        deadline: float,
        outcome: EnrichmentOutcome,
    ) -> None:
        key = candidate.registration_key
        timeout = max(0.0, min(self.task_timeout, deadline - time.monotonic()))

        try:
            reason, entity = future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            outcome.timed_out += 1
            outcome.histogram.record(FailureReason.LOOKUP_ERROR, key)
            logger.warning(f"[Enrichment] Timed out waiting for brno={key}")
            return
        except StoreUnavailableError:
            raise
        except Exception as e:
            outcome.histogram.record(FailureReason.LOOKUP_ERROR, key)
            logger.error(f"[Enrichment] Task failed for brno={key}: {e}")
            return

        if entity is not None:
            outcome.entities.append(entity)
        else:
            outcome.histogram.record(reason, key)

    def _enrich_one(
        self,
        candidate: CandidateRecord,
        state: _RunState,
    ) -> tuple[Optional[FailureReason], Optional[BusinessEntityCreate]]:
        key = candidate.registration_key

        if not state.claim(key):
            logger.debug(f"[Enrichment] Already processed in this run: {key}")
            return FailureReason.ALREADY_PROCESSED, None

        if self.storage.exists_by_key(DedupKey.BUSINESS_NUMBER, key):
            logger.debug(f"[Enrichment] Already in store: {key}")
            return FailureReason.ALREADY_IN_STORE, None

        if state.rate_limited.is_set():
            return FailureReason.RATE_LIMITED, None

        result = self.client.lookup_by_registration_key(key)

        if result.status == LookupStatus.RATE_LIMITED:
            state.rate_limited.set()

        if result.status != LookupStatus.SUCCESS:
            return _STATUS_TO_REASON[result.status], None

        if not result.is_complete:
            logger.warning(
                f"[Enrichment] Missing fields brno={key} "
                f"mail_order_sales_number={result.mail_order_sales_number} "
                f"company_name={result.company_name} "
                f"corporate_registration_number={result.corporate_registration_number}"
            )
            return FailureReason.MISSING_FIELDS, None

        if result.road_address and result.administrative_code is None:
            logger.debug(f"[Enrichment] No district code for brno={key}, storing null")

        try:
            entity = BusinessEntityCreate(
                business_number=key,
                mail_order_sales_number=result.mail_order_sales_number,
                company_name=result.company_name,
                corporate_registration_number=result.corporate_registration_number,
                administrative_code=result.administrative_code,
                is_overseas=False,
            )
        except ValidationError as e:
            logger.warning(f"[Enrichment] Lookup result rejected for brno={key}: {e}")
            return FailureReason.LOOKUP_ERROR, None

        return None, entity
