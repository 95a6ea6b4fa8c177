"""
Run Reporter
Stage counters and failure histogram for one ingestion run

Pure aggregation: nothing here touches the network or the store, and
rendering never raises.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

MAX_SAMPLES_PER_REASON = 20


class FailureReason(str, Enum):
    """레코드 단위 실패 사유"""
    ALREADY_PROCESSED = "already_processed"  # 이번 실행에서 이미 처리됨
    ALREADY_IN_STORE = "already_in_store"  # DB에 이미 존재
    NO_RESULT = "no_result"  # API 결과 없음
    MISSING_FIELDS = "missing_fields"  # 필수 정보 누락
    LOOKUP_ERROR = "lookup_error"  # API 호출 오류 (전송/형식/시간 초과)
    RATE_LIMITED = "rate_limited"  # 일일 호출 제한으로 조회 생략
    VERSION_CONFLICT = "version_conflict"  # 낙관적 잠금 충돌
    WRITE_ERROR = "write_error"  # 기타 저장 실패
    MALFORMED = "malformed"  # 원본 행 파싱 실패

    @property
    def label(self) -> str:
        return FAILURE_LABELS[self]


FAILURE_LABELS = {
    FailureReason.ALREADY_PROCESSED: "이미 처리됨",
    FailureReason.ALREADY_IN_STORE: "DB에 이미 존재",
    FailureReason.NO_RESULT: "API 결과 없음",
    FailureReason.MISSING_FIELDS: "필수 정보 누락",
    FailureReason.LOOKUP_ERROR: "API 호출 오류",
    FailureReason.RATE_LIMITED: "API 호출 제한",
    FailureReason.VERSION_CONFLICT: "버전 충돌",
    FailureReason.WRITE_ERROR: "DB 저장 실패",
    FailureReason.MALFORMED: "형식 오류",
}


class FailureHistogram:
    """
    사유별 실패 건수 + 사유별 샘플 키 (최대 20개)

    Thread-safe so stages may record from worker threads.
    """

    def __init__(self, max_samples: int = MAX_SAMPLES_PER_REASON):
        self._counts: Counter = Counter()
        self._samples: dict[FailureReason, list[str]] = {}
        self._max_samples = max_samples
        self._lock = threading.Lock()

    def record(self, reason: FailureReason, key: Optional[str] = None, count: int = 1) -> None:
        with self._lock:
            self._counts[reason] += count
            if key:
                samples = self._samples.setdefault(reason, [])
                if len(samples) < self._max_samples:
                    samples.append(key)

    def merge(self, other: "FailureHistogram") -> "FailureHistogram":
        for reason, count in other.counts().items():
            samples = other.samples(reason)
            with self._lock:
                self._counts[reason] += count
                mine = self._samples.setdefault(reason, [])
                mine.extend(samples[: max(0, self._max_samples - len(mine))])
        return self

    def count(self, reason: FailureReason) -> int:
        with self._lock:
            return self._counts[reason]

    def counts(self) -> dict[FailureReason, int]:
        with self._lock:
            return {reason: n for reason, n in self._counts.items() if n}

    def samples(self, reason: FailureReason) -> list[str]:
        with self._lock:
            return list(self._samples.get(reason, []))

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())

    def to_dict(self) -> dict:
        return {
            reason.value: {"count": count, "samples": self.samples(reason)}
            for reason, count in self.counts().items()
        }


@dataclass
class RunReport:
    """한 번의 수집 실행 요약"""
    variant: str
    parsed_total: int = 0
    filtered_out: int = 0
    malformed: int = 0
    candidates: int = 0
    enriched: int = 0
    already_existed: int = 0
    deduplicated: int = 0
    persisted: int = 0
    source_error: Optional[str] = None
    histogram: FailureHistogram = field(default_factory=FailureHistogram)

    def to_dict(self) -> dict:
        return {
            "variant": self.variant,
            "parsed_total": self.parsed_total,
            "filtered_out": self.filtered_out,
            "malformed": self.malformed,
            "candidates": self.candidates,
            "enriched": self.enriched,
            "already_existed": self.already_existed,
            "deduplicated": self.deduplicated,
            "persisted": self.persisted,
            "source_error": self.source_error,
            "failures": self.histogram.to_dict(),
        }

    def render(self) -> str:
        lines = [
            f"=== 처리 결과 요약 ({self.variant}) ===",
            f"원본 레코드 수: {self.parsed_total}",
            f"필터링 제외 수: {self.filtered_out}",
            f"형식 오류 수: {self.malformed}",
            f"후보 법인 수: {self.candidates}",
            f"보강 성공 수: {self.enriched}",
            f"이미 존재 수: {self.already_existed}",
            f"중복 제거 후 저장 대상 수: {self.deduplicated}",
            f"DB 저장 성공 수: {self.persisted}",
        ]
        if self.source_error:
            lines.append(f"원본 오류: {self.source_error}")

        for reason, count in sorted(self.histogram.counts().items(), key=lambda item: item[0].value):
            lines.append(f"[{reason.label}] {count}건")
            samples = self.histogram.samples(reason)
            for key in samples:
                lines.append(f"  - {key}")
            if count > len(samples) and samples:
                lines.append(f"  - 그 외 {count - len(samples)}개 생략")

        lines.append("=" * 24)
        return "\n".join(lines)

    def log(self, level: int = logging.INFO) -> None:
        for line in self.render().splitlines():
            logger.log(level, f"[RunReport] {line}")
