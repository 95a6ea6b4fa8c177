"""
Ingestion Pipelines
Parser → (Orchestrator) → Coordinator → Reporter, one class per variant

- DomesticIngestionPipeline: CSV, per-record registry enrichment,
  dedup by business_number, one-at-a-time persistence
- OverseasIngestionPipeline: spreadsheet, no enrichment,
  dedup by mail_order_sales_number, batched persistence

A run raises only when the source is absent or the store is unusable;
everything else ends up in the RunReport.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from bizreg.core.exceptions import SourceUnavailableError
from bizreg.core.logging import RunContext
from bizreg.models.business_entity import DedupKey
from bizreg.schemas.business_entity import BusinessEntityCreate
from bizreg.worker.pipelines.enrichment import EnrichmentOrchestrator
from bizreg.worker.pipelines.persistence import PersistenceCoordinator, PersistenceOutcome
from bizreg.worker.pipelines.report import FailureReason, RunReport
from bizreg.worker.pipelines.source_parser import (
    DEFAULT_CORPORATE_MARKER,
    DEFAULT_ENCODING,
    ParsedSource,
    parse_domestic_csv,
    parse_overseas_workbook,
)

logger = logging.getLogger(__name__)

DOMESTIC = "domestic"
OVERSEAS = "overseas"


def _apply_parse_counters(report: RunReport, parsed: ParsedSource) -> None:
    counters = parsed.counters
    report.parsed_total = counters.total
    report.filtered_out = counters.filtered_out
    report.malformed = counters.malformed

    for error in parsed.malformed_samples:
        report.histogram.record(FailureReason.MALFORMED, error.key or f"row {error.row_number}")
    unsampled = counters.malformed - len(parsed.malformed_samples)
    if unsampled > 0:
        report.histogram.record(FailureReason.MALFORMED, count=unsampled)


def _apply_persistence(report: RunReport, outcome: PersistenceOutcome) -> None:
    report.deduplicated = outcome.deduplicated
    report.persisted = outcome.saved
    report.already_existed += outcome.already_existed
    report.histogram.merge(outcome.histogram)


class DomesticIngestionPipeline:
    """국내사업자 수집 파이프라인"""

    def __init__(
        self,
        orchestrator: EnrichmentOrchestrator,
        coordinator: PersistenceCoordinator,
        encoding: str = DEFAULT_ENCODING,
        corporate_marker: str = DEFAULT_CORPORATE_MARKER,
    ):
        self.orchestrator = orchestrator
        self.coordinator = coordinator
        self.encoding = encoding
        self.corporate_marker = corporate_marker

    def run(self, source: Optional[bytes]) -> RunReport:
        """
        Args:
            source: 다운로드한 CSV bytes (None이면 파일 없음)

        Returns:
            RunReport (persisted = 새로 저장된 건수)

        Raises:
            SourceUnavailableError: 원본 파일이 없을 때
            StoreUnavailableError: 저장소를 사용할 수 없을 때
        """
        run_id = RunContext.new_run(DOMESTIC)
        if source is None:
            logger.error("[Domestic] CSV 파일 다운로드 실패")
            raise SourceUnavailableError("Domestic CSV file unavailable", source=DOMESTIC)

        logger.info(f"[Domestic] Run {run_id} started ({len(source)} bytes)")
        report = RunReport(variant=DOMESTIC)

        parsed = parse_domestic_csv(source, encoding=self.encoding, corporate_marker=self.corporate_marker)
        if parsed.error:
            report.source_error = parsed.error.message
            report.log()
            return report

        enrichment = self.orchestrator.enrich(parsed.records)
        _apply_parse_counters(report, parsed)
        report.candidates = enrichment.submitted
        report.enriched = enrichment.enriched
        report.histogram.merge(enrichment.histogram)
        # 보강 단계에서 이미 저장된 것으로 확인된 키
        report.already_existed = enrichment.histogram.count(FailureReason.ALREADY_IN_STORE)

        if not enrichment.entities:
            logger.info("[Domestic] 보강된 엔티티가 없습니다.")
            report.log()
            return report

        persistence = self.coordinator.persist_one_by_one(enrichment.entities, key=DedupKey.BUSINESS_NUMBER)
        _apply_persistence(report, persistence)

        report.log()
        return report


class OverseasIngestionPipeline:
    """국외사업자 수집 파이프라인"""

    def __init__(self, coordinator: PersistenceCoordinator):
        self.coordinator = coordinator

    def run(self, source: Optional[bytes]) -> RunReport:
        run_id = RunContext.new_run(OVERSEAS)
        if source is None:
            logger.error("[Overseas] 스프레드시트 다운로드 실패")
            raise SourceUnavailableError("Overseas workbook unavailable", source=OVERSEAS)

        logger.info(f"[Overseas] Run {run_id} started ({len(source)} bytes)")
        report = RunReport(variant=OVERSEAS)

        parsed = parse_overseas_workbook(source)
        if parsed.error:
            report.source_error = parsed.error.message
            report.log()
            return report

        entities: list[BusinessEntityCreate] = []
        for candidate in parsed.records:
            try:
                entities.append(BusinessEntityCreate(
                    mail_order_sales_number=candidate.mail_order_key,
                    company_name=candidate.company_name,
                    business_number=candidate.registration_key,
                    corporate_registration_number=None,
                    administrative_code=None,
                    is_overseas=True,
                ))
            except ValidationError as e:
                logger.warning(f"[Overseas] Row rejected {candidate.mail_order_key}: {e.error_count()} errors")
                report.histogram.record(FailureReason.MALFORMED, candidate.mail_order_key)
                report.malformed += 1

        rejected = report.malformed
        _apply_parse_counters(report, parsed)
        report.malformed += rejected
        report.candidates = len(entities)

        if not entities:
            logger.info("[Overseas] 저장할 국외사업자가 없습니다.")
            report.log()
            return report

        persistence = self.coordinator.persist_in_batches(entities, key=DedupKey.MAIL_ORDER_SALES_NUMBER)
        _apply_persistence(report, persistence)

        report.log()
        return report
