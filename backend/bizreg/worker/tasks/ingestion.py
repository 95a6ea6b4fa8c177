"""
Business Entity Ingestion Task

POST /api/v1/business/async 에서 호출되는 비동기 수집 실행
"""

import logging
from typing import Optional

from bizreg.core.config import settings
from bizreg.core.exceptions import SourceUnavailableError
from bizreg.core.logging import setup_logging
from bizreg.services.business_entity_service import build_business_entity_service
from bizreg.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


# ============================================================================
# Ingestion Tasks
# ============================================================================


@celery_app.task(
    name="bizreg.worker.tasks.ingest_business_entities",
    bind=True,
    max_retries=0,
)
def ingest_business_entities(self, city: str, district: Optional[str] = None) -> int:
    """
    시/도, 구/군 단위 통신판매사업자 수집

    Args:
        city: 시/도 ("국외사업자"면 국외사업자 목록)
        district: 구/군 (생략 시 전체)

    Returns:
        int: 새로 저장된 건수
    """
    setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    logger.info(f"[IngestionTask] Starting task_id={self.request.id} city={city} district={district}")

    with build_business_entity_service(settings) as service:
        try:
            report = service.process_business_entities(city, district)
        except SourceUnavailableError as e:
            logger.error(f"[IngestionTask] Source unavailable: {e.message}")
            return 0

    logger.info(f"[IngestionTask] Completed task_id={self.request.id} persisted={report.persisted}")
    return report.persisted
