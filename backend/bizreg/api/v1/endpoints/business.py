"""
bizreg Business Entity API Endpoints

Endpoints:
- POST   /business                      - 수집 실행 (동기)
- POST   /business/async                - 수집 실행 (Celery 대기열)
- GET    /business/{business_number}    - 저장된 사업자 조회
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from bizreg.core.exceptions import SourceUnavailableError
from bizreg.schemas.business_entity import (
    BusinessEntityRequest,
    BusinessEntityResponse,
    IngestionResponse,
    IngestionTaskResponse,
)
from bizreg.services.business_entity_service import BusinessEntityService, result_message

logger = logging.getLogger(__name__)

router = APIRouter()


def get_business_service(request: Request) -> BusinessEntityService:
    """lifespan에서 만든 서비스 인스턴스"""
    return request.app.state.business_service


@router.post("", response_model=IngestionResponse)
def process_business_entities(
    request: BusinessEntityRequest,
    service: BusinessEntityService = Depends(get_business_service),
):
    """시/도, 구/군 단위 통신판매사업자 수집 ("국외사업자"는 국외사업자 목록)"""
    try:
        report = service.process_business_entities(request.city, request.district)
    except SourceUnavailableError as e:
        logger.error(f"[BusinessAPI] {e.message}")
        return IngestionResponse(processed_count=0, message=result_message(0))

    return IngestionResponse(
        processed_count=report.persisted,
        message=result_message(report.persisted),
        report=report.to_dict(),
    )


@router.post("/async", response_model=IngestionTaskResponse, status_code=202)
def process_business_entities_async(request: BusinessEntityRequest):
    """수집 실행을 Celery 대기열에 등록"""
    try:
        from bizreg.worker.tasks.ingestion import ingest_business_entities
        task = ingest_business_entities.delay(request.city, request.district)
    except Exception as e:
        # Redis 연결 실패 등의 경우
        logger.error(f"[BusinessAPI] Celery task dispatch failed: {e}")
        raise HTTPException(
            status_code=503,
            detail=f"Worker 연결에 실패했습니다. (오류: {str(e)[:100]})",
        )

    logger.info(f"[BusinessAPI] Celery task dispatched: task_id={task.id}, city={request.city}")
    return IngestionTaskResponse(task_id=str(task.id))


@router.get("/{business_number}", response_model=BusinessEntityResponse)
def get_business_entity(
    business_number: str,
    service: BusinessEntityService = Depends(get_business_service),
):
    """사업자등록번호로 저장된 사업자 조회"""
    entity = service.get_entity(business_number)
    if entity is None:
        raise HTTPException(status_code=404, detail="Business entity not found")
    return entity
