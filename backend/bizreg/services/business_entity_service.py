"""
Business Entity Service
Wiring layer: settings → clients, store, pipelines

city == "국외사업자" routes to the overseas pipeline, every other city to
the domestic pipeline.
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import sessionmaker

from bizreg.models.business_entity import DedupKey
from bizreg.schemas.business_entity import BusinessEntityResponse
from bizreg.services.entity_store import BusinessEntityStorage, SqlAlchemyBusinessEntityStorage
from bizreg.services.ftc_source import OVERSEAS_CITY, FtcSourceClient
from bizreg.services.registry_client import RegistryLookupClient, normalize_registration_key
from bizreg.worker.pipelines.enrichment import EnrichmentOrchestrator
from bizreg.worker.pipelines.ingestion import DomesticIngestionPipeline, OverseasIngestionPipeline
from bizreg.worker.pipelines.persistence import PersistenceCoordinator
from bizreg.worker.pipelines.report import RunReport

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "데이터가 성공적으로 처리되었습니다."
EMPTY_MESSAGE = "데이터 처리 중 오류가 발생했거나 처리할 데이터가 없습니다."


def result_message(processed_count: int) -> str:
    return SUCCESS_MESSAGE if processed_count > 0 else EMPTY_MESSAGE


class BusinessEntityService:
    """통신판매사업자 수집/조회 서비스"""

    def __init__(
        self,
        source_client: FtcSourceClient,
        storage: BusinessEntityStorage,
        domestic_pipeline: DomesticIngestionPipeline,
        overseas_pipeline: OverseasIngestionPipeline,
        http_client: Optional[httpx.Client] = None,
    ):
        self.source_client = source_client
        self.storage = storage
        self.domestic_pipeline = domestic_pipeline
        self.overseas_pipeline = overseas_pipeline
        self._http_client = http_client

    def process_business_entities(self, city: str, district: Optional[str] = None) -> RunReport:
        """
        시/도, 구/군 단위 수집 실행

        Raises:
            SourceUnavailableError: 원본 파일을 받지 못했을 때
            StoreUnavailableError: 저장소를 사용할 수 없을 때
        """
        if city == OVERSEAS_CITY:
            logger.info("[BusinessService] 국외사업자 처리 시작")
            source = self.source_client.download_overseas()
            return self.overseas_pipeline.run(source)

        logger.info(f"[BusinessService] 국내사업자 처리 시작: city={city}, district={district}")
        source = self.source_client.download_domestic(city, district)
        return self.domestic_pipeline.run(source)

    def get_entity(self, business_number: str) -> Optional[BusinessEntityResponse]:
        return self.storage.get_by_key(DedupKey.BUSINESS_NUMBER, normalize_registration_key(business_number))

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()

    def __enter__(self) -> "BusinessEntityService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_business_entity_service(
    settings,
    session_factory: Optional[sessionmaker] = None,
    http_client: Optional[httpx.Client] = None,
) -> BusinessEntityService:
    """
    settings로 서비스 전체 구성

    Args:
        settings: bizreg.core.config.Settings
        session_factory: 생략하면 애플리케이션 기본 SessionLocal
        http_client: 생략하면 HTTP_TIMEOUT으로 새로 생성 (close()에서 닫힘)
    """
    if session_factory is None:
        from bizreg.core.database import SessionLocal
        session_factory = SessionLocal

    owned_client = None
    if http_client is None:
        http_client = owned_client = httpx.Client(timeout=settings.HTTP_TIMEOUT, follow_redirects=True)

    storage = SqlAlchemyBusinessEntityStorage(session_factory)
    registry_client = RegistryLookupClient.from_settings(http_client, settings)
    coordinator = PersistenceCoordinator.from_settings(storage, settings)

    domestic = DomesticIngestionPipeline(
        EnrichmentOrchestrator.from_settings(registry_client, storage, settings),
        coordinator,
        encoding=settings.SOURCE_ENCODING,
        corporate_marker=settings.CORPORATE_MARKER,
    )
    overseas = OverseasIngestionPipeline(coordinator)

    return BusinessEntityService(
        source_client=FtcSourceClient.from_settings(http_client, settings),
        storage=storage,
        domestic_pipeline=domestic,
        overseas_pipeline=overseas,
        http_client=owned_client,
    )
