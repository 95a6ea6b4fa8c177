"""
bizreg Application Configuration
Pydantic Settings for environment variable management
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "bizreg"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database (PostgreSQL in deployment, SQLite for local runs)
    DATABASE_URL: str = Field("sqlite:///./bizreg.db", description="Database connection string")
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # 공정거래위원회 통신판매사업자 원본 파일
    DOMESTIC_SOURCE_URL: str = "https://www.ftc.go.kr/www/downloadBizCommOpenList.do"
    OVERSEAS_SOURCE_URL: str = "https://www.ftc.go.kr/www/downloadBizOutnatn.do?key=255"
    SOURCE_ENCODING: str = "euc-kr"
    CORPORATE_MARKER: str = "법인"

    # 공공데이터포털 통신판매사업자 등록상세 API
    REGISTRY_API_URL: str = "https://apis.data.go.kr/1130000/MllBsDtl_2Service/getMllBsInfoDetail_2"
    REGISTRY_SERVICE_KEY: str = Field("", description="Decoded data.go.kr service key")

    # 도로명주소 API (행정구역코드 조회)
    ADDRESS_API_URL: str = "https://business.juso.go.kr/addrlink/addrLinkApi.do"
    ADDRESS_API_KEY: str = Field("", description="juso.go.kr confirm key")

    HTTP_TIMEOUT: float = 30.0

    # Pipeline tuning
    ENRICHMENT_MAX_WORKERS: int = Field(10, ge=1)
    ENRICHMENT_TASK_TIMEOUT: float = Field(30.0, gt=0)
    ENRICHMENT_RUN_TIMEOUT: float = Field(300.0, gt=0)
    PERSIST_BATCH_SIZE: int = Field(100, ge=1)

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()
