# Business Logic Services

from bizreg.services.entity_store import (
    BusinessEntityStorage,
    SqlAlchemyBusinessEntityStorage,
)
from bizreg.services.ftc_source import (
    DEFAULT_CITY_CODES,
    OVERSEAS_CITY,
    FtcSourceClient,
)
from bizreg.services.registry_client import (
    EnrichmentResult,
    LookupStatus,
    RegistryLookupClient,
    normalize_registration_key,
)

__all__ = [
    # Store
    "BusinessEntityStorage",
    "SqlAlchemyBusinessEntityStorage",
    # 공정위 원본 파일
    "DEFAULT_CITY_CODES",
    "OVERSEAS_CITY",
    "FtcSourceClient",
    # 등록상세 API
    "EnrichmentResult",
    "LookupStatus",
    "RegistryLookupClient",
    "normalize_registration_key",
]
