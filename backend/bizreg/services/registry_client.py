"""
Mail-Order Business Registry Client

공공데이터포털 통신판매사업자 등록상세 API와 도로명주소 API를 이용해
사업자등록번호 하나를 평평한 속성 집합(EnrichmentResult)으로 보강한다.

API Endpoints:
- 등록상세: https://apis.data.go.kr/1130000/MllBsDtl_2Service/getMllBsInfoDetail_2
- 도로명주소: https://business.juso.go.kr/addrlink/addrLinkApi.do

Lookup failures never raise. Every outcome is a LookupStatus on the result:
    SUCCESS / NOT_FOUND / RATE_LIMITED / MALFORMED_RESPONSE / TRANSPORT_ERROR

The httpx.Client is provided by the caller and shared by the worker pool.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from urllib.parse import unquote

import httpx

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================

REGISTRY_SUCCESS_CODE = "00"
REGISTRY_SUCCESS_MESSAGE = "NORMAL SERVICE"
ADDRESS_SUCCESS_CODE = "0"
NOT_AVAILABLE = "N/A"

# 일일 호출 제한 초과 시 응답 본문에 나타나는 문구
RATE_LIMIT_PHRASES = (
    "LIMITED_NUMBER_OF_SERVICE_REQUESTS_EXCEEDS_ERROR",
    "일일 제한 횟수",
    "호출 제한",
    "10,000",
)

_KEY_SEPARATORS = re.compile(r"[-\s]")


def normalize_registration_key(key: str) -> str:
    """사업자등록번호에서 하이픈/공백 제거"""
    return _KEY_SEPARATORS.sub("", key or "")


def contains_rate_limit_phrase(text: Optional[str]) -> bool:
    if not text:
        return False
    return any(phrase in text for phrase in RATE_LIMIT_PHRASES)


class LookupStatus(str, Enum):
    """조회 결과 상태"""
    SUCCESS = "SUCCESS"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


@dataclass
class EnrichmentResult:
    """등록상세 조회 결과 (후보 키 기준)"""
    key: str
    status: LookupStatus
    mail_order_sales_number: Optional[str] = None  # prmmiMnno
    company_name: Optional[str] = None  # bzmnNm / bsshNm
    corporate_registration_number: Optional[str] = None  # crno
    road_address: Optional[str] = None  # rnAddr
    administrative_code: Optional[str] = None  # juso admCd
    message: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        """저장에 필요한 필수 속성이 모두 있는지"""
        return bool(
            self.mail_order_sales_number
            and self.company_name
            and self.corporate_registration_number
        )

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "status": self.status.value,
            "mail_order_sales_number": self.mail_order_sales_number,
            "company_name": self.company_name,
            "corporate_registration_number": self.corporate_registration_number,
            "road_address": self.road_address,
            "administrative_code": self.administrative_code,
            "message": self.message,
        }


# ============================================================================
# Response helpers
# ============================================================================

def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> Optional[str]:
    """빈 값과 문자열 "null"은 없는 값으로 취급"""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


def _result_header(payload: dict) -> tuple[Optional[str], Optional[str]]:
    header = _as_dict(_as_dict(payload.get("response")).get("header"))
    code = header.get("resultCode", payload.get("resultCode"))
    message = header.get("resultMsg", payload.get("resultMsg"))
    return _text(code), _text(message)


def _first_item(payload: dict) -> Optional[dict]:
    """
    items 위치는 응답마다 다르다:
    - 루트 items (배열 또는 {"item": ...})
    - response.body.items
    """
    items = payload.get("items")
    if items is None:
        body = _as_dict(_as_dict(payload.get("response")).get("body"))
        items = body.get("items")

    if isinstance(items, list):
        item = items[0] if items else None
    elif isinstance(items, dict):
        item = items.get("item")
        if isinstance(item, list):
            item = item[0] if item else None
    else:
        item = None

    return item if isinstance(item, dict) else None


# ============================================================================
# Client
# ============================================================================

class RegistryLookupClient:
    """통신판매사업자 등록상세 + 행정구역코드 조회"""

    def __init__(
        self,
        http_client: httpx.Client,
        registry_url: str,
        service_key: str,
        address_url: str,
        address_key: str,
    ):
        self._http = http_client
        self._registry_url = registry_url
        # httpx encodes query params; keep the key in decoded form
        self._service_key = unquote(service_key)
        self._address_url = address_url
        self._address_key = address_key

    @classmethod
    def from_settings(cls, http_client: httpx.Client, settings) -> "RegistryLookupClient":
        return cls(
            http_client,
            registry_url=settings.REGISTRY_API_URL,
            service_key=settings.REGISTRY_SERVICE_KEY,
            address_url=settings.ADDRESS_API_URL,
            address_key=settings.ADDRESS_API_KEY,
        )

    def lookup_by_registration_key(self, key: str) -> EnrichmentResult:
        """
        사업자등록번호로 등록상세 조회

        Args:
            key: 사업자등록번호 (하이픈 포함 가능)

        Returns:
            EnrichmentResult (status로 성공/실패 구분)
        """
        brno = normalize_registration_key(key)
        params = {
            "serviceKey": self._service_key,
            "pageNo": "1",
            "numOfRows": "1",
            "resultType": "json",
            "brno": brno,
        }

        try:
            response = self._http.get(self._registry_url, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"[RegistryClient] HTTP error for brno={brno}: {e}")
            return EnrichmentResult(key=brno, status=LookupStatus.TRANSPORT_ERROR, message=str(e))

        body = response.text or ""

        if response.status_code == 429:
            return self._rate_limited(brno, f"HTTP 429: {body[:200]}")

        if body.lstrip().startswith("<"):
            if contains_rate_limit_phrase(body):
                return self._rate_limited(brno, body[:200])
            logger.warning(f"[RegistryClient] Markup response for brno={brno}: {body[:200]}")
            return EnrichmentResult(
                key=brno, status=LookupStatus.MALFORMED_RESPONSE, message=body[:200]
            )

        if response.is_error:
            logger.warning(f"[RegistryClient] HTTP {response.status_code} for brno={brno}")
            return EnrichmentResult(
                key=brno,
                status=LookupStatus.TRANSPORT_ERROR,
                message=f"HTTP {response.status_code}",
            )

        try:
            payload = json.loads(body)
        except ValueError as e:
            if contains_rate_limit_phrase(body):
                return self._rate_limited(brno, body[:200])
            logger.warning(f"[RegistryClient] Unparseable response for brno={brno}: {e}")
            return EnrichmentResult(key=brno, status=LookupStatus.MALFORMED_RESPONSE, message=str(e))

        if not isinstance(payload, dict):
            return EnrichmentResult(
                key=brno, status=LookupStatus.MALFORMED_RESPONSE, message="JSON root is not an object"
            )

        result_code, result_msg = _result_header(payload)

        if result_code != REGISTRY_SUCCESS_CODE and result_msg != REGISTRY_SUCCESS_MESSAGE:
            if contains_rate_limit_phrase(result_msg) or contains_rate_limit_phrase(body):
                return self._rate_limited(brno, result_msg)
            logger.info(f"[RegistryClient] brno={brno} resultCode={result_code} resultMsg={result_msg}")
            return EnrichmentResult(key=brno, status=LookupStatus.NOT_FOUND, message=result_msg)

        item = _first_item(payload)
        if item is None:
            logger.debug(f"[RegistryClient] No item for brno={brno}")
            return EnrichmentResult(key=brno, status=LookupStatus.NOT_FOUND, message="no items")

        result = EnrichmentResult(
            key=brno,
            status=LookupStatus.SUCCESS,
            mail_order_sales_number=_text(item.get("prmmiMnno")),
            company_name=_text(item.get("bzmnNm")) or _text(item.get("bsshNm")),
            corporate_registration_number=_text(item.get("crno")),
            road_address=_text(item.get("rnAddr")),
        )

        if not any((
            result.mail_order_sales_number,
            result.company_name,
            result.corporate_registration_number,
            result.road_address,
        )):
            result.status = LookupStatus.NOT_FOUND
            result.message = "empty item"
            return result

        if result.road_address:
            result.administrative_code = self.lookup_district_code(result.road_address)

        return result

    def lookup_district_code(self, address: Optional[str]) -> Optional[str]:
        """
        도로명주소 → 행정구역코드(admCd)

        "N/A" 주소나 코드는 오류가 아니라 코드 없음으로 처리한다.
        """
        if not address or address == NOT_AVAILABLE:
            return None

        params = {
            "currentPage": "1",
            "countPerPage": "10",
            "keyword": address,
            "confmKey": self._address_key,
            "resultType": "json",
        }

        try:
            response = self._http.get(self._address_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"[RegistryClient] Address lookup HTTP error: {e}")
            return None
        except ValueError as e:
            logger.warning(f"[RegistryClient] Address lookup returned non-JSON: {e}")
            return None

        results = _as_dict(_as_dict(payload).get("results"))
        common = _as_dict(results.get("common"))
        if str(common.get("errorCode")) != ADDRESS_SUCCESS_CODE:
            logger.info(
                f"[RegistryClient] Address lookup error {common.get('errorCode')}: "
                f"{common.get('errorMessage')}"
            )
            return None

        juso = results.get("juso")
        if not isinstance(juso, list) or not juso:
            return None

        code = _text(_as_dict(juso[0]).get("admCd"))
        if code == NOT_AVAILABLE:
            return None
        return code

    def _rate_limited(self, brno: str, message: Optional[str]) -> EnrichmentResult:
        logger.error("=" * 60)
        logger.error("[RegistryClient] API 일일 호출 제한 초과 (RATE LIMITED)")
        logger.error(f"[RegistryClient] brno={brno} message={message}")
        logger.error("=" * 60)
        return EnrichmentResult(key=brno, status=LookupStatus.RATE_LIMITED, message=message)
