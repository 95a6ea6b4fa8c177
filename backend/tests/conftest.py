"""
Shared fixtures for bizreg tests

- InMemoryBusinessEntityStorage: thread-safe fake store with unique keys
  and version checks
- FakeRegistryServer: httpx.MockTransport handler for the registry and
  address APIs
- make_csv / make_workbook: build source bytes in memory
"""

import io
import threading
from typing import Optional, Sequence

import httpx
import pytest
from openpyxl import Workbook

from bizreg.core.database import create_db_engine, create_session_factory, init_db
from bizreg.core.exceptions import ConflictKind, StoreConflictError
from bizreg.models.business_entity import DedupKey
from bizreg.schemas.business_entity import (
    BusinessEntityCreate,
    BusinessEntityReplace,
    BusinessEntityResponse,
)
from bizreg.services.entity_store import BusinessEntityStorage
from bizreg.services.registry_client import RegistryLookupClient

REGISTRY_URL = "https://apis.data.go.kr/1130000/MllBsDtl_2Service/getMllBsInfoDetail_2"
ADDRESS_URL = "https://business.juso.go.kr/addrlink/addrLinkApi.do"

CSV_HEADER = "번호,통신판매번호,상호,사업자등록번호,법인여부,대표자명,전화번호,전자우편,신고일자,사업장소재지"
SHEET_HEADER = ["관리번호", "법인명(상호)", "사업자번호", "법인여부", "운영상태"]


# ============================================================================
# Fake store
# ============================================================================

class InMemoryBusinessEntityStorage(BusinessEntityStorage):
    """Unique business_number / mail_order_sales_number, version checked on replace"""

    def __init__(self):
        self._rows: dict[int, BusinessEntityResponse] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.exists_calls = 0
        self.save_calls = 0
        self.save_many_calls = 0
        self.fail_save_many = False

    def _find(self, key: DedupKey, value: str) -> Optional[BusinessEntityResponse]:
        for row in self._rows.values():
            if value is not None and getattr(row, key.value) == value:
                return row
        return None

    def _check_unique(self, entity, ignore_id: Optional[int] = None) -> None:
        for key in DedupKey:
            value = getattr(entity, key.value)
            row = self._find(key, value)
            if row is not None and row.id != ignore_id:
                raise StoreConflictError(
                    f"duplicate {key.value}={value}", kind=ConflictKind.DUPLICATE_KEY, key=value,
                )

    def _insert(self, entity: BusinessEntityCreate) -> BusinessEntityResponse:
        row = BusinessEntityResponse(id=self._next_id, version=1, **entity.model_dump())
        self._rows[row.id] = row
        self._next_id += 1
        return row

    def exists_by_key(self, key, value):
        with self._lock:
            self.exists_calls += 1
            return self._find(key, value) is not None

    def get_by_key(self, key, value):
        with self._lock:
            return self._find(key, value)

    def find_by_keys_in(self, key, values):
        with self._lock:
            wanted = set(values)
            return [row for row in self._rows.values() if getattr(row, key.value) in wanted]

    def save(self, entity):
        with self._lock:
            self.save_calls += 1
            if isinstance(entity, BusinessEntityReplace):
                stored = self._rows.get(entity.id)
                if stored is None or stored.version != entity.version:
                    raise StoreConflictError(
                        "version mismatch", kind=ConflictKind.VERSION_CONFLICT, key=entity.business_number,
                    )
                self._check_unique(entity, ignore_id=entity.id)
                row = BusinessEntityResponse(
                    **entity.model_dump(exclude={"version"}), version=stored.version + 1,
                )
                self._rows[row.id] = row
                return row
            self._check_unique(entity)
            return self._insert(entity)

    def save_many(self, entities):
        with self._lock:
            self.save_many_calls += 1
            if self.fail_save_many:
                raise StoreConflictError("batch rejected", kind=ConflictKind.DUPLICATE_KEY)
            for entity in entities:
                self._check_unique(entity)
            return [self._insert(entity) for entity in entities]

    def all(self) -> list[BusinessEntityResponse]:
        with self._lock:
            return list(self._rows.values())


@pytest.fixture
def memory_store() -> InMemoryBusinessEntityStorage:
    return InMemoryBusinessEntityStorage()


@pytest.fixture
def sqlite_session_factory(tmp_path):
    """SQLite file database with the business_entity table"""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bizreg_test.db'}")
    init_db(bind=engine)
    yield create_session_factory(engine)
    engine.dispose()


# ============================================================================
# Fake registry / address APIs
# ============================================================================

def registry_item(
    brno: str,
    mail_order: Optional[str] = None,
    name: Optional[str] = "주식회사 테스트",
    crno: Optional[str] = "1101111234567",
    address: Optional[str] = "서울특별시 강남구 테헤란로 152",
) -> dict:
    return {
        "brno": brno,
        "prmmiMnno": mail_order if mail_order is not None else f"2024-서울강남-{brno[-4:]}",
        "bzmnNm": name,
        "crno": crno,
        "rnAddr": address,
    }


RATE_LIMIT_BODY = (
    '{"response": {"header": {"resultCode": "22", '
    '"resultMsg": "LIMITED_NUMBER_OF_SERVICE_REQUESTS_EXCEEDS_ERROR"}}}'
)


class FakeRegistryServer:
    """MockTransport handler: brno → item, raw body overrides, address → admCd"""

    def __init__(self):
        self.items: dict[str, dict] = {}
        self.raw_bodies: dict[str, tuple[int, str]] = {}
        self.district_codes: dict[str, str] = {}
        self.registry_calls: list[str] = []
        self.address_calls: list[str] = []
        self.fail_transport: set[str] = set()
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "business.juso.go.kr":
            keyword = request.url.params.get("keyword")
            with self._lock:
                self.address_calls.append(keyword)
            code = self.district_codes.get(keyword)
            juso = [{"admCd": code, "roadAddr": keyword}] if code else []
            return httpx.Response(200, json={
                "results": {"common": {"errorCode": "0", "errorMessage": "정상"}, "juso": juso},
            })

        brno = request.url.params.get("brno")
        with self._lock:
            self.registry_calls.append(brno)

        if brno in self.fail_transport:
            raise httpx.ConnectError("connection refused", request=request)
        if brno in self.raw_bodies:
            status, text = self.raw_bodies[brno]
            return httpx.Response(status, text=text)

        item = self.items.get(brno)
        if item is None:
            return httpx.Response(200, json={
                "response": {"header": {"resultCode": "03", "resultMsg": "NODATA_ERROR"}},
            })
        return httpx.Response(200, json={
            "resultCode": "00",
            "resultMsg": "NORMAL SERVICE",
            "totalCount": 1,
            "items": [item],
        })

    def http_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_registry() -> FakeRegistryServer:
    return FakeRegistryServer()


@pytest.fixture
def registry_client(fake_registry):
    http_client = fake_registry.http_client()
    yield RegistryLookupClient(
        http_client,
        registry_url=REGISTRY_URL,
        service_key="test%2Bkey%3D%3D",
        address_url=ADDRESS_URL,
        address_key="juso-test-key",
    )
    http_client.close()


# ============================================================================
# Source builders
# ============================================================================

def csv_row(
    brno: str,
    corporate_type: str = "법인",
    name: str = "주식회사 테스트",
    address: str = "서울특별시 강남구 테헤란로 152",
    number: int = 1,
) -> str:
    return f'{number},2024-서울강남-{number:04d},"{name}",{brno},{corporate_type},홍길동,02-000-0000,a@b.c,20240101,"{address}"'


@pytest.fixture
def make_csv():
    def _make(rows: Sequence[str], header: str = CSV_HEADER, encoding: str = "euc-kr") -> bytes:
        return "\r\n".join([header, *rows]).encode(encoding) + b"\r\n"
    return _make


@pytest.fixture
def make_workbook():
    def _make(rows: Sequence[Sequence], header: Sequence = tuple(SHEET_HEADER)) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "국외사업자"
        sheet.append(list(header))
        for row in rows:
            sheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
    return _make
