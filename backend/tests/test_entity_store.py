"""
SqlAlchemyBusinessEntityStorage 테스트 (SQLite 파일 DB)

1. 조회: exists_by_key / get_by_key / find_by_keys_in
2. 저장: 유일 키 충돌, 전체 교체와 버전 충돌
3. save_many: 하나라도 실패하면 전체 롤백
"""

import pytest
from sqlalchemy.exc import OperationalError

from bizreg.core.exceptions import (
    ConflictKind,
    StoreConflictError,
    StoreUnavailableError,
    StoreWriteError,
)
from bizreg.models.business_entity import DedupKey
from bizreg.schemas.business_entity import BusinessEntityCreate, BusinessEntityReplace
from bizreg.services.entity_store import SqlAlchemyBusinessEntityStorage


@pytest.fixture
def store(sqlite_session_factory):
    return SqlAlchemyBusinessEntityStorage(sqlite_session_factory)


def entity(key: str, mail_order: str = None, **overrides) -> BusinessEntityCreate:
    values = dict(
        business_number=key,
        mail_order_sales_number=mail_order or f"M-{key}",
        company_name=f"회사 {key}",
        corporate_registration_number=f"C-{key}",
        administrative_code="1168010100",
    )
    values.update(overrides)
    return BusinessEntityCreate(**values)


class TestReads:
    """조회"""

    def test_exists_and_get(self, store):
        saved = store.save(entity("1111111111"))

        assert store.exists_by_key(DedupKey.BUSINESS_NUMBER, "1111111111")
        assert store.exists_by_key(DedupKey.MAIL_ORDER_SALES_NUMBER, "M-1111111111")
        assert not store.exists_by_key(DedupKey.BUSINESS_NUMBER, "2222222222")

        found = store.get_by_key(DedupKey.BUSINESS_NUMBER, "1111111111")
        assert found.id == saved.id
        assert found.version == 1
        assert found.company_name == "회사 1111111111"
        assert store.get_by_key(DedupKey.BUSINESS_NUMBER, "0") is None

    def test_find_by_keys_in(self, store):
        store.save_many([
            BusinessEntityCreate(mail_order_sales_number="OV-1", company_name="A", is_overseas=True),
            BusinessEntityCreate(mail_order_sales_number="OV-2", company_name="B", is_overseas=True),
        ])

        found = store.find_by_keys_in(DedupKey.MAIL_ORDER_SALES_NUMBER, ["OV-2", "OV-3"])

        assert [row.mail_order_sales_number for row in found] == ["OV-2"]
        assert found[0].is_overseas is True
        assert found[0].business_number is None
        assert store.find_by_keys_in(DedupKey.MAIL_ORDER_SALES_NUMBER, []) == []


class TestSave:
    """단건 저장"""

    def test_duplicate_business_number_is_conflict(self, store):
        store.save(entity("1111111111"))

        with pytest.raises(StoreConflictError) as exc_info:
            store.save(entity("1111111111", mail_order="OTHER"))

        assert exc_info.value.kind == ConflictKind.DUPLICATE_KEY

    def test_duplicate_mail_order_number_is_conflict(self, store):
        store.save(entity("1111111111", mail_order="SAME"))

        with pytest.raises(StoreConflictError) as exc_info:
            store.save(entity("2222222222", mail_order="SAME"))

        assert exc_info.value.kind == ConflictKind.DUPLICATE_KEY

    def test_full_replace_bumps_version(self, store):
        saved = store.save(entity("1111111111"))

        replaced = store.save(BusinessEntityReplace(
            id=saved.id,
            version=saved.version,
            business_number="1111111111",
            mail_order_sales_number=saved.mail_order_sales_number,
            company_name="새 상호",
            corporate_registration_number=None,
        ))

        assert replaced.version == saved.version + 1
        assert replaced.company_name == "새 상호"
        assert replaced.corporate_registration_number is None
        assert replaced.administrative_code is None

    def test_stale_version_is_conflict(self, store):
        saved = store.save(entity("1111111111"))
        replace = BusinessEntityReplace(
            id=saved.id, version=saved.version, business_number="1111111111", company_name="첫 번째",
        )
        store.save(replace)

        with pytest.raises(StoreConflictError) as exc_info:
            store.save(replace.model_copy(update={"company_name": "두 번째"}))

        assert exc_info.value.kind == ConflictKind.VERSION_CONFLICT
        assert store.get_by_key(DedupKey.BUSINESS_NUMBER, "1111111111").company_name == "첫 번째"

    def test_replace_of_missing_entity_is_write_error(self, store):
        with pytest.raises(StoreWriteError):
            store.save(BusinessEntityReplace(id=999, version=1, business_number="1", company_name="X"))


class TestSaveMany:
    """배치 저장"""

    def test_all_or_nothing(self, store):
        store.save(entity("1111111111"))

        with pytest.raises(StoreConflictError):
            store.save_many([entity("2222222222"), entity("1111111111", mail_order="NEW")])

        assert not store.exists_by_key(DedupKey.BUSINESS_NUMBER, "2222222222")

    def test_returns_stored_rows(self, store):
        saved = store.save_many([entity("1"), entity("2")])

        assert [row.business_number for row in saved] == ["1", "2"]
        assert all(row.id and row.version == 1 for row in saved)

    def test_empty_batch(self, store):
        assert store.save_many([]) == []


class TestErrorTranslation:
    """SQLAlchemy 예외 → 수집 예외"""

    def test_operational_error_is_store_unavailable(self):
        def broken_factory():
            raise OperationalError("SELECT 1", {}, Exception("could not connect"))

        store = SqlAlchemyBusinessEntityStorage(broken_factory)

        with pytest.raises(StoreUnavailableError):
            store.save(entity("1"))

        with pytest.raises(StoreUnavailableError):
            store.exists_by_key(DedupKey.BUSINESS_NUMBER, "1")
