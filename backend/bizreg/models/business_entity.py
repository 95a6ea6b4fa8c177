"""
bizreg Business Entity Model
SQLAlchemy model for business_entity table (통신판매사업자)
"""

import enum
from datetime import datetime, UTC

from sqlalchemy import Column, Integer, String, Boolean, TIMESTAMP

from bizreg.core.database import Base


class DedupKey(str, enum.Enum):
    """중복 판단 기준 컬럼"""
    BUSINESS_NUMBER = "business_number"  # 국내사업자: 사업자등록번호
    MAIL_ORDER_SALES_NUMBER = "mail_order_sales_number"  # 국외사업자: 관리번호

    @property
    def column(self):
        return getattr(BusinessEntity, self.value)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class BusinessEntity(Base):
    """
    통신판매사업자 테이블

    version is the optimistic concurrency token: every UPDATE checks and
    bumps it, and a mismatch raises StaleDataError.
    """

    __tablename__ = "business_entity"

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(Integer, nullable=False)

    # 사업자 정보
    mail_order_sales_number = Column(String(100), nullable=True, unique=True, comment="통신판매번호 / 국외사업자 관리번호")
    company_name = Column(String(200), nullable=False, comment="상호")
    business_number = Column(String(20), nullable=True, unique=True, comment="사업자등록번호")
    corporate_registration_number = Column(String(20), nullable=True, comment="법인등록번호")
    administrative_code = Column(String(10), nullable=True, comment="행정구역코드")
    is_overseas = Column(Boolean, nullable=False, default=False, comment="국외사업자 여부")

    # Timestamps
    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (
            f"<BusinessEntity(business_number='{self.business_number}', "
            f"mail_order_sales_number='{self.mail_order_sales_number}', version={self.version})>"
        )
