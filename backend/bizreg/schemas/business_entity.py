"""
bizreg Business Entity Schemas
Pydantic models for pipeline drafts and request/response validation
"""

from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator


class BusinessEntityBase(BaseModel):
    """Base business entity schema"""

    mail_order_sales_number: Optional[str] = Field(None, max_length=100, description="통신판매번호 / 관리번호")
    company_name: str = Field(..., max_length=200, description="상호")
    business_number: Optional[str] = Field(None, max_length=20, description="사업자등록번호")
    corporate_registration_number: Optional[str] = Field(None, max_length=20, description="법인등록번호")
    administrative_code: Optional[str] = Field(None, max_length=10, description="행정구역코드")
    is_overseas: bool = Field(False, description="국외사업자 여부")

    @model_validator(mode="after")
    def _require_a_key(self):
        if not self.business_number and not self.mail_order_sales_number:
            raise ValueError("business_number or mail_order_sales_number is required")
        return self


class BusinessEntityCreate(BusinessEntityBase):
    """Entity ready to be written (no identity yet)"""


class BusinessEntityReplace(BusinessEntityBase):
    """Full replacement of a stored entity; version must match the stored one"""

    id: int
    version: int


class BusinessEntityResponse(BusinessEntityBase):
    """Stored business entity"""

    id: int
    version: int

    class Config:
        from_attributes = True


class BusinessEntityRequest(BaseModel):
    """수집 요청 (시/도, 구/군)"""

    city: str = Field(..., description="시/도 (국외사업자 포함)")
    district: Optional[str] = Field(None, description="구/군 (전체는 생략)")


class IngestionResponse(BaseModel):
    """수집 결과"""

    processed_count: int
    message: str
    report: Optional[dict[str, Any]] = None


class IngestionTaskResponse(BaseModel):
    """비동기 수집 요청 결과"""

    task_id: str
    status: str = "QUEUED"
