# SQLAlchemy Models

from bizreg.models.business_entity import BusinessEntity, DedupKey

__all__ = [
    "BusinessEntity",
    "DedupKey",
]
