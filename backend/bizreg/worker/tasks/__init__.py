# Celery Tasks
from bizreg.worker.tasks.ingestion import ingest_business_entities

__all__ = ["ingest_business_entities"]
