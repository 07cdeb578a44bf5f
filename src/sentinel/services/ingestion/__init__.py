"""Clinical document ingestion."""

from sentinel.services.ingestion.clinical_document import (
    ClinicalDocumentIngestor,
    DocumentIngestionError,
    clean_html,
)

__all__ = [
    "ClinicalDocumentIngestor",
    "DocumentIngestionError",
    "clean_html",
]
