"""
Clinical Document Ingestion

Reads a persisted clinical document (FHIR-style JSON resource or plain
text), extracts its narrative text and archives the source file so each
document is ingested exactly once.

PRIVACY: Document text is never logged; only paths and sizes.
"""

import re
import shutil
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from sentinel.config.logging_config import get_logger
from sentinel.domain.models.longitudinal_state import utc_now

logger = get_logger(__name__)


HTML_TAG = re.compile(r"<[^>]+>")


class DocumentIngestionError(Exception):
    """Raised when a present document cannot be parsed or archived."""

    def __init__(self, message: str, path: Optional[Path] = None, original_error: Optional[Exception] = None):
        self.path = path
        self.original_error = original_error
        super().__init__(message)


class FhirNarrative(BaseModel):
    model_config = ConfigDict(extra="ignore")

    div: str


class FhirDocument(BaseModel):
    """Only the human-readable narrative of a FHIR resource is used."""

    model_config = ConfigDict(extra="ignore")

    text: FhirNarrative


def clean_html(html: str) -> str:
    """Strip markup tags and collapse blank runs."""
    text = HTML_TAG.sub("", html)
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


class ClinicalDocumentIngestor:
    """
    One-shot document reader with archiving.

    Usage:
        ingestor = ClinicalDocumentIngestor("Processed_Clinical_Docs")
        text = ingestor.read_document(path)
    """

    def __init__(self, processed_dir_name: str = "Processed_Clinical_Docs") -> None:
        self._processed_dir_name = processed_dir_name

    def read_document(self, path: Path) -> Optional[str]:
        """
        Extract the narrative text and archive the file.

        Args:
            path: Document path (.json FHIR resource, anything else plain text)

        Returns:
            Cleaned narrative text, or None when the file does not exist

        Raises:
            DocumentIngestionError: If the file exists but cannot be parsed
                or archived
        """
        path = Path(path)
        if not path.exists():
            return None

        logger.info("Clinical document found", path=str(path))

        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentIngestionError(f"Unreadable document: {path.name}", path=path, original_error=e) from e

        if path.suffix.lower() == ".json":
            try:
                text = clean_html(FhirDocument.model_validate_json(raw).text.div)
            except ValidationError as e:
                raise DocumentIngestionError(
                    f"Document is not a FHIR narrative resource: {path.name}",
                    path=path,
                    original_error=e,
                ) from e
        else:
            text = raw.strip()

        archived = self.archive(path)
        logger.info("Clinical document parsed", archived_to=str(archived), text_chars=len(text))
        return text

    def archive(self, path: Path) -> Path:
        """Move a processed document into the archive directory."""
        processed_dir = path.parent / self._processed_dir_name
        timestamp = utc_now().strftime("%Y%m%dT%H%M%S%fZ")
        destination = processed_dir / f"archived_{timestamp}{path.suffix}"

        try:
            processed_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(destination))
        except OSError as e:
            raise DocumentIngestionError(f"Failed to archive {path.name}", path=path, original_error=e) from e

        return destination
