"""
Unit Tests for Clinical Document Ingestion
"""

import json

import pytest

from sentinel.services.ingestion import (
    ClinicalDocumentIngestor,
    DocumentIngestionError,
    clean_html,
)


@pytest.fixture
def ingestor():
    return ClinicalDocumentIngestor("Processed_Clinical_Docs")


def _archived(directory):
    return sorted((directory / "Processed_Clinical_Docs").iterdir())


class TestCleanHtml:
    def test_strips_tags_and_blank_lines(self):
        html = "<div>\n  <p>History of PTSD.</p>\n\n  <p>On sertraline.</p>\n</div>"

        assert clean_html(html) == "History of PTSD.\nOn sertraline."


class TestReadDocument:
    """Parsing and archiving."""

    def test_fhir_resource(self, ingestor, tmp_path):
        path = tmp_path / "discharge.json"
        path.write_text(json.dumps({
            "resourceType": "DocumentReference",
            "status": "current",
            "text": {"status": "generated", "div": "<div><p>Admitted for MDD.</p>\n<p>Discharged stable.</p></div>"},
        }))

        text = ingestor.read_document(path)

        assert text == "Admitted for MDD.\nDischarged stable."
        assert not path.exists()
        archived = _archived(tmp_path)
        assert len(archived) == 1
        assert archived[0].name.startswith("archived_")
        assert archived[0].suffix == ".json"

    def test_plain_text(self, ingestor, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("  Veteran reports nightmares.\n")

        assert ingestor.read_document(path) == "Veteran reports nightmares."
        assert _archived(tmp_path)[0].suffix == ".txt"

    def test_missing_document(self, ingestor, tmp_path):
        assert ingestor.read_document(tmp_path / "absent.json") is None

    def test_ingested_once(self, ingestor, tmp_path):
        """An archived document is not found again."""
        path = tmp_path / "notes.txt"
        path.write_text("Once.")

        ingestor.read_document(path)

        assert ingestor.read_document(path) is None

    def test_invalid_json(self, ingestor, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(DocumentIngestionError) as exc_info:
            ingestor.read_document(path)

        assert exc_info.value.path == path
        assert path.exists()

    def test_json_without_narrative(self, ingestor, tmp_path):
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps({"resourceType": "Bundle", "entry": []}))

        with pytest.raises(DocumentIngestionError):
            ingestor.read_document(path)
