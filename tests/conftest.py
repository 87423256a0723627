"""Shared fixtures."""

import pytest

from paperless_gpt.config import Settings
from paperless_gpt.models import Document, EntityCatalog


@pytest.fixture
def settings():
    return Settings(
        paperless_base_url="http://paperless.local",
        paperless_api_token="token",
        llm_provider="ollama",
        llm_model="llama3",
        llm_base_url="http://127.0.0.1:11434",
    )


@pytest.fixture
def catalog():
    return EntityCatalog(
        tags={"Rechnung": 1, "Versicherung": 2, "paperless-gpt-auto": 3, "paperless-gpt-ocr": 4, "paperless-gpt": 5},
        correspondents={"Telekom": 10, "Allianz": 11},
        document_types={"Rechnung": 20},
    )


def make_doc(doc_id=1, title="scan_001", content="Rechnung der Telekom vom 03.01.2024", tags=None):
    return Document(id=doc_id, title=title, content=content, tags=list(tags or []))
