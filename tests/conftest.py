"""Shared fixtures for VAT invoice extraction tests."""
import base64
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from vat_invoice.config import Settings
from vat_invoice.core.images import selection_from_bytes
from vat_invoice.core.models import InvoiceRecord, PreviewHandle, UploadedFile

FIXTURES_DIR = Path(__file__).parent / "fixtures"
with open(FIXTURES_DIR / "mock_responses.json", encoding="utf-8") as f:
    MOCK_RESPONSES = json.load(f)

# PNG signature followed by filler; the content is never decoded.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class MockGeminiResponse:
    """Mock response from Gemini API."""

    def __init__(self, text: str):
        self.text = text


@pytest.fixture
def full_invoice_data():
    return json.loads(json.dumps(MOCK_RESPONSES["extraction"]["full_invoice"]))


@pytest.fixture
def minimal_invoice_data():
    return json.loads(json.dumps(MOCK_RESPONSES["extraction"]["minimal_invoice"]))


@pytest.fixture
def minimal_record(minimal_invoice_data):
    return InvoiceRecord.model_validate(minimal_invoice_data)


@pytest.fixture
def settings(tmp_path):
    """Settings with a configured key, isolated from the developer's .env."""
    return Settings(
        _env_file=None,
        gemini_api_key="AIzaSy-test-key-for-unit-tests-000000",
        responses_directory=tmp_path / "responses",
        output_directory=tmp_path / "output",
        logs_directory=tmp_path / "logs",
    )


@pytest.fixture
def mock_genai_client():
    """Mock Gemini AI client exposing ``client.aio.models.generate_content``."""
    client = MagicMock()
    client.aio = MagicMock()
    client.aio.models = MagicMock()
    client.aio.models.generate_content = AsyncMock()
    return client


def make_upload(name: str, content: bytes = PNG_BYTES, mime_type: str = "image/png") -> UploadedFile:
    """Build an UploadedFile without going through ingestion."""
    selection = selection_from_bytes(name, content, mime_type)
    image_base64 = base64.b64encode(content).decode("ascii")
    return UploadedFile(
        file=selection,
        image_base64=image_base64,
        preview=PreviewHandle(mime_type, image_base64),
    )


@pytest.fixture
def upload_factory():
    return make_upload


@pytest.fixture
def gemini_response():
    return MockGeminiResponse
