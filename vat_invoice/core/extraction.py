"""Extraction client: one Gemini call per invoice image.

The response text is trimmed, a single surrounding code fence is stripped,
and the JSON is validated into an InvoiceRecord. Each call is attempted
exactly once.
"""

import base64
import json
import logging
import re
import time
import uuid
from pathlib import Path
from typing import Any, Optional, Protocol

from google import genai
from google.genai import types
from pydantic import ValidationError

from ..config import Settings
from ..prompts import RESPONSE_MIME_TYPE, create_invoice_extraction_prompt
from .exceptions import (
    ConfigurationError,
    ExtractionError,
    InvalidAPIKeyError,
    InvalidAPIResponseError,
    InvoiceValidationError,
)
from .models import InvoiceRecord

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = (
    "API Key chưa được cấu hình. Vui lòng kiểm tra biến môi trường GEMINI_API_KEY."
)
INVALID_API_KEY_MARKER = "API key not valid"

_FENCE_PATTERN = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class Extractor(Protocol):
    """Anything that turns a base64 image into an InvoiceRecord."""

    async def __call__(self, image_base64: str, mime_type: str) -> InvoiceRecord:
        ...


def strip_code_fence(text: str) -> str:
    """Trim ``text`` and remove one level of ``` fencing, if present."""
    stripped = text.strip()
    match = _FENCE_PATTERN.match(stripped)
    if match and match.group(2):
        return match.group(2).strip()
    return stripped


def _format_validation_errors(error: ValidationError) -> list[str]:
    messages = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "<root>"
        messages.append(f"{location}: {err['msg']}")
    return messages


def parse_invoice_response(text: str) -> InvoiceRecord:
    """Parse raw model output into an InvoiceRecord.

    Raises:
        InvalidAPIResponseError: If the unwrapped text is not valid JSON
        InvoiceValidationError: If the JSON does not have an invoice shape
    """
    json_str = strip_code_fence(text)
    try:
        data: Any = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise InvalidAPIResponseError(text, e) from e

    if not isinstance(data, dict):
        raise InvoiceValidationError([f"<root>: expected a JSON object, got {type(data).__name__}"])

    try:
        return InvoiceRecord.model_validate(data)
    except ValidationError as e:
        raise InvoiceValidationError(_format_validation_errors(e), e) from e


class GeminiInvoiceExtractor:
    """Extractor backed by the Gemini multimodal API."""

    def __init__(self, settings: Settings, client: Optional["genai.Client"] = None) -> None:
        self.settings = settings
        self._client = client
        self.prompt = create_invoice_extraction_prompt()

    @property
    def client(self) -> "genai.Client":
        if self._client is None:
            self._client = genai.Client(**self.settings.api_client_kwargs)
        return self._client

    def _build_contents(self, image_base64: str, mime_type: str) -> list:
        return [
            types.Part.from_bytes(
                data=base64.b64decode(image_base64),
                mime_type=mime_type,
            ),
            self.prompt,
        ]

    def _save_response(self, response_text: str) -> None:
        folder = Path(self.settings.responses_directory)
        folder.mkdir(parents=True, exist_ok=True)
        filename = f"response_{int(time.time())}_{uuid.uuid4().hex[:8]}.txt"
        (folder / filename).write_text(response_text, encoding="utf-8")

    async def extract(self, image_base64: str, mime_type: str) -> InvoiceRecord:
        """Extract an InvoiceRecord from one base64-encoded invoice image.

        Raises:
            ConfigurationError: If no API key is configured (before any network call)
            InvalidAPIKeyError: If the service rejects the API key
            ExtractionError: For any other remote or parsing failure
        """
        if not self.settings.has_api_key:
            logger.error("[EXTRACT] GEMINI_API_KEY is not set")
            raise ConfigurationError("GEMINI_API_KEY", MISSING_API_KEY_MESSAGE)

        config = types.GenerateContentConfig(response_mime_type=RESPONSE_MIME_TYPE)

        try:
            contents = self._build_contents(image_base64, mime_type)
            logger.info(f"[EXTRACT] Requesting {self.settings.extraction_model} ({mime_type})")
            response = await self.client.aio.models.generate_content(
                model=self.settings.extraction_model,
                contents=contents,
                config=config
            )
            response_text = response.text or ""
            logger.debug(f"[EXTRACT] Raw response: {response_text[:500]}")
            if self.settings.debug_responses:
                self._save_response(response_text)

            record = parse_invoice_response(response_text)
        except ExtractionError as e:
            logger.error(f"[EXTRACT] Invalid response: {e.message[:150]}")
            raise
        except Exception as e:
            logger.error(f"[EXTRACT] Gemini call failed: {str(e)[:150]}")
            if INVALID_API_KEY_MARKER in str(e):
                raise InvalidAPIKeyError(e) from e
            raise ExtractionError(f"Không thể trích xuất dữ liệu: {e}", e) from e

        logger.info(f"[EXTRACT] Success ({len(record.line_items)} line items)")
        return record

    async def __call__(self, image_base64: str, mime_type: str) -> InvoiceRecord:
        return await self.extract(image_base64, mime_type)
