"""Image ingestion: validation, decoding and preview handles for uploads.

Every selected file is validated and decoded independently and
concurrently. Rejections never stop the other files; they are collected
and reported together as one multi-line message.
"""

import asyncio
import base64
import logging
import mimetypes
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from .exceptions import (
    EmptyImageError,
    ImageReadError,
    ImageTooLargeError,
    ImageValidationError,
    UnsupportedImageTypeError,
)
from .models import FileSelection, IngestionReport, PreviewHandle, UploadedFile

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")
MAX_IMAGE_SIZE_MB = 5.0

EMPTY_SELECTION_MESSAGE = "Vui lòng chọn ít nhất một tệp ảnh hóa đơn."

# mimetypes does not know webp on every platform
mimetypes.add_type("image/webp", ".webp")


def selection_from_path(path: Path | str) -> FileSelection:
    """Build a FileSelection for a file on disk, guessing its MIME type from the name."""
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    try:
        size = path.stat().st_size
    except OSError:
        # Unreadable files are still selectable; reading them reports the error.
        size = 0
    return FileSelection(name=path.name, mime_type=mime_type, size=size, path=path)


def selection_from_bytes(name: str, content: bytes, mime_type: Optional[str] = None) -> FileSelection:
    """Build a FileSelection for in-memory content."""
    if mime_type is None:
        mime_type, _ = mimetypes.guess_type(name)
    return FileSelection(name=name, mime_type=mime_type, size=len(content), content=content)


def validate_image(selection: FileSelection, max_size_mb: float = MAX_IMAGE_SIZE_MB) -> None:
    """Check the MIME type, then the size.

    Raises:
        UnsupportedImageTypeError: If the type is not JPEG, PNG or WEBP
        ImageTooLargeError: If the file exceeds ``max_size_mb``
    """
    if selection.mime_type not in ALLOWED_MIME_TYPES:
        raise UnsupportedImageTypeError(selection.name, selection.mime_type)
    if selection.size > max_size_mb * 1024 * 1024:
        raise ImageTooLargeError(selection.name, selection.size, max_size_mb)


def _read_bytes(selection: FileSelection) -> bytes:
    if selection.content is not None:
        return selection.content
    if selection.path is None:
        raise FileNotFoundError(f"No content or path for {selection.name}")
    return selection.path.read_bytes()


async def load_image(selection: FileSelection, max_size_mb: float = MAX_IMAGE_SIZE_MB) -> UploadedFile:
    """Validate and decode one selection into an UploadedFile.

    Raises:
        ImageValidationError: For any rejection (type, size, read failure, empty data)
    """
    validate_image(selection, max_size_mb)

    try:
        raw = await asyncio.to_thread(_read_bytes, selection)
    except OSError as e:
        raise ImageReadError(selection.name, e) from e

    if not raw:
        raise EmptyImageError(selection.name)

    image_base64 = base64.b64encode(raw).decode("ascii")
    preview = PreviewHandle(selection.mime_type, image_base64)
    logger.debug(f"[INGEST] {selection.name} - Decoded {len(raw)} bytes ({selection.mime_type})")
    return UploadedFile(file=selection, image_base64=image_base64, preview=preview)


async def ingest_images(
    selections: Iterable[FileSelection],
    max_size_mb: float = MAX_IMAGE_SIZE_MB
) -> IngestionReport:
    """Validate and decode every selection concurrently.

    Accepted files and rejection messages both keep selection order.
    """
    selections = list(selections)
    outcomes = await asyncio.gather(
        *(load_image(selection, max_size_mb) for selection in selections),
        return_exceptions=True
    )

    report = IngestionReport()
    for selection, outcome in zip(selections, outcomes):
        if isinstance(outcome, ImageValidationError):
            logger.warning(f"[INGEST] {selection.name} - Rejected: {outcome.reason}")
            report.rejections.append(outcome.message)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            report.accepted.append(outcome)

    logger.info(
        f"[INGEST] Accepted {len(report.accepted)}/{len(selections)} files"
        + (f", {len(report.rejections)} rejected" if report.rejections else "")
    )
    return report


class ImageSelection:
    """Accumulating set of uploaded images awaiting submission.

    New selections are appended to earlier ones. The selection owns the
    preview handles of its files until it is cleared or closed.
    """

    def __init__(self, max_size_mb: float = MAX_IMAGE_SIZE_MB) -> None:
        self.max_size_mb = max_size_mb
        self._uploads: list[UploadedFile] = []
        self.form_error: Optional[str] = None

    @property
    def uploads(self) -> tuple[UploadedFile, ...]:
        return tuple(self._uploads)

    def __len__(self) -> int:
        return len(self._uploads)

    async def add(self, selections: Iterable[FileSelection]) -> IngestionReport:
        """Ingest more files and append the valid ones to the selection."""
        selections = list(selections)
        if not selections:
            return IngestionReport()

        self.form_error = None
        report = await ingest_images(selections, self.max_size_mb)
        self._uploads.extend(report.accepted)
        self.form_error = report.error_message
        return report

    async def add_paths(self, paths: Iterable[Path | str]) -> IngestionReport:
        return await self.add(selection_from_path(p) for p in paths)

    def take(self) -> list[UploadedFile]:
        """Return the current uploads for submission.

        An empty selection sets ``form_error`` and returns an empty list.
        """
        if not self._uploads:
            self.form_error = EMPTY_SELECTION_MESSAGE
            return []
        return list(self._uploads)

    def clear(self) -> int:
        """Release every held preview and empty the selection."""
        released = sum(1 for upload in self._uploads if upload.preview.release())
        if released:
            logger.debug(f"[INGEST] Released {released} preview(s)")
        self._uploads = []
        self.form_error = None
        return released

    def close(self) -> None:
        self.clear()

    def __enter__(self) -> "ImageSelection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    async def __aenter__(self) -> "ImageSelection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
