"""Tests for image ingestion, validation and preview release."""
import base64
from pathlib import Path

import pytest

from vat_invoice.core.exceptions import (
    EmptyImageError,
    ImageReadError,
    ImageTooLargeError,
    UnsupportedImageTypeError,
)
from vat_invoice.core.images import (
    EMPTY_SELECTION_MESSAGE,
    ImageSelection,
    ingest_images,
    load_image,
    selection_from_bytes,
    selection_from_path,
    validate_image,
)
from vat_invoice.core.models import FileSelection

PNG = b"\x89PNG\r\n\x1a\n" + b"\x01" * 32
SIX_MB = 6 * 1024 * 1024


def oversized(name: str = "big.jpg") -> FileSelection:
    # Size is declared, not read; validation rejects before any read happens.
    return FileSelection(name=name, mime_type="image/jpeg", size=SIX_MB, content=b"x")


class TestValidateImage:
    """Test the type-then-size validation order."""

    @pytest.mark.parametrize("mime_type", ["image/jpeg", "image/png", "image/webp"])
    def test_accepts_supported_types(self, mime_type):
        validate_image(FileSelection(name="a", mime_type=mime_type, size=10))

    @pytest.mark.parametrize("mime_type", ["image/gif", "application/pdf", None])
    def test_rejects_other_types(self, mime_type):
        with pytest.raises(UnsupportedImageTypeError) as exc_info:
            validate_image(FileSelection(name="scan.bin", mime_type=mime_type, size=10))
        assert exc_info.value.message == "scan.bin: Loại tệp không hợp lệ. Chỉ chấp nhận JPG, PNG, WEBP."

    def test_rejects_oversized(self):
        with pytest.raises(ImageTooLargeError) as exc_info:
            validate_image(oversized())
        assert exc_info.value.message == "big.jpg: Kích thước tệp quá lớn (tối đa 5MB)."
        assert exc_info.value.file_size_bytes == SIX_MB

    def test_exactly_five_mib_is_accepted(self):
        validate_image(FileSelection(name="a.png", mime_type="image/png", size=5 * 1024 * 1024))

    def test_type_checked_before_size(self):
        selection = FileSelection(name="huge.gif", mime_type="image/gif", size=SIX_MB)
        with pytest.raises(UnsupportedImageTypeError):
            validate_image(selection)


class TestSelections:
    """Test FileSelection construction helpers."""

    def test_from_path_guesses_type_and_size(self, tmp_path):
        path = tmp_path / "invoice.webp"
        path.write_bytes(b"RIFF0000WEBP")
        selection = selection_from_path(path)
        assert selection.name == "invoice.webp"
        assert selection.mime_type == "image/webp"
        assert selection.size == 12
        assert selection.path == path

    def test_from_path_missing_file(self, tmp_path):
        selection = selection_from_path(tmp_path / "gone.png")
        assert selection.size == 0
        assert selection.mime_type == "image/png"

    def test_from_bytes_guesses_type(self):
        assert selection_from_bytes("a.JPG", b"x").mime_type == "image/jpeg"


class TestLoadImage:
    """Test decoding a single selection."""

    @pytest.mark.asyncio
    async def test_decodes_to_base64_and_preview(self):
        upload = await load_image(selection_from_bytes("a.png", PNG))
        assert base64.b64decode(upload.image_base64) == PNG
        assert upload.preview.uri == f"data:image/png;base64,{upload.image_base64}"
        assert upload.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_reads_from_disk(self, tmp_path):
        path = tmp_path / "scan.jpg"
        path.write_bytes(PNG)
        upload = await load_image(selection_from_path(path))
        assert base64.b64decode(upload.image_base64) == PNG

    @pytest.mark.asyncio
    async def test_empty_payload_rejected(self):
        with pytest.raises(EmptyImageError) as exc_info:
            await load_image(selection_from_bytes("empty.png", b""))
        assert exc_info.value.message == "empty.png: Không thể đọc dữ liệu ảnh."

    @pytest.mark.asyncio
    async def test_read_error_rejected(self, tmp_path):
        selection = FileSelection(name="gone.png", mime_type="image/png", size=10, path=tmp_path / "gone.png")
        with pytest.raises(ImageReadError) as exc_info:
            await load_image(selection)
        assert exc_info.value.message == "gone.png: Lỗi khi đọc tệp."


class TestIngestImages:
    """Test batch ingestion and aggregated rejections."""

    @pytest.mark.asyncio
    async def test_invalid_type_yields_no_upload_and_one_message(self):
        report = await ingest_images([selection_from_bytes("doc.pdf", b"%PDF", "application/pdf")])
        assert report.accepted == []
        assert len(report.rejections) == 1
        assert report.rejections[0].startswith("doc.pdf:")

    @pytest.mark.asyncio
    async def test_oversized_yields_no_upload_and_one_message(self):
        report = await ingest_images([oversized()])
        assert report.accepted == []
        assert report.rejections == ["big.jpg: Kích thước tệp quá lớn (tối đa 5MB)."]

    @pytest.mark.asyncio
    async def test_mixed_batch_keeps_order(self):
        report = await ingest_images([
            selection_from_bytes("one.png", PNG),
            selection_from_bytes("bad.gif", b"GIF89a"),
            selection_from_bytes("two.jpg", PNG),
            oversized("huge.jpg"),
        ])
        assert [u.file.name for u in report.accepted] == ["one.png", "two.jpg"]
        assert report.error_message == (
            "bad.gif: Loại tệp không hợp lệ. Chỉ chấp nhận JPG, PNG, WEBP.\n"
            "huge.jpg: Kích thước tệp quá lớn (tối đa 5MB)."
        )

    @pytest.mark.asyncio
    async def test_custom_size_limit(self):
        report = await ingest_images([selection_from_bytes("a.png", PNG)], max_size_mb=0.00001)
        assert report.accepted == []
        assert "tối đa 1e-05MB" in report.rejections[0]


class TestImageSelection:
    """Test accumulation, clearing and teardown."""

    @pytest.mark.asyncio
    async def test_new_selections_are_appended(self):
        selection = ImageSelection()
        await selection.add([selection_from_bytes("a.png", PNG)])
        await selection.add([selection_from_bytes("b.png", PNG)])
        assert [u.file.name for u in selection.uploads] == ["a.png", "b.png"]

    @pytest.mark.asyncio
    async def test_form_error_reflects_latest_batch(self):
        selection = ImageSelection()
        await selection.add([selection_from_bytes("bad.gif", b"GIF")])
        assert selection.form_error is not None
        await selection.add([selection_from_bytes("ok.png", PNG)])
        assert selection.form_error is None
        assert len(selection) == 1

    @pytest.mark.asyncio
    async def test_empty_add_keeps_existing_selection(self):
        selection = ImageSelection()
        await selection.add([selection_from_bytes("a.png", PNG)])
        await selection.add([])
        assert len(selection) == 1

    @pytest.mark.asyncio
    async def test_clear_releases_every_preview(self):
        selection = ImageSelection()
        await selection.add([selection_from_bytes("a.png", PNG), selection_from_bytes("b.png", PNG)])
        previews = [u.preview for u in selection.uploads]

        assert selection.clear() == 2
        assert all(p.is_released for p in previews)
        assert len(selection) == 0
        assert selection.clear() == 0

    @pytest.mark.asyncio
    async def test_context_exit_releases_previews(self):
        async with ImageSelection() as selection:
            await selection.add([selection_from_bytes("a.png", PNG)])
            preview = selection.uploads[0].preview
            assert not preview.is_released
        assert preview.is_released

    def test_take_on_empty_selection_sets_form_error(self):
        selection = ImageSelection()
        assert selection.take() == []
        assert selection.form_error == EMPTY_SELECTION_MESSAGE

    @pytest.mark.asyncio
    async def test_add_paths(self, tmp_path):
        paths = []
        for name in ("a.png", "b.txt"):
            path = Path(tmp_path / name)
            path.write_bytes(PNG)
            paths.append(path)
        selection = ImageSelection()
        report = await selection.add_paths(paths)
        assert len(report.accepted) == 1
        assert report.rejections[0].startswith("b.txt:")
