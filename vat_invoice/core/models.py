"""Canonical data models for VAT invoice extraction."""
import re
import uuid
from pathlib import Path
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Number = Union[int, float]
NumberOrText = Union[int, float, str]

_PLAIN_NUMBER = re.compile(r"-?\d+(\.\d+)?")


def parse_numeric_text(value: Any) -> Any:
    """Turn plain numeric text like "5000" or "2.5" into a number.

    Anything else, including grouped text such as "5.000" whose meaning is
    ambiguous, is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not _PLAIN_NUMBER.fullmatch(text):
        return value
    if text.lstrip("-").isdigit():
        return int(text)
    return float(text)


class LineItem(BaseModel):
    """One row of goods or services on an invoice."""
    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)

    stt: Optional[Union[int, float, str]] = Field(None, alias="stt", description="Ordinal number")
    ten_hang_hoa_dich_vu: str = Field(..., alias="tenHangHoaDichVu", description="Goods/service name")
    don_vi_tinh: Optional[str] = Field(None, alias="donViTinh", description="Unit of measure")
    so_luong: Optional[NumberOrText] = Field(None, alias="soLuong", description="Quantity")
    don_gia: Optional[NumberOrText] = Field(None, alias="donGia", description="Unit price")
    thanh_tien: Number = Field(..., alias="thanhTien", description="Line total before VAT")
    thue_suat: Optional[str] = Field(None, alias="thueSuat", description="VAT rate, e.g. '10%' or 'KCT'")

    @field_validator("stt", "so_luong", "don_gia", mode="before")
    @classmethod
    def numeric_text_to_number(cls, v):
        return parse_numeric_text(v)


class InvoiceRecord(BaseModel):
    """Normalized extraction result for a single VAT invoice image.

    Field order is the export order. Values are taken verbatim from the
    extraction source; line totals and invoice totals are not cross-checked.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow", coerce_numbers_to_str=True)

    # Seller
    ten_don_vi_ban: Optional[str] = Field(None, alias="tenDonViBan")
    ma_so_thue_nguoi_ban: Optional[str] = Field(None, alias="maSoThueNguoiBan")
    dia_chi_nguoi_ban: Optional[str] = Field(None, alias="diaChiNguoiBan")

    # General
    so_hoa_don: Optional[str] = Field(None, alias="soHoaDon")
    ky_hieu_mau_hoa_don: Optional[str] = Field(None, alias="kyHieuMauHoaDon", description="Template symbol")
    ky_hieu_hoa_don: Optional[str] = Field(None, alias="kyHieuHoaDon", description="Series symbol")
    ngay_lap: Optional[str] = Field(None, alias="ngayLap", description="Issue date (DD/MM/YYYY)")

    # Buyer
    ten_don_vi_mua: Optional[str] = Field(None, alias="tenDonViMua")
    ma_so_thue_nguoi_mua: Optional[str] = Field(None, alias="maSoThueNguoiMua")
    dia_chi_nguoi_mua: Optional[str] = Field(None, alias="diaChiNguoiMua")

    hinh_thuc_thanh_toan: Optional[str] = Field(None, alias="hinhThucThanhToan", description="Payment method")
    danh_sach_hang_hoa_dich_vu: Optional[List[LineItem]] = Field(None, alias="danhSachHangHoaDichVu")

    # Totals
    cong_tien_hang: Optional[Number] = Field(None, alias="congTienHang", description="Subtotal before VAT")
    tien_thue_gtgt: Optional[Number] = Field(None, alias="tienThueGTGT", description="VAT amount")
    tong_cong_thanh_toan: Optional[Number] = Field(None, alias="tongCongThanhToan", description="Grand total")
    so_tien_viet_bang_chu: Optional[str] = Field(None, alias="soTienVietBangChu", description="Amount in words")

    ghi_chu: Optional[str] = Field(None, alias="ghiChu", description="Free-text note")

    @property
    def line_items(self) -> List[LineItem]:
        """Line items, or an empty list when none were extracted."""
        return self.danh_sach_hang_hoa_dich_vu or []

    def to_wire_dict(self) -> dict[str, Any]:
        """Dump with wire keys, keeping only the fields the record carries."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class PreviewHandle:
    """Revocable reference used to display an uploaded image.

    The handle owns a ``data:`` URI for the image. It must be released when
    no longer displayed; releasing twice is a no-op.
    """

    def __init__(self, mime_type: str, image_base64: str) -> None:
        self._uri: Optional[str] = f"data:{mime_type};base64,{image_base64}"
        self.mime_type = mime_type

    @property
    def uri(self) -> str:
        if self._uri is None:
            raise RuntimeError("Preview handle has already been released")
        return self._uri

    @property
    def is_released(self) -> bool:
        return self._uri is None

    def release(self) -> bool:
        """Release the preview. Returns True only on the releasing call."""
        if self._uri is None:
            return False
        self._uri = None
        return True

    def __repr__(self) -> str:
        state = "released" if self.is_released else "live"
        return f"PreviewHandle({self.mime_type}, {state})"


class FileSelection(BaseModel):
    """A raw file chosen for upload, before validation."""
    name: str = Field(..., description="Original file name")
    mime_type: Optional[str] = Field(None, description="Declared or guessed MIME type")
    size: int = Field(..., ge=0, description="File size in bytes")
    path: Optional[Path] = Field(None, description="Source path on disk")
    content: Optional[bytes] = Field(None, description="In-memory file content", repr=False)


class UploadedFile(BaseModel):
    """A validated, decoded image ready for extraction."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    file: FileSelection
    image_base64: str = Field(..., repr=False)
    preview: PreviewHandle

    @property
    def mime_type(self) -> str:
        return self.file.mime_type or self.preview.mime_type


def generate_result_id() -> str:
    return uuid.uuid4().hex


class ProcessedResult(BaseModel):
    """Outcome of one file in a batch.

    Pending while neither ``data`` nor ``error`` is set. Settled copies are
    produced with ``model_copy`` so the pending entry is never mutated.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=generate_result_id)
    file: FileSelection
    preview: PreviewHandle
    data: Optional[InvoiceRecord] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.data is None and self.error is None

    @property
    def is_successful(self) -> bool:
        return self.data is not None and self.error is None

    def succeeded(self, data: InvoiceRecord) -> "ProcessedResult":
        return self.model_copy(update={"data": data, "error": None})

    def failed(self, error: str) -> "ProcessedResult":
        return self.model_copy(update={"data": None, "error": error})


class IngestionReport(BaseModel):
    """Accepted uploads and aggregated rejections for one ingestion pass."""
    accepted: List[UploadedFile] = Field(default_factory=list)
    rejections: List[str] = Field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        """All rejections as one multi-line message."""
        if not self.rejections:
            return None
        return "\n".join(self.rejections)


class BatchSummary(BaseModel):
    """Counts for a settled batch."""
    total: int = Field(..., ge=0)
    succeeded: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)

    @classmethod
    def from_results(cls, results: "tuple[ProcessedResult, ...] | list[ProcessedResult]") -> "BatchSummary":
        succeeded = sum(1 for r in results if r.is_successful)
        failed = sum(1 for r in results if r.error is not None)
        return cls(total=len(results), succeeded=succeeded, failed=failed)
