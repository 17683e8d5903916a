"""Export formatting for extracted invoices (JSON and Markdown).

Both renderers are pure: the same record always yields byte-identical text.
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional

from .models import InvoiceRecord, LineItem

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "txinvoice_"
CURRENCY_SUFFIX = " VND"
EXPORT_FORMATS = {
    "json": ".json",
    "md": ".md",
}

LINE_ITEM_HEADERS = ("STT", "Tên Hàng Hóa/Dịch Vụ", "ĐVT", "Số Lượng", "Đơn Giá", "Thành Tiền", "Thuế Suất")


def format_number(value: Any) -> str:
    """Format a number with vi-VN grouping ('.' thousands, ',' decimals).

    Up to three fraction digits are kept; trailing zeros are dropped.
    Non-numeric values are returned as text.
    """
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, float) and not value.is_integer():
        text = f"{value:,.3f}".rstrip("0").rstrip(".")
    else:
        text = f"{int(value):,}"
    return text.replace(",", "\0").replace(".", ",").replace("\0", ".")


def format_vnd(amount: Any) -> str:
    """Format a monetary amount as vi-VN text with a VND suffix."""
    if amount is None:
        return ""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return str(amount)
    return format_number(amount) + CURRENCY_SUFFIX


def _plain(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _table_row(cells: Iterable[str]) -> str:
    return "|" + "|".join(f" {cell} " if cell else " " for cell in cells) + "|\n"


def _field_lines(fields: Iterable[tuple[str, Optional[str]]]) -> str:
    return "".join(f"- **{label}:** {value}\n" for label, value in fields if value)


def _line_item_cells(item: LineItem, index: int) -> list[str]:
    ordinal = item.stt if item.stt is not None else index + 1
    return [
        _plain(ordinal),
        item.ten_hang_hoa_dich_vu or "",
        item.don_vi_tinh or "",
        format_number(item.so_luong),
        format_vnd(item.don_gia),
        format_vnd(item.thanh_tien),
        item.thue_suat or "",
    ]


def to_json(record: InvoiceRecord) -> str:
    """Serialize a record with 2-space indentation in declared field order."""
    return json.dumps(record.to_wire_dict(), indent=2, ensure_ascii=False)


def to_markdown(record: InvoiceRecord) -> str:
    """Render a record as a structured Markdown document."""
    md = "# Thông Tin Hóa Đơn TxInvoice\n\n"

    md += "## Thông Tin Chung\n"
    md += _field_lines([
        ("Số hóa đơn", record.so_hoa_don),
        ("Ký hiệu mẫu HĐ", record.ky_hieu_mau_hoa_don),
        ("Ký hiệu HĐ", record.ky_hieu_hoa_don),
        ("Ngày lập", record.ngay_lap),
        ("Hình thức thanh toán", record.hinh_thuc_thanh_toan),
    ])
    md += "\n"

    parties = (
        ("Thông Tin Bên Bán", record.ten_don_vi_ban, record.ma_so_thue_nguoi_ban, record.dia_chi_nguoi_ban),
        ("Thông Tin Bên Mua", record.ten_don_vi_mua, record.ma_so_thue_nguoi_mua, record.dia_chi_nguoi_mua),
    )
    for title, name, tax_code, address in parties:
        if not (name or tax_code or address):
            continue
        md += f"## {title}\n"
        md += _field_lines([("Tên đơn vị", name), ("Mã số thuế", tax_code), ("Địa chỉ", address)])
        md += "\n"

    if record.line_items:
        md += "## Chi Tiết Hàng Hóa/Dịch Vụ\n"
        md += _table_row(LINE_ITEM_HEADERS)
        md += "|" + "---|" * len(LINE_ITEM_HEADERS) + "\n"
        for index, item in enumerate(record.line_items):
            md += _table_row(_line_item_cells(item, index))
        md += "\n"

    md += "## Tổng Cộng\n"
    md += _field_lines([
        ("Cộng tiền hàng (trước thuế)", format_vnd(record.cong_tien_hang)),
        ("Tiền thuế GTGT", format_vnd(record.tien_thue_gtgt)),
        ("Tổng cộng thanh toán", format_vnd(record.tong_cong_thanh_toan)),
        ("Số tiền viết bằng chữ", record.so_tien_viet_bang_chu),
    ])
    md += "\n"

    if record.ghi_chu:
        md += "## Ghi Chú\n"
        md += f"{record.ghi_chu}\n"

    return md


RENDERERS = {
    "json": to_json,
    "md": to_markdown,
}


def export_filename(original_name: str, fmt: str) -> str:
    """Name an export after its source image: ``txinvoice_<stem>.<ext>``."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format: {fmt}")
    stem = original_name.rsplit(".", 1)[0] if "." in original_name else ""
    return f"{EXPORT_PREFIX}{stem or original_name}{EXPORT_FORMATS[fmt]}"


def write_exports(
    record: InvoiceRecord,
    original_name: str,
    output_dir: Path | str,
    formats: Iterable[str] = ("json", "md")
) -> list[Path]:
    """Write one export file per format and return their paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for fmt in formats:
        path = output_dir / export_filename(original_name, fmt)
        path.write_text(RENDERERS[fmt](record), encoding="utf-8")
        logger.info(f"Saved {fmt} export to {path}")
        written.append(path)
    return written
