"""Exception hierarchy for VAT invoice image extraction."""

from typing import Any, Optional


class InvoiceExtractionError(Exception):
    """Base exception for all invoice extraction errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ImageValidationError(InvoiceExtractionError):
    """Base class for per-file ingestion rejections."""

    def __init__(
        self,
        file_name: str,
        reason: str,
        details: Optional[dict[str, Any]] = None
    ) -> None:
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"{file_name}: {reason}", {"file_name": file_name, **(details or {})})


class UnsupportedImageTypeError(ImageValidationError):
    """Raised when a selected file is not a JPEG, PNG or WEBP image."""

    def __init__(self, file_name: str, mime_type: Optional[str]) -> None:
        super().__init__(
            file_name,
            "Loại tệp không hợp lệ. Chỉ chấp nhận JPG, PNG, WEBP.",
            details={"mime_type": mime_type}
        )
        self.mime_type = mime_type


class ImageTooLargeError(ImageValidationError):
    """Raised when an image exceeds the maximum upload size."""

    def __init__(self, file_name: str, file_size_bytes: int, max_size_mb: float) -> None:
        super().__init__(
            file_name,
            f"Kích thước tệp quá lớn (tối đa {max_size_mb:g}MB).",
            details={"file_size_bytes": file_size_bytes, "max_size_mb": max_size_mb}
        )
        self.file_size_bytes = file_size_bytes
        self.max_size_mb = max_size_mb


class ImageReadError(ImageValidationError):
    """Raised when the file cannot be read from its source."""

    def __init__(self, file_name: str, original_error: Exception) -> None:
        super().__init__(
            file_name,
            "Lỗi khi đọc tệp.",
            details={"original_error": str(original_error)}
        )
        self.original_error = original_error


class EmptyImageError(ImageValidationError):
    """Raised when reading succeeds but yields no image data."""

    def __init__(self, file_name: str) -> None:
        super().__init__(file_name, "Không thể đọc dữ liệu ảnh.")


class ConfigurationError(InvoiceExtractionError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, setting_name: str, issue: str) -> None:
        super().__init__(issue, {"setting_name": setting_name, "issue": issue})
        self.setting_name = setting_name
        self.issue = issue


class ExtractionError(InvoiceExtractionError):
    """Raised when a single extraction call fails."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        details: Optional[dict[str, Any]] = None
    ) -> None:
        self.original_error = original_error
        details = dict(details or {})
        if original_error is not None:
            details["original_error"] = str(original_error)
        super().__init__(message, details)


class InvalidAPIKeyError(ExtractionError):
    """Raised when the remote service rejects the configured API key."""

    def __init__(self, original_error: Optional[Exception] = None) -> None:
        super().__init__("API Key không hợp lệ. Vui lòng kiểm tra lại.", original_error)


class InvalidAPIResponseError(ExtractionError):
    """Raised when the model response is not parseable JSON."""

    def __init__(self, response_text: str, parsing_error: Exception) -> None:
        super().__init__(
            f"Không thể trích xuất dữ liệu: {parsing_error}",
            parsing_error,
            details={"response_preview": response_text[:200]}
        )
        self.response_text = response_text


class InvoiceValidationError(ExtractionError):
    """Raised when parsed JSON does not have the shape of an invoice record."""

    def __init__(self, field_errors: list[str], original_error: Optional[Exception] = None) -> None:
        joined = "; ".join(field_errors) if field_errors else "unknown shape"
        super().__init__(
            f"Dữ liệu hóa đơn không hợp lệ: {joined}",
            original_error,
            details={"field_errors": field_errors}
        )
        self.field_errors = field_errors


class ExtractionTimeoutError(ExtractionError):
    """Raised when an extraction call exceeds the configured timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Hết thời gian chờ trích xuất ({timeout_seconds:g} giây).",
            details={"timeout_seconds": timeout_seconds}
        )
        self.timeout_seconds = timeout_seconds


def describe_error(error: BaseException) -> str:
    """Return the user-facing message for an exception."""
    if isinstance(error, InvoiceExtractionError):
        return error.message
    message = str(error)
    return message or "Lỗi không xác định khi xử lý tệp."


__all__ = [
    "InvoiceExtractionError",
    "ImageValidationError",
    "UnsupportedImageTypeError",
    "ImageTooLargeError",
    "ImageReadError",
    "EmptyImageError",
    "ConfigurationError",
    "ExtractionError",
    "InvalidAPIKeyError",
    "InvalidAPIResponseError",
    "InvoiceValidationError",
    "ExtractionTimeoutError",
    "describe_error",
]
