"""Exception types for pdfshrink."""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .batch import BatchResult


class PDFShrinkError(Exception):
    """Base exception for all pdfshrink errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def default_message(self) -> str:
        return "An unknown compression error occurred."


class ValidationError(PDFShrinkError):
    """Raised when the selected files cannot be processed at all.

    Raised before any file is compressed; the batch is not started.
    """

    def __init__(
        self,
        message: str = "",
        invalid_files: Optional[List[str]] = None,
        reason: str = "invalid",
    ) -> None:
        super().__init__(message)
        self.invalid_files = list(invalid_files or [])
        self.reason = reason

    @property
    def default_message(self) -> str:
        return "The selected files are not valid PDF documents."


class StrategyAttemptError(PDFShrinkError):
    """Raised when a single compression strategy cannot complete."""

    def __init__(self, message: str = "", strategy_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.strategy_id = strategy_id

    @property
    def default_message(self) -> str:
        return "Compression attempt failed."


class PageTransformError(StrategyAttemptError):
    """Raised when a page cannot be rendered, encoded or scaled."""

    def __init__(self, message: str = "", page_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.page_index = page_index

    @property
    def default_message(self) -> str:
        return "Page could not be transformed."


class AssemblyError(StrategyAttemptError):
    """Raised when an output document cannot be assembled."""

    @property
    def default_message(self) -> str:
        return "Output document could not be assembled."


class FileCompressionFailure(PDFShrinkError):
    """Raised when no strategy produced a smaller file."""

    def __init__(self, message: str = "", file_name: str = "") -> None:
        super().__init__(message)
        self.file_name = file_name

    @property
    def default_message(self) -> str:
        return "No compression method reduced the file size."


class BatchFailure(PDFShrinkError):
    """Raised when not a single file in a batch could be compressed."""

    def __init__(self, message: str = "", result: Optional["BatchResult"] = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def default_message(self) -> str:
        return "No files could be compressed. Please try different settings."


class BundlingError(PDFShrinkError):
    """Raised when the download archive cannot be created."""

    @property
    def default_message(self) -> str:
        return "Error creating ZIP file."
