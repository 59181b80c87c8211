"""Input validation for pdfshrink."""

from typing import List, Sequence

from .config import MAX_FILE_SIZE
from .document import SourceDocument
from .exceptions import ValidationError
from .utils import format_size

PDF_CONTENT_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"
# Readers accept leading junk before the header within the first 1024 bytes
HEADER_SEARCH_WINDOW = 1024


def is_pdf(source: SourceDocument) -> bool:
    """
    Check whether a document is identified as a PDF.

    A declared content type other than application/pdf is rejected; the
    bytes must carry a ``%PDF-`` header near the start.

    Args:
        source: Input document

    Returns:
        True if the input looks like a PDF
    """
    if source.content_type and source.content_type.split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
        return False
    return PDF_MAGIC in source.data[:HEADER_SEARCH_WINDOW]


def validate_files(
    files: Sequence[SourceDocument],
    max_file_size: int = MAX_FILE_SIZE,
) -> None:
    """
    Validate a selection of files before any processing starts.

    Args:
        files: Selected documents
        max_file_size: Largest accepted input in bytes

    Raises:
        ValidationError: If nothing was selected, any file is not a PDF or
            any file exceeds the size ceiling
    """
    if not files:
        raise ValidationError("No files selected.", reason="empty")

    invalid = [f.name for f in files if not is_pdf(f)]
    if invalid:
        raise ValidationError(
            f"Invalid file types: {', '.join(invalid)}. Only PDF files are supported.",
            invalid_files=invalid,
            reason="type",
        )

    oversized = [f.name for f in files if f.size > max_file_size]
    if oversized:
        raise ValidationError(
            f"Files too large: {', '.join(oversized)}. Maximum size is {format_size(max_file_size)}.",
            invalid_files=oversized,
            reason="size",
        )


def dedupe_files(files: Sequence[SourceDocument]) -> List[SourceDocument]:
    """Drop files already selected under the same name and size, keeping order."""
    seen = set()
    unique = []
    for source in files:
        key = (source.name, source.size)
        if key in seen:
            continue
        seen.add(key)
        unique.append(source)
    return unique
