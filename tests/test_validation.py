import pytest

from pdfshrink import SourceDocument, ValidationError
from pdfshrink.validation import dedupe_files, is_pdf, validate_files

PDF = b"%PDF-1.7\n%fake body\n"


def _doc(name: str, data: bytes = PDF, content_type=None) -> SourceDocument:
    return SourceDocument(name=name, data=data, content_type=content_type)


def test_is_pdf_checks_header() -> None:
    assert is_pdf(_doc("a.pdf"))
    assert is_pdf(_doc("junk.pdf", b"\x00\x00garbage" + PDF))
    assert not is_pdf(_doc("notes.txt", b"just some text"))


def test_is_pdf_checks_declared_type() -> None:
    assert is_pdf(_doc("a.pdf", content_type="application/pdf"))
    assert is_pdf(_doc("a.pdf", content_type="Application/PDF; charset=binary"))
    assert not is_pdf(_doc("a.pdf", content_type="image/png"))


def test_empty_selection_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_files([])
    assert exc_info.value.reason == "empty"


def test_non_pdf_files_are_named() -> None:
    files = [_doc("good.pdf"), _doc("notes.txt", b"hello"), _doc("image.png", b"\x89PNG")]
    with pytest.raises(ValidationError) as exc_info:
        validate_files(files)

    error = exc_info.value
    assert error.reason == "type"
    assert error.invalid_files == ["notes.txt", "image.png"]
    assert error.message == "Invalid file types: notes.txt, image.png. Only PDF files are supported."


def test_oversized_files_are_named() -> None:
    files = [_doc("small.pdf"), _doc("big.pdf", PDF + b"0" * 100)]
    with pytest.raises(ValidationError) as exc_info:
        validate_files(files, max_file_size=64)

    error = exc_info.value
    assert error.reason == "size"
    assert error.invalid_files == ["big.pdf"]
    assert "Files too large: big.pdf." in error.message
    assert "Maximum size is 64 Bytes." in error.message


def test_type_errors_are_reported_before_size_errors() -> None:
    files = [_doc("big.pdf", PDF + b"0" * 100), _doc("notes.txt", b"hello")]
    with pytest.raises(ValidationError) as exc_info:
        validate_files(files, max_file_size=64)
    assert exc_info.value.reason == "type"


def test_valid_selection_passes() -> None:
    validate_files([_doc("a.pdf"), _doc("b.pdf")])


def test_dedupe_files_keeps_first_occurrence() -> None:
    a = _doc("a.pdf")
    b = _doc("b.pdf")
    same_name_other_size = _doc("a.pdf", PDF + b"extra")
    unique = dedupe_files([a, b, _doc("a.pdf"), same_name_other_size])
    assert unique == [a, b, same_name_other_size]
