"""
Capability backends for pdfshrink.

The compression core never imports a PDF or imaging library directly. It
talks to three small interfaces that are injected at construction time:

- ``PdfCodec``: decode, render, construct and serialize PDF documents
- ``ImageCodec``: encode a rendered pixel buffer as a lossy image
- ``ArchiveBuilder``: bundle several named files into one archive

The default implementations use PyMuPDF, Pillow and ``zipfile``.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image

from .estimator import jpeg_quality

_LOGGER = logging.getLogger("pdfshrink")

# Page boxes that must follow the MediaBox when a page is resized
_SECONDARY_BOXES = ("CropBox", "BleedBox", "TrimBox", "ArtBox")


@dataclass
class PixelBuffer:
    """Raw pixels of a rendered page."""
    width: int
    height: int
    mode: str
    samples: bytes


@dataclass
class TextLine:
    """A line of text on a generated page (top-left origin, points)."""
    x: float
    y: float
    text: str
    size: float = 10


class PdfCodec(Protocol):
    """Operations the compression core needs from a PDF library."""

    def decode(self, data: bytes) -> Any:
        """Decode PDF bytes into a document handle."""

    def page_count(self, doc: Any) -> int:
        """Number of pages in *doc*."""

    def page_size(self, doc: Any, index: int) -> Tuple[float, float]:
        """Width and height of a page in points."""

    def render_page(self, doc: Any, index: int, scale: float) -> PixelBuffer:
        """Rasterize a page at *scale* (1.0 = 72 dpi)."""

    def scale_page(self, doc: Any, index: int, scale: float) -> Tuple[float, float]:
        """Scale a page's content and page box in place; return the new size."""

    def remove_page(self, doc: Any, index: int) -> None:
        """Delete a page from *doc*."""

    def new_document(self) -> Any:
        """Create an empty document."""

    def add_image_page(self, doc: Any, image: bytes, width: float, height: float) -> None:
        """Append a page filled with an encoded image."""

    def add_embedded_page(
        self, doc: Any, source: Any, index: int, width: float, height: float
    ) -> None:
        """Append a page showing a source page scaled into the given size."""

    def copy_page(self, doc: Any, source: Any, index: int) -> None:
        """Append an unmodified copy of a source page."""

    def add_text_page(
        self,
        doc: Any,
        width: float,
        height: float,
        lines: Sequence[TextLine],
        frame: bool = False,
    ) -> None:
        """Append a page containing only the given text lines."""

    def get_metadata(self, doc: Any) -> Dict[str, str]:
        """Document information fields."""

    def set_metadata(self, doc: Any, fields: Dict[str, str]) -> None:
        """Replace the document information fields."""

    def serialize(self, doc: Any) -> bytes:
        """Serialize with the most compact settings available."""

    def close(self, doc: Any) -> None:
        """Release a document handle."""


class ImageCodec(Protocol):
    """Lossy image encoder."""

    def encode(self, pixels: PixelBuffer, quality: float) -> bytes:
        """Encode *pixels* at a 0-1 quality."""


class ArchiveBuilder(Protocol):
    """Bundles named buffers into a single archive."""

    def create_archive(self, entries: Sequence[Tuple[str, bytes]]) -> bytes:
        """Return archive bytes containing *entries* in order."""


class PyMuPDFCodec(PdfCodec):
    """PdfCodec backed by PyMuPDF."""

    def decode(self, data: bytes) -> fitz.Document:
        doc = fitz.open(stream=data, filetype="pdf")
        if doc.needs_pass:
            doc.close()
            raise ValueError("PDF is encrypted and cannot be processed")
        return doc

    def page_count(self, doc: fitz.Document) -> int:
        return len(doc)

    def page_size(self, doc: fitz.Document, index: int) -> Tuple[float, float]:
        rect = doc[index].rect
        return rect.width, rect.height

    def render_page(self, doc: fitz.Document, index: int, scale: float) -> PixelBuffer:
        page = doc[index]
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        if pix.n == 1:
            mode = "L"
        elif pix.n == 4:
            mode = "CMYK"
        else:
            mode = "RGB"
        return PixelBuffer(width=pix.width, height=pix.height, mode=mode, samples=pix.samples)

    def scale_page(self, doc: fitz.Document, index: int, scale: float) -> Tuple[float, float]:
        page = doc[index]
        x0, y0, x1, y1 = self._mediabox(doc, page)
        width = (x1 - x0) * scale
        height = (y1 - y0) * scale

        contents = page.get_contents()
        if contents:
            # Bracket the existing streams with a scaling transform
            prefix = self._new_stream(
                doc, b"q %.5f 0 0 %.5f %.5f %.5f cm\n" % (scale, scale, -x0 * scale, -y0 * scale)
            )
            suffix = self._new_stream(doc, b"\nQ\n")
            refs = " ".join(f"{xref} 0 R" for xref in [prefix, *contents, suffix])
            doc.xref_set_key(page.xref, "Contents", f"[{refs}]")

        doc.xref_set_key(page.xref, "MediaBox", f"[0 0 {width:.3f} {height:.3f}]")
        for box in _SECONDARY_BOXES:
            doc.xref_set_key(page.xref, box, "null")
        return width, height

    def remove_page(self, doc: fitz.Document, index: int) -> None:
        doc.delete_page(index)

    def new_document(self) -> fitz.Document:
        return fitz.open()

    def add_image_page(self, doc: fitz.Document, image: bytes, width: float, height: float) -> None:
        page = doc.new_page(width=width, height=height)
        page.insert_image(page.rect, stream=image)

    def add_embedded_page(
        self,
        doc: fitz.Document,
        source: fitz.Document,
        index: int,
        width: float,
        height: float,
    ) -> None:
        page = doc.new_page(width=width, height=height)
        # show_pdf_page refuses pages without content; those stay blank
        if source[index].get_contents():
            page.show_pdf_page(page.rect, source, index)

    def copy_page(self, doc: fitz.Document, source: fitz.Document, index: int) -> None:
        doc.insert_pdf(source, from_page=index, to_page=index)

    def add_text_page(
        self,
        doc: fitz.Document,
        width: float,
        height: float,
        lines: Sequence[TextLine],
        frame: bool = False,
    ) -> None:
        page = doc.new_page(width=width, height=height)
        for line in lines:
            page.insert_text((line.x, line.y), line.text, fontsize=line.size)
        if frame and width > 40 and height > 80:
            page.draw_rect(
                fitz.Rect(20, 60, width - 20, height - 20),
                color=(0.8, 0.8, 0.8),
                width=1,
            )

    def get_metadata(self, doc: fitz.Document) -> Dict[str, str]:
        return dict(doc.metadata or {})

    def set_metadata(self, doc: fitz.Document, fields: Dict[str, str]) -> None:
        doc.set_metadata(fields)

    def serialize(self, doc: fitz.Document) -> bytes:
        return doc.tobytes(garbage=4, deflate=True, use_objstms=1)

    def close(self, doc: fitz.Document) -> None:
        doc.close()

    @staticmethod
    def _new_stream(doc: fitz.Document, data: bytes) -> int:
        xref = doc.get_new_xref()
        doc.update_object(xref, "<<>>")
        doc.update_stream(xref, data)
        return xref

    @staticmethod
    def _mediabox(doc: fitz.Document, page: fitz.Page) -> Tuple[float, float, float, float]:
        kind, value = doc.xref_get_key(page.xref, "MediaBox")
        if kind == "array":
            numbers = [float(v) for v in value.strip("[]").split()]
            if len(numbers) == 4:
                return numbers[0], numbers[1], numbers[2], numbers[3]
        # Inherited from the page tree
        box = page.mediabox
        return 0.0, 0.0, box.width, box.height


class PillowImageCodec(ImageCodec):
    """ImageCodec producing JPEG data with Pillow."""

    def encode(self, pixels: PixelBuffer, quality: float) -> bytes:
        image = Image.frombytes(pixels.mode, (pixels.width, pixels.height), pixels.samples)
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=jpeg_quality(quality), optimize=True)
        return buffer.getvalue()


class ZipArchiveBuilder(ArchiveBuilder):
    """ArchiveBuilder writing deflated ZIP archives."""

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED):
        self.compression = compression

    def create_archive(self, entries: Sequence[Tuple[str, bytes]]) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=self.compression) as archive:
            for name, data in entries:
                archive.writestr(name, data)
        _LOGGER.debug("Created archive with %d entries (%d bytes)", len(entries), buffer.tell())
        return buffer.getvalue()


def default_backends(
    pdf_codec: Optional[PdfCodec] = None,
    image_codec: Optional[ImageCodec] = None,
) -> Tuple[PdfCodec, ImageCodec]:
    """Return the given codecs, filling gaps with the PyMuPDF/Pillow defaults."""
    return pdf_codec or PyMuPDFCodec(), image_codec or PillowImageCodec()
