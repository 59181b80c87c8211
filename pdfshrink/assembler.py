"""Builds output PDFs from transformed pages."""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .backends import PdfCodec, TextLine
from .exceptions import AssemblyError
from .transformer import PageFailure, PageKind, PageResult, TransformedPage

_LOGGER = logging.getLogger("pdfshrink")

PRODUCER = "pdfshrink"
DEFAULT_TITLE = "Compressed PDF"

# Information fields removed by MetadataPolicy.STRIP_ALL
STRIPPED_FIELDS = ("title", "author", "subject", "keywords", "producer", "creator")


class MetadataPolicy(str, Enum):
    """What happens to document information fields."""
    PRESERVE = "preserve"
    STRIP_ALL = "strip_all"


class DocumentAssembler:
    """
    Assembles transformed pages into a serialized PDF.

    Output page order always matches input order. A page that cannot be
    assembled is either replaced by a labelled placeholder page of the same
    size or fails the whole call, depending on ``tolerate_errors``.
    """

    def __init__(self, pdf_codec: PdfCodec):
        self.pdf_codec = pdf_codec

    def assemble(
        self,
        pages: Sequence[PageResult],
        metadata_policy: MetadataPolicy = MetadataPolicy.PRESERVE,
        tolerate_errors: bool = True,
        metadata: Optional[Dict[str, str]] = None,
        framed_placeholders: bool = False,
    ) -> bytes:
        """
        Build and serialize a new document.

        Args:
            pages: Transformed pages or PageFailure markers, in output order
            metadata_policy: Keep or strip information fields
            tolerate_errors: Substitute placeholder pages instead of failing
            metadata: Source fields kept under MetadataPolicy.PRESERVE
            framed_placeholders: Draw a light frame on placeholder pages

        Returns:
            PDF bytes

        Raises:
            AssemblyError: If a page fails and errors are not tolerated, or
                the document cannot be serialized
        """
        if not pages:
            raise AssemblyError("No pages to assemble")

        doc = self.pdf_codec.new_document()
        try:
            for page in pages:
                if isinstance(page, PageFailure):
                    self._substitute(doc, page.index, page.width, page.height,
                                     page.reason, tolerate_errors, framed_placeholders)
                    continue

                added_before = self.pdf_codec.page_count(doc)
                try:
                    self._add(doc, page)
                except Exception as e:
                    # Drop a half-added page so the placeholder takes its slot
                    if self.pdf_codec.page_count(doc) > added_before:
                        self.pdf_codec.remove_page(doc, added_before)
                    self._substitute(doc, page.index, page.width, page.height,
                                     str(e), tolerate_errors, framed_placeholders)

            self.apply_metadata(doc, metadata_policy, metadata)
            return self.pdf_codec.serialize(doc)
        except AssemblyError:
            raise
        except Exception as e:
            raise AssemblyError(f"Assembly failed: {e}") from e
        finally:
            self.pdf_codec.close(doc)

    def build_placeholder_document(
        self,
        pages: Sequence[Sequence[TextLine]],
        page_size: Tuple[float, float],
        metadata_policy: MetadataPolicy = MetadataPolicy.STRIP_ALL,
    ) -> bytes:
        """
        Build a document made only of generated text pages.

        Args:
            pages: Text lines for each page
            page_size: Width and height of every page in points
            metadata_policy: Keep or strip information fields

        Returns:
            PDF bytes
        """
        if not pages:
            raise AssemblyError("No pages to assemble")

        width, height = page_size
        doc = self.pdf_codec.new_document()
        try:
            for lines in pages:
                self.pdf_codec.add_text_page(doc, width, height, lines)
            self.apply_metadata(doc, metadata_policy, None)
            return self.pdf_codec.serialize(doc)
        except Exception as e:
            raise AssemblyError(f"Placeholder document failed: {e}") from e
        finally:
            self.pdf_codec.close(doc)

    def apply_metadata(
        self,
        doc: Any,
        policy: MetadataPolicy,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """Write information fields to *doc* according to *policy*."""
        if policy == MetadataPolicy.STRIP_ALL:
            self.pdf_codec.set_metadata(doc, {})
            return

        fields = {k: v for k, v in (metadata or {}).items() if k in STRIPPED_FIELDS and v}
        fields.setdefault("title", DEFAULT_TITLE)
        fields["producer"] = PRODUCER
        self.pdf_codec.set_metadata(doc, fields)

    def _add(self, doc: Any, page: TransformedPage) -> None:
        if page.kind == PageKind.RASTER:
            self.pdf_codec.add_image_page(doc, page.image, page.width, page.height)
        elif page.kind == PageKind.EMBEDDED:
            self.pdf_codec.add_embedded_page(doc, page.source, page.index, page.width, page.height)
        else:
            self.pdf_codec.copy_page(doc, page.source, page.index)

    def _substitute(
        self,
        doc: Any,
        index: int,
        width: float,
        height: float,
        reason: str,
        tolerate_errors: bool,
        framed: bool,
    ) -> None:
        if not tolerate_errors:
            raise AssemblyError(f"Page {index + 1} could not be processed: {reason}")

        _LOGGER.warning("Substituting placeholder for page %d: %s", index + 1, reason)
        size = max(6.0, min(12.0, height / 30))
        lines = [
            TextLine(10, min(30, height - 4), f"Compressed Page {index + 1}", size),
            TextLine(10, min(30 + size * 1.5, height - 2), "Page could not be processed", size * 0.8),
        ]
        self.pdf_codec.add_text_page(doc, width, height, lines, frame=framed)
