"""Per-page transforms applied by compression strategies."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from .backends import ImageCodec, PdfCodec
from .estimator import RenderParameters
from .exceptions import PageTransformError

_LOGGER = logging.getLogger("pdfshrink")


class TransformMode(str, Enum):
    """How a page is reduced."""
    RASTERIZE = "rasterize"
    EMBED = "embed"
    SCALE_IN_PLACE = "scale_in_place"


class PageKind(str, Enum):
    RASTER = "raster"
    EMBEDDED = "embedded"
    VECTOR = "vector"


@dataclass
class TransformedPage:
    """
    A page ready for assembly.

    Raster pages carry encoded image bytes and their pixel size. Embedded and
    vector pages refer back to a page of the working document: embedded pages
    are drawn scaled into a new page box, vector pages were already scaled in
    place and are copied as they are.
    """
    kind: PageKind
    index: int
    width: float
    height: float
    image: Optional[bytes] = None
    pixel_width: int = 0
    pixel_height: int = 0
    source: Any = None


@dataclass
class PageFailure:
    """A page that could not be transformed."""
    index: int
    reason: str
    width: float
    height: float


PageResult = Union[TransformedPage, PageFailure]


class PageTransformer:
    """
    Applies RenderParameters to single pages of a decoded document.

    Args:
        pdf_codec: PDF capability used to render and scale pages
        image_codec: Encoder for rasterized pages
    """

    def __init__(self, pdf_codec: PdfCodec, image_codec: ImageCodec):
        self.pdf_codec = pdf_codec
        self.image_codec = image_codec

    def transform(
        self,
        doc: Any,
        index: int,
        params: RenderParameters,
        mode: TransformMode,
    ) -> TransformedPage:
        """
        Transform one page.

        Args:
            doc: Decoded working document
            index: Zero-based page index
            params: Parameters for this attempt
            mode: Which transform to apply

        Returns:
            TransformedPage

        Raises:
            PageTransformError: If the page cannot be transformed
        """
        if mode == TransformMode.RASTERIZE:
            return self.rasterize(doc, index, params)
        if mode == TransformMode.EMBED:
            return self.embed(doc, index, params)
        return self.scale_in_place(doc, index, params)

    def transform_or_fail(
        self,
        doc: Any,
        index: int,
        params: RenderParameters,
        mode: TransformMode,
    ) -> PageResult:
        """Like transform(), but report a failing page as a PageFailure."""
        try:
            return self.transform(doc, index, params, mode)
        except PageTransformError as e:
            _LOGGER.warning("Failed to process page %d: %s", index + 1, e)
            width, height = self._scaled_size(doc, index, params.geometric_scale)
            return PageFailure(index=index, reason=str(e), width=width, height=height)

    def rasterize(self, doc: Any, index: int, params: RenderParameters) -> TransformedPage:
        """Render the page to pixels and encode it as a lossy image."""
        scale = params.geometric_scale
        try:
            width, height = self.pdf_codec.page_size(doc, index)
            pixels = self.pdf_codec.render_page(doc, index, scale)
        except Exception as e:
            raise PageTransformError(f"Rendering failed: {e}", page_index=index) from e

        try:
            image = self.image_codec.encode(pixels, params.image_quality)
        except Exception as e:
            raise PageTransformError(f"Image encoding failed: {e}", page_index=index) from e

        _LOGGER.debug(
            "Rasterized page %d: %dx%d px, %d bytes",
            index + 1, pixels.width, pixels.height, len(image),
        )
        return TransformedPage(
            kind=PageKind.RASTER,
            index=index,
            width=width * scale,
            height=height * scale,
            image=image,
            pixel_width=pixels.width,
            pixel_height=pixels.height,
        )

    def embed(self, doc: Any, index: int, params: RenderParameters) -> TransformedPage:
        """Prepare the page to be shown scaled inside a smaller page box."""
        scale = params.geometric_scale
        try:
            width, height = self.pdf_codec.page_size(doc, index)
        except Exception as e:
            raise PageTransformError(f"Page size unavailable: {e}", page_index=index) from e
        return TransformedPage(
            kind=PageKind.EMBEDDED,
            index=index,
            width=width * scale,
            height=height * scale,
            source=doc,
        )

    def scale_in_place(self, doc: Any, index: int, params: RenderParameters) -> TransformedPage:
        """Scale the page's content stream and page box in the working document."""
        try:
            width, height = self.pdf_codec.scale_page(doc, index, params.geometric_scale)
        except Exception as e:
            raise PageTransformError(f"Scaling failed: {e}", page_index=index) from e
        return TransformedPage(
            kind=PageKind.VECTOR, index=index, width=width, height=height, source=doc
        )

    def _scaled_size(self, doc: Any, index: int, scale: float):
        try:
            width, height = self.pdf_codec.page_size(doc, index)
        except Exception:
            # Letter size when even the page box is unreadable
            width, height = 612.0, 792.0
        return width * scale, height * scale
