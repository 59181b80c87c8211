"""
Compression strategies for pdfshrink.

Each strategy is an independent end-to-end attempt at shrinking one PDF.
Strategies are listed in ``STRATEGY_TABLE`` in the order the orchestrator
tries them; ``MINIMAL_FALLBACK`` is kept apart because it is only used once
every content-preserving strategy has failed to meet a target size.

A handler returns a CompressionAttemptResult with ``succeeded=False`` when
its output is not smaller than the input, and raises StrategyAttemptError
when it cannot produce an output at all.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Sequence

from .assembler import DocumentAssembler, MetadataPolicy
from .backends import ImageCodec, PdfCodec, TextLine
from .config import CompressorConfig
from .document import SourceDocument
from .estimator import (
    CompressionIntent,
    RenderParameters,
    StrategyFamily,
    derive_parameters,
    pages_to_keep,
)
from .exceptions import StrategyAttemptError
from .transformer import PageFailure, PageResult, PageTransformer, TransformMode
from .utils import format_size

_LOGGER = logging.getLogger("pdfshrink")


class StrategyId(str, Enum):
    """Strategies in cascade order."""
    RENDER_RASTERIZE = "render_rasterize"
    VECTOR_EMBED = "vector_embed"
    CONTENT_SCALE = "content_scale"
    PAGE_REMOVAL = "page_removal"
    EXTREME_PAGE_REMOVAL = "extreme_page_removal"
    MINIMAL_PLACEHOLDER = "minimal_placeholder"


@dataclass
class CompressionAttemptResult:
    """Outcome of one strategy attempt."""
    strategy_id: StrategyId
    output_bytes: Optional[bytes]
    output_size: int
    succeeded: bool
    page_count: int = 0
    parameters: Optional[RenderParameters] = None
    error: Optional[str] = None


class StrategyContext:
    """
    Capabilities shared by all strategy handlers for one orchestrator.

    Args:
        pdf_codec: PDF capability
        image_codec: Lossy image encoder
        config: Runtime settings
    """

    def __init__(self, pdf_codec: PdfCodec, image_codec: ImageCodec, config: CompressorConfig):
        self.pdf_codec = pdf_codec
        self.image_codec = image_codec
        self.config = config
        self.transformer = PageTransformer(pdf_codec, image_codec)
        self.assembler = DocumentAssembler(pdf_codec)


StrategyHandler = Callable[[SourceDocument, CompressionIntent, StrategyContext], CompressionAttemptResult]


@dataclass(frozen=True)
class CompressionStrategy:
    """A named strategy and the handler that runs it."""
    strategy_id: StrategyId
    family: StrategyFamily
    handler: StrategyHandler
    description: str
    requires_target: bool = False

    def applies_to(self, intent: CompressionIntent) -> bool:
        """Page-removing strategies only run for target sizes, never for levels."""
        return intent.has_target or not self.requires_target

    def run(
        self,
        source: SourceDocument,
        intent: CompressionIntent,
        context: StrategyContext,
    ) -> CompressionAttemptResult:
        return self.handler(source, intent, context)


@contextmanager
def _decoded(source: SourceDocument, context: StrategyContext, strategy_id: StrategyId) -> Iterator[Any]:
    """Decode a fresh working copy of the source for one attempt."""
    try:
        doc = context.pdf_codec.decode(source.data)
    except Exception as e:
        raise StrategyAttemptError(f"Failed to open PDF: {e}", strategy_id=strategy_id.value) from e
    try:
        yield doc
    finally:
        context.pdf_codec.close(doc)


def _make_result(
    strategy_id: StrategyId,
    source: SourceDocument,
    output: bytes,
    params: Optional[RenderParameters],
    page_count: int,
) -> CompressionAttemptResult:
    size = len(output)
    succeeded = size < source.size
    reduction = (1 - size / source.size) * 100 if source.size else 0.0
    _LOGGER.debug(
        "%s result for %s: %s -> %s (%.1f%% reduction)",
        strategy_id.value, source.name, format_size(source.size), format_size(size), reduction,
    )
    return CompressionAttemptResult(
        strategy_id=strategy_id,
        output_bytes=output if succeeded else None,
        output_size=size,
        succeeded=succeeded,
        page_count=page_count,
        parameters=params,
    )


def _check_pages(
    pages: Sequence[PageResult],
    context: StrategyContext,
    strategy_id: StrategyId,
) -> None:
    failures = [page for page in pages if isinstance(page, PageFailure)]
    if not failures:
        return
    if len(failures) == len(pages):
        raise StrategyAttemptError(
            f"No page could be processed: {failures[0].reason}",
            strategy_id=strategy_id.value,
        )
    if not context.config.allow_placeholder_fallback:
        raise StrategyAttemptError(
            f"Page {failures[0].index + 1} could not be processed: {failures[0].reason}",
            strategy_id=strategy_id.value,
        )


def _transform_all(
    source: SourceDocument,
    intent: CompressionIntent,
    context: StrategyContext,
    strategy_id: StrategyId,
    family: StrategyFamily,
    mode: TransformMode,
    metadata_policy: MetadataPolicy,
    framed_placeholders: bool = False,
) -> CompressionAttemptResult:
    params = derive_parameters(intent, source.size, family)
    _LOGGER.debug(
        "%s settings: quality=%.2f, scale=%.2f",
        strategy_id.value, params.image_quality, params.geometric_scale,
    )

    with _decoded(source, context, strategy_id) as doc:
        metadata = context.pdf_codec.get_metadata(doc)
        count = context.pdf_codec.page_count(doc)
        pages = [
            context.transformer.transform_or_fail(doc, index, params, mode)
            for index in range(count)
        ]
        _check_pages(pages, context, strategy_id)
        output = context.assembler.assemble(
            pages,
            metadata_policy=metadata_policy,
            tolerate_errors=context.config.allow_placeholder_fallback,
            metadata=metadata,
            framed_placeholders=framed_placeholders,
        )

    return _make_result(strategy_id, source, output, params, count)


def render_rasterize(
    source: SourceDocument, intent: CompressionIntent, context: StrategyContext
) -> CompressionAttemptResult:
    """Render every page to a JPEG at the derived quality and scale."""
    return _transform_all(
        source, intent, context,
        StrategyId.RENDER_RASTERIZE,
        StrategyFamily.RENDER,
        TransformMode.RASTERIZE,
        MetadataPolicy.PRESERVE,
    )


def vector_embed(
    source: SourceDocument, intent: CompressionIntent, context: StrategyContext
) -> CompressionAttemptResult:
    """Show every page scaled down inside a smaller page, without rendering."""
    return _transform_all(
        source, intent, context,
        StrategyId.VECTOR_EMBED,
        StrategyFamily.VECTOR_EMBED,
        TransformMode.EMBED,
        MetadataPolicy.PRESERVE,
        framed_placeholders=True,
    )


def content_scale(
    source: SourceDocument, intent: CompressionIntent, context: StrategyContext
) -> CompressionAttemptResult:
    """Scale content streams in place and strip metadata."""
    return _transform_all(
        source, intent, context,
        StrategyId.CONTENT_SCALE,
        StrategyFamily.CONTENT_SCALE,
        TransformMode.SCALE_IN_PLACE,
        MetadataPolicy.STRIP_ALL,
    )


def _remove_and_scale(
    source: SourceDocument,
    intent: CompressionIntent,
    context: StrategyContext,
    strategy_id: StrategyId,
    family: StrategyFamily,
) -> CompressionAttemptResult:
    if not intent.has_target:
        raise StrategyAttemptError("Page removal needs a target size", strategy_id=strategy_id.value)

    params = derive_parameters(intent, source.size, family)
    codec = context.pdf_codec

    with _decoded(source, context, strategy_id) as doc:
        original_count = codec.page_count(doc)
        keep = pages_to_keep(original_count, params.page_retention_fraction)
        _LOGGER.debug(
            "%s: keeping %d of %d pages, scale %.3f",
            strategy_id.value, keep, original_count, params.geometric_scale,
        )

        # Trailing pages go first so earlier indexes stay valid
        try:
            for index in reversed(range(keep, original_count)):
                codec.remove_page(doc, index)
        except Exception as e:
            raise StrategyAttemptError(f"Page removal failed: {e}", strategy_id=strategy_id.value) from e

        pages = [
            context.transformer.transform_or_fail(doc, index, params, TransformMode.SCALE_IN_PLACE)
            for index in range(keep)
        ]
        _check_pages(pages, context, strategy_id)
        output = context.assembler.assemble(
            pages,
            metadata_policy=MetadataPolicy.STRIP_ALL,
            tolerate_errors=context.config.allow_placeholder_fallback,
        )

    return _make_result(strategy_id, source, output, params, keep)


def page_removal(
    source: SourceDocument, intent: CompressionIntent, context: StrategyContext
) -> CompressionAttemptResult:
    """Drop trailing pages by the retention ladder and scale survivors by sqrt(ratio)."""
    return _remove_and_scale(
        source, intent, context, StrategyId.PAGE_REMOVAL, StrategyFamily.PAGE_REMOVAL
    )


def extreme_page_removal(
    source: SourceDocument, intent: CompressionIntent, context: StrategyContext
) -> CompressionAttemptResult:
    """Steeper retention ladder and ratio ** 0.8 scaling."""
    return _remove_and_scale(
        source, intent, context, StrategyId.EXTREME_PAGE_REMOVAL, StrategyFamily.EXTREME
    )


def placeholder_lines(page_number: int, source_name: str, target_bytes: int) -> List[TextLine]:
    """Text drawn on one page of a minimal reconstruction."""
    return [
        TextLine(20, 50, f"Compressed Content - Page {page_number}", 12),
        TextLine(20, 80, f"Original: {source_name}", 10),
        TextLine(20, 100, f"Compressed to fit {target_bytes / 1024:.0f}KB", 10),
    ]


def minimal_placeholder(
    source: SourceDocument, intent: CompressionIntent, context: StrategyContext
) -> CompressionAttemptResult:
    """
    Synthesize a document of placeholder pages sized to the target.

    None of the original content survives. The page count starts from a
    bytes-per-page estimate and is shrunk after measuring the real output
    until the document fits the target or only one page is left.
    """
    strategy_id = StrategyId.MINIMAL_PLACEHOLDER
    if not intent.has_target:
        raise StrategyAttemptError("Minimal reconstruction needs a target size", strategy_id=strategy_id.value)

    config = context.config
    target = intent.target_bytes
    params = derive_parameters(intent, source.size, StrategyFamily.MINIMAL)

    page_count = max(1, target // max(1, config.minimal_bytes_per_page))
    if source.page_count:
        page_count = min(page_count, source.page_count)

    output = b""
    for refinement in range(config.minimal_max_refinements + 1):
        pages = [placeholder_lines(n, source.name, target) for n in range(1, page_count + 1)]
        output = context.assembler.build_placeholder_document(pages, config.minimal_page_size)
        _LOGGER.debug(
            "Minimal reconstruction pass %d: %d pages -> %d bytes (target %d)",
            refinement + 1, page_count, len(output), target,
        )
        if len(output) < target or page_count == 1:
            break
        # Shrink proportionally to the overshoot, always by at least one page
        estimate = int(page_count * target / len(output) * 0.9)
        page_count = max(1, min(page_count - 1, estimate))

    return _make_result(strategy_id, source, output, params, page_count)


STRATEGY_TABLE = (
    CompressionStrategy(
        StrategyId.RENDER_RASTERIZE, StrategyFamily.RENDER, render_rasterize,
        "Render pages to compressed images",
    ),
    CompressionStrategy(
        StrategyId.VECTOR_EMBED, StrategyFamily.VECTOR_EMBED, vector_embed,
        "Scale page geometry into new pages",
    ),
    CompressionStrategy(
        StrategyId.CONTENT_SCALE, StrategyFamily.CONTENT_SCALE, content_scale,
        "Scale content streams and strip metadata",
    ),
    CompressionStrategy(
        StrategyId.PAGE_REMOVAL, StrategyFamily.PAGE_REMOVAL, page_removal,
        "Remove trailing pages and scale the rest",
        requires_target=True,
    ),
    CompressionStrategy(
        StrategyId.EXTREME_PAGE_REMOVAL, StrategyFamily.EXTREME, extreme_page_removal,
        "Aggressive page removal and scaling",
        requires_target=True,
    ),
)

MINIMAL_FALLBACK = CompressionStrategy(
    StrategyId.MINIMAL_PLACEHOLDER, StrategyFamily.MINIMAL, minimal_placeholder,
    "Replace the document with placeholder pages",
    requires_target=True,
)
