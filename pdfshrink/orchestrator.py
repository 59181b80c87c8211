"""
Compression orchestration for pdfshrink.

Runs the strategy cascade for one document: strategies are tried in priority
order and the first one whose output is strictly smaller than the input wins.
If none does and the caller asked for a target size below the input size,
the minimal placeholder reconstruction is tried as a last resort.
"""

import dataclasses
import logging
import multiprocessing
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from .backends import ImageCodec, PdfCodec, default_backends
from .config import CompressorConfig
from .document import SourceDocument
from .estimator import CompressionIntent
from .exceptions import FileCompressionFailure, StrategyAttemptError
from .strategies import (
    MINIMAL_FALLBACK,
    STRATEGY_TABLE,
    CompressionAttemptResult,
    CompressionStrategy,
    StrategyContext,
    StrategyId,
)
from .utils import format_size

_LOGGER = logging.getLogger("pdfshrink")

T = TypeVar("T")
R = TypeVar("R")


class OrchestratorState(str, Enum):
    """States of a single-document compression run."""
    IDLE = "idle"
    TRYING_STRATEGY = "trying_strategy"
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"
    FALLBACK_MINIMAL = "fallback_minimal"
    FAILED = "failed"


@dataclass
class OrchestrationOutcome:
    """Accepted result of compressing one document."""
    source: SourceDocument
    state: OrchestratorState
    result: CompressionAttemptResult
    attempted: List[StrategyId] = field(default_factory=list)
    rejections: List[str] = field(default_factory=list)

    @property
    def used_placeholder_fallback(self) -> bool:
        return self.state == OrchestratorState.FALLBACK_MINIMAL


def first_success(
    candidates: Iterable[T],
    attempt: Callable[[T], R],
    accept: Callable[[R], bool],
    on_reject: Optional[Callable[[T, Optional[R], Optional[Exception]], None]] = None,
) -> Optional[R]:
    """
    Return the first accepted attempt, trying candidates in order.

    Candidates after the first accepted one are never attempted. An attempt
    that raises StrategyAttemptError counts as a rejection.

    Args:
        candidates: Ordered candidates
        attempt: Runs one candidate
        accept: Decides whether an attempt's result is good enough
        on_reject: Called with (candidate, result or None, error or None)
            for every rejected candidate

    Returns:
        The first accepted result, or None
    """
    for candidate in candidates:
        try:
            result = attempt(candidate)
        except StrategyAttemptError as e:
            if on_reject:
                on_reject(candidate, None, e)
            continue

        if accept(result):
            return result
        if on_reject:
            on_reject(candidate, result, None)
    return None


class CompressionOrchestrator:
    """
    Runs the strategy cascade for single documents.

    Args:
        pdf_codec: PDF capability (PyMuPDF by default)
        image_codec: Lossy image encoder (Pillow by default)
        config: Runtime settings
        strategies: Strategies in priority order
        fallback: Last-resort strategy for unmet target sizes
    """

    def __init__(
        self,
        pdf_codec: Optional[PdfCodec] = None,
        image_codec: Optional[ImageCodec] = None,
        config: Optional[CompressorConfig] = None,
        strategies: Sequence[CompressionStrategy] = STRATEGY_TABLE,
        fallback: Optional[CompressionStrategy] = MINIMAL_FALLBACK,
    ):
        pdf_codec, image_codec = default_backends(pdf_codec, image_codec)
        self.config = config or CompressorConfig()
        self.context = StrategyContext(pdf_codec, image_codec, self.config)
        self.strategies = tuple(strategies)
        self.fallback = fallback

    def probe(self, source: SourceDocument) -> SourceDocument:
        """
        Decode the source once to learn its page count.

        Args:
            source: Input document

        Returns:
            A copy of *source* with ``page_count`` set

        Raises:
            FileCompressionFailure: If the document cannot be decoded or has no pages
        """
        codec = self.context.pdf_codec
        try:
            doc = codec.decode(source.data)
            try:
                page_count = codec.page_count(doc)
            finally:
                codec.close(doc)
        except Exception as e:
            raise FileCompressionFailure(
                f'"{source.name}" could not be read as a PDF: {e}', file_name=source.name
            ) from e

        if page_count == 0:
            raise FileCompressionFailure(f'"{source.name}" has no pages', file_name=source.name)
        return dataclasses.replace(source, page_count=page_count)

    def compress(self, source: SourceDocument, intent: CompressionIntent) -> OrchestrationOutcome:
        """
        Compress one document.

        Args:
            source: Input document
            intent: Compression level or target size

        Returns:
            OrchestrationOutcome whose result is strictly smaller than the source

        Raises:
            FileCompressionFailure: If no strategy reduced the size; the caller
                should keep the original file
        """
        state = OrchestratorState.IDLE
        _LOGGER.info("Starting compression: %s (%d bytes, %s)", source.name, source.size, intent.describe())

        source = self.probe(source)
        attempted: List[StrategyId] = []
        rejections: List[str] = []

        def attempt(strategy: CompressionStrategy) -> CompressionAttemptResult:
            attempted.append(strategy.strategy_id)
            return self._run_attempt(strategy, source, intent)

        def reject(strategy, result, error) -> None:
            if error is not None:
                reason = str(error)
                _LOGGER.warning("Compression method %s failed: %s", strategy.strategy_id.value, error)
            else:
                reason = f"output {format_size(result.output_size)} is not smaller"
                _LOGGER.info("Compression method %s did not reduce the size", strategy.strategy_id.value)
            rejections.append(f"{strategy.strategy_id.value}: {reason}")

        state = OrchestratorState.TRYING_STRATEGY
        candidates = [s for s in self.strategies if s.applies_to(intent)]
        result = first_success(candidates, attempt, lambda r: r.succeeded, reject)

        if result is not None:
            state = OrchestratorState.ACCEPTED
            _LOGGER.info(
                "%s successful: %s -> %s",
                result.strategy_id.value, format_size(source.size), format_size(result.output_size),
            )
            return OrchestrationOutcome(source, state, result, attempted, rejections)

        state = OrchestratorState.EXHAUSTED
        if self.fallback is not None and intent.has_target and intent.target_bytes < source.size:
            state = OrchestratorState.FALLBACK_MINIMAL
            _LOGGER.info("All methods failed, creating minimal PDF for %s", source.name)
            result = first_success([self.fallback], attempt, lambda r: r.succeeded, reject)
            if result is not None:
                return OrchestrationOutcome(source, state, result, attempted, rejections)

        state = OrchestratorState.FAILED
        _LOGGER.warning("No compression method was effective for %s (%s)", source.name, state.value)
        raise FileCompressionFailure(
            f'Could not reduce "{source.name}". Keeping the original file.',
            file_name=source.name,
        )

    def _run_attempt(
        self,
        strategy: CompressionStrategy,
        source: SourceDocument,
        intent: CompressionIntent,
    ) -> CompressionAttemptResult:
        started = time.perf_counter()
        try:
            if self.config.attempt_timeout is None:
                return strategy.run(source, intent, self.context)
            return self._run_with_timeout(strategy, source, intent)
        except StrategyAttemptError as e:
            if e.strategy_id is None:
                e.strategy_id = strategy.strategy_id.value
            raise
        except Exception as e:
            raise StrategyAttemptError(str(e), strategy_id=strategy.strategy_id.value) from e
        finally:
            _LOGGER.debug(
                "%s took %.2fms", strategy.strategy_id.value, (time.perf_counter() - started) * 1000
            )

    def _run_with_timeout(
        self,
        strategy: CompressionStrategy,
        source: SourceDocument,
        intent: CompressionIntent,
    ) -> CompressionAttemptResult:
        # The child is killed and reaped before this returns, so attempts never overlap
        mp_context = multiprocessing.get_context()
        receiver, sender = mp_context.Pipe(duplex=False)
        process = mp_context.Process(
            target=_attempt_worker,
            args=(strategy, source, intent, self.context, sender),
            name=f"pdfshrink-{strategy.strategy_id.value}",
            daemon=True,
        )
        process.start()
        sender.close()
        try:
            if not receiver.poll(self.config.attempt_timeout):
                raise StrategyAttemptError(
                    f"Timed out after {self.config.attempt_timeout}s",
                    strategy_id=strategy.strategy_id.value,
                )
            try:
                succeeded, payload = receiver.recv()
            except EOFError:
                process.join()
                raise StrategyAttemptError(
                    f"Attempt process exited with code {process.exitcode}",
                    strategy_id=strategy.strategy_id.value,
                )
        finally:
            if process.is_alive():
                process.kill()
            process.join()
            receiver.close()

        if not succeeded:
            raise StrategyAttemptError(payload, strategy_id=strategy.strategy_id.value)
        return payload


def _attempt_worker(
    strategy: CompressionStrategy,
    source: SourceDocument,
    intent: CompressionIntent,
    context: StrategyContext,
    conn,
) -> None:
    """Run one attempt in a child process and send back (succeeded, result or error message)."""
    try:
        conn.send((True, strategy.run(source, intent, context)))
    except Exception as e:
        conn.send((False, str(e) or type(e).__name__))
    finally:
        conn.close()
