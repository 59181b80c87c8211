"""
Batch processing for pdfshrink.

Files are compressed strictly one after another. A failing file never
aborts the batch; it is reported alongside the successes.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from . import notifications
from .document import SourceDocument
from .estimator import CompressionIntent
from .exceptions import BatchFailure, FileCompressionFailure, PDFShrinkError
from .notifications import Notification
from .orchestrator import CompressionOrchestrator, OrchestrationOutcome
from .strategies import StrategyId
from .utils import compression_ratio_percent, format_size, output_name
from .validation import dedupe_files, validate_files

_LOGGER = logging.getLogger("pdfshrink")

ProgressCallback = Callable[[str, int], None]


@dataclass
class CompressedFileRecord:
    """A successfully compressed file."""
    original: SourceDocument
    compressed_bytes: bytes = field(repr=False)
    compression_ratio_percent: float
    elapsed_millis: float
    strategy_id: StrategyId
    page_count: int
    target_achieved: Optional[bool] = None
    output_prefix: str = "compressed_"

    @property
    def compressed_size(self) -> int:
        return len(self.compressed_bytes)

    @property
    def output_name(self) -> str:
        return output_name(self.original.name, self.output_prefix)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.original.name,
            "output_name": self.output_name,
            "original_size": self.original.size,
            "original_size_formatted": format_size(self.original.size),
            "compressed_size": self.compressed_size,
            "compressed_size_formatted": format_size(self.compressed_size),
            "compression_ratio": self.compression_ratio_percent,
            "elapsed_ms": round(self.elapsed_millis, 2),
            "strategy": self.strategy_id.value,
            "original_pages": self.original.page_count,
            "pages": self.page_count,
            "target_achieved": self.target_achieved,
        }


@dataclass
class BatchMetrics:
    """Running totals for one batch."""
    total_original_bytes: int = 0
    total_compressed_bytes: int = 0
    files_processed: int = 0
    total_elapsed_millis: float = 0.0

    def add_success(self, record: CompressedFileRecord) -> None:
        self.total_original_bytes += record.original.size
        self.total_compressed_bytes += record.compressed_size

    def add_elapsed(self, elapsed_millis: float) -> None:
        self.files_processed += 1
        self.total_elapsed_millis += elapsed_millis

    @property
    def bytes_saved(self) -> int:
        return max(self.total_original_bytes - self.total_compressed_bytes, 0)

    @property
    def average_elapsed_millis(self) -> float:
        if self.files_processed == 0:
            return 0.0
        return self.total_elapsed_millis / self.files_processed

    @property
    def overall_efficiency_percent(self) -> float:
        return compression_ratio_percent(self.total_original_bytes, self.total_compressed_bytes)

    def to_dict(self) -> dict:
        return {
            "total_original_bytes": self.total_original_bytes,
            "total_compressed_bytes": self.total_compressed_bytes,
            "bytes_saved": self.bytes_saved,
            "bytes_saved_formatted": format_size(self.bytes_saved),
            "files_processed": self.files_processed,
            "total_elapsed_ms": round(self.total_elapsed_millis, 2),
            "average_elapsed_ms": round(self.average_elapsed_millis, 2),
            "overall_efficiency": self.overall_efficiency_percent,
        }


@dataclass(frozen=True)
class BatchRequest:
    """The files to compress and how to compress them."""
    files: Tuple[SourceDocument, ...]
    intent: CompressionIntent

    @classmethod
    def create(
        cls,
        files: Sequence[SourceDocument],
        intent: CompressionIntent,
        dedupe: bool = True,
    ) -> "BatchRequest":
        if dedupe:
            files = dedupe_files(files)
        return cls(files=tuple(files), intent=intent)


@dataclass
class BatchResult:
    """Outcome of a batch run."""
    records: List[CompressedFileRecord] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    metrics: BatchMetrics = field(default_factory=BatchMetrics)
    notifications: List[Notification] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return bool(self.records)

    def to_dict(self) -> dict:
        return {
            "success": self.succeeded,
            "records": [record.to_dict() for record in self.records],
            "failures": list(self.failures),
            "metrics": self.metrics.to_dict(),
            "notifications": [n.to_dict() for n in self.notifications],
            "cancelled": self.cancelled,
        }


def _start_message(intent: CompressionIntent) -> Notification:
    if intent.has_target:
        return notifications.info(
            f"Starting advanced compression targeting {intent.target_bytes / 1024:.0f}KB. "
            "This may create a simplified version of your PDF."
        )
    return notifications.info(f"Starting {intent.level.value} compression...")


def _make_record(
    outcome: OrchestrationOutcome,
    intent: CompressionIntent,
    elapsed_millis: float,
    output_prefix: str,
) -> CompressedFileRecord:
    data = outcome.result.output_bytes
    target_achieved = None
    if intent.has_target:
        target_achieved = len(data) <= intent.target_bytes
    return CompressedFileRecord(
        original=outcome.source,
        compressed_bytes=data,
        compression_ratio_percent=compression_ratio_percent(outcome.source.size, len(data)),
        elapsed_millis=elapsed_millis,
        strategy_id=outcome.result.strategy_id,
        page_count=outcome.result.page_count,
        target_achieved=target_achieved,
        output_prefix=output_prefix,
    )


def run_batch(
    request: BatchRequest,
    orchestrator: CompressionOrchestrator,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BatchResult:
    """
    Compress every file of a request, one at a time.

    Args:
        request: Files and compression intent
        orchestrator: Runs the strategy cascade for each file
        progress_callback: Optional callback for progress updates (stage, percentage)
        cancel_event: When set, no further file is started

    Returns:
        BatchResult with the compressed records and the names of failed files

    Raises:
        ValidationError: If the selection is invalid; nothing is processed
        BatchFailure: If no file could be compressed
    """
    config = orchestrator.config
    validate_files(request.files, config.max_file_size)

    result = BatchResult()
    result.notifications.append(_start_message(request.intent))
    total = len(request.files)

    for i, source in enumerate(request.files):
        if cancel_event is not None and cancel_event.is_set():
            _LOGGER.info("Batch cancelled before %s", source.name)
            result.cancelled = True
            result.notifications.append(
                notifications.warning(f"Compression cancelled after {i} of {total} file(s).")
            )
            break

        if progress_callback:
            progress_callback(f"Compressing {source.name}...", round((i + 1) / total * 100))

        started = time.perf_counter()
        try:
            outcome = orchestrator.compress(source, request.intent)
        except FileCompressionFailure as e:
            result.failures.append(source.name)
            result.notifications.append(notifications.warning(e.message))
            continue
        except PDFShrinkError as e:
            result.failures.append(source.name)
            result.notifications.append(notifications.error(f'Error processing "{source.name}": {e.message}'))
            continue
        except Exception as e:
            _LOGGER.exception("Error compressing %s", source.name)
            result.failures.append(source.name)
            result.notifications.append(
                notifications.error(f'Error processing "{source.name}": {str(e) or "Unknown error"}')
            )
            continue
        finally:
            elapsed = (time.perf_counter() - started) * 1000
            result.metrics.add_elapsed(elapsed)
            _LOGGER.debug("Compress %s took %.2fms", source.name, elapsed)

        record = _make_record(outcome, request.intent, elapsed, config.output_prefix)
        if record.compressed_size >= source.size:
            # Never hand back something that is not smaller than the input
            result.failures.append(source.name)
            result.notifications.append(
                notifications.warning(f'Could not reduce "{source.name}". Keeping the original file.')
            )
            continue

        result.records.append(record)
        result.metrics.add_success(record)
        if outcome.used_placeholder_fallback:
            result.notifications.append(notifications.warning(
                f'"{source.name}" was replaced by a simplified placeholder document '
                f"to fit {request.intent.target_bytes / 1024:.0f}KB."
            ))

    _LOGGER.info(
        "Batch finished: %d compressed, %d failed, %s saved",
        len(result.records), len(result.failures), format_size(result.metrics.bytes_saved),
    )

    if result.records:
        if result.failures:
            result.notifications.append(notifications.warning(
                f"{len(result.records)} file(s) compressed successfully, "
                f"{len(result.failures)} failed: {', '.join(result.failures)}"
            ))
        elif not result.cancelled:
            result.notifications.append(
                notifications.success(f"All {len(result.records)} file(s) compressed successfully!")
            )
    elif not result.cancelled:
        failure = BatchFailure(result=result)
        result.notifications.append(notifications.error(failure.message))
        raise failure

    return result


class BatchRunner:
    """
    Convenience wrapper binding an orchestrator to batch runs.

    Args:
        orchestrator: Orchestrator used for every file (a default one if omitted)
    """

    def __init__(self, orchestrator: Optional[CompressionOrchestrator] = None):
        self.orchestrator = orchestrator or CompressionOrchestrator()

    def run(
        self,
        files: Sequence[SourceDocument],
        intent: CompressionIntent,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """Build a BatchRequest from *files* and run it."""
        request = BatchRequest.create(files, intent)
        return run_batch(request, self.orchestrator, progress_callback, cancel_event)
