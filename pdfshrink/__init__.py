"""
pdfshrink

Reduce PDF files to a compression level or a target size using a cascade
of rasterization, geometric scaling and page-removal strategies.
"""

import logging

__version__ = "1.0.0"
__author__ = "pdfshrink contributors"

from .backends import PillowImageCodec, PyMuPDFCodec, ZipArchiveBuilder
from .batch import BatchMetrics, BatchRequest, BatchResult, BatchRunner, CompressedFileRecord, run_batch
from .config import CompressorConfig
from .document import SourceDocument
from .estimator import CompressionIntent, CompressionLevel, RenderParameters, derive_parameters
from .exceptions import (
    BatchFailure,
    BundlingError,
    FileCompressionFailure,
    PDFShrinkError,
    StrategyAttemptError,
    ValidationError,
)
from .export import bundle_records, deliver
from .orchestrator import CompressionOrchestrator, OrchestrationOutcome
from .strategies import StrategyId

logging.getLogger("pdfshrink").addHandler(logging.NullHandler())

__all__ = [
    "BatchFailure",
    "BatchMetrics",
    "BatchRequest",
    "BatchResult",
    "BatchRunner",
    "BundlingError",
    "CompressedFileRecord",
    "CompressionIntent",
    "CompressionLevel",
    "CompressionOrchestrator",
    "CompressorConfig",
    "FileCompressionFailure",
    "OrchestrationOutcome",
    "PDFShrinkError",
    "PillowImageCodec",
    "PyMuPDFCodec",
    "RenderParameters",
    "SourceDocument",
    "StrategyAttemptError",
    "StrategyId",
    "ValidationError",
    "ZipArchiveBuilder",
    "bundle_records",
    "deliver",
    "derive_parameters",
    "run_batch",
]
