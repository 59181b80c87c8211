"""Runtime settings for pdfshrink."""

from dataclasses import dataclass
from typing import Optional, Tuple

# 100MB ceiling for a single input file
MAX_FILE_SIZE = 100 * 1024 * 1024


@dataclass
class CompressorConfig:
    """
    In-memory settings shared by the orchestrator, batch runner and exporters.

    Attributes:
        max_file_size: Largest accepted input in bytes
        allow_placeholder_fallback: Substitute a labelled placeholder page when
            a page cannot be transformed, instead of failing the attempt
        minimal_bytes_per_page: Starting estimate of output bytes per page for
            the minimal placeholder reconstruction
        minimal_page_size: Page size (points) of reconstructed placeholder pages
        minimal_max_refinements: How many times the minimal reconstruction may
            re-measure its output and shrink the page count
        attempt_timeout: Seconds before a single strategy attempt is killed
            (None disables the timeout)
        bundle_name: File name of the multi-file archive
        output_prefix: Prefix for compressed output file names
        stagger_seconds: Delay between individual deliveries when bundling fails
    """
    max_file_size: int = MAX_FILE_SIZE
    allow_placeholder_fallback: bool = True
    minimal_bytes_per_page: int = 2500
    minimal_page_size: Tuple[float, float] = (300, 400)
    minimal_max_refinements: int = 8
    attempt_timeout: Optional[float] = None
    bundle_name: str = "compressed_pdfs.zip"
    output_prefix: str = "compressed_"
    stagger_seconds: float = 0.5
