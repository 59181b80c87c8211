"""Delivery of compressed files: single files or a bundled archive."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from . import notifications
from .backends import ArchiveBuilder, ZipArchiveBuilder
from .batch import CompressedFileRecord
from .config import CompressorConfig
from .exceptions import BundlingError
from .notifications import Notification
from .utils import unique_path

_LOGGER = logging.getLogger("pdfshrink")


@dataclass
class DeliveryReport:
    """What was written by deliver()."""
    paths: List[Path] = field(default_factory=list)
    bundled: bool = False
    notifications: List[Notification] = field(default_factory=list)


def archive_entries(records: Sequence[CompressedFileRecord]) -> List[Tuple[str, bytes]]:
    """
    Name each record for the archive, keeping names unique.

    Args:
        records: Compressed files

    Returns:
        (name, data) pairs in record order
    """
    entries = []
    used = set()
    for record in records:
        name = record.output_name
        stem, suffix = Path(name).stem, Path(name).suffix
        counter = 1
        while name in used:
            name = f"{stem}_{counter}{suffix}"
            counter += 1
        used.add(name)
        entries.append((name, record.compressed_bytes))
    return entries


def bundle_records(
    records: Sequence[CompressedFileRecord],
    archive_builder: Optional[ArchiveBuilder] = None,
) -> bytes:
    """
    Bundle compressed files into one archive.

    Args:
        records: Compressed files
        archive_builder: Archive capability (ZIP by default)

    Returns:
        Archive bytes

    Raises:
        BundlingError: If the archive cannot be created
    """
    if not records:
        raise BundlingError("No compressed files to bundle.")

    builder = archive_builder or ZipArchiveBuilder()
    try:
        return builder.create_archive(archive_entries(records))
    except BundlingError:
        raise
    except Exception as e:
        raise BundlingError(f"Error creating ZIP file: {e}") from e


def write_record(record: CompressedFileRecord, output_dir: Union[str, Path]) -> Path:
    """Write one compressed file into *output_dir* and return its path."""
    path = unique_path(output_dir, record.output_name)
    path.write_bytes(record.compressed_bytes)
    return path


def deliver(
    records: Sequence[CompressedFileRecord],
    output_dir: Union[str, Path],
    archive_builder: Optional[ArchiveBuilder] = None,
    config: Optional[CompressorConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeliveryReport:
    """
    Write compressed files to *output_dir*.

    A single file is written as is. Several files are bundled into one
    archive; if bundling fails they are written one by one with a short
    pause between them.

    Args:
        records: Compressed files
        output_dir: Destination directory (created if missing)
        archive_builder: Archive capability (ZIP by default)
        config: Runtime settings for the bundle name and stagger delay
        sleep: Pause function used between individual deliveries

    Returns:
        DeliveryReport listing the written paths
    """
    config = config or CompressorConfig()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    report = DeliveryReport()

    if not records:
        return report

    if len(records) == 1:
        report.paths.append(write_record(records[0], output_dir))
        return report

    try:
        archive = bundle_records(records, archive_builder)
    except BundlingError as e:
        _LOGGER.warning("ZIP creation error: %s", e)
        report.notifications.append(
            notifications.warning("Error creating ZIP file. Downloading files individually...")
        )
        for i, record in enumerate(records):
            if i > 0:
                sleep(config.stagger_seconds)
            report.paths.append(write_record(record, output_dir))
        return report

    path = unique_path(output_dir, config.bundle_name)
    path.write_bytes(archive)
    report.paths.append(path)
    report.bundled = True
    return report
