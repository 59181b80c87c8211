"""Utility functions for PDF compression."""

import re
from pathlib import Path
from typing import Union


def parse_size(size_str: str) -> int:
    """
    Parse a human-readable size string to bytes.

    Args:
        size_str: Size string like "5MB", "800KB", "1.5GB"

    Returns:
        Size in bytes

    Raises:
        ValueError: If the size string is invalid
    """
    size_str = size_str.strip().upper()

    # Pattern: number (with optional decimal) followed by unit
    match = re.match(r'^([\d.]+)\s*(B|KB|MB|GB|K|M|G)?$', size_str)
    if not match:
        raise ValueError(f"Invalid size format: {size_str}. Use formats like '5MB', '800KB', '1.5GB'")

    value = float(match.group(1))
    unit = match.group(2) or 'B'

    multipliers = {
        'B': 1,
        'K': 1024,
        'KB': 1024,
        'M': 1024 * 1024,
        'MB': 1024 * 1024,
        'G': 1024 * 1024 * 1024,
        'GB': 1024 * 1024 * 1024,
    }

    return int(value * multipliers[unit])


def format_size(size_bytes: int) -> str:
    """
    Format bytes to human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string, e.g. "1.5 MB"
    """
    if size_bytes <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB"]
    exponent = 0
    while size_bytes >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size_bytes / (1024 ** exponent), 2)
    # Drop trailing zeros so 2.00 MB reads as 2 MB
    return f"{value:g} {units[exponent]}"


def compression_ratio_percent(original_size: int, compressed_size: int) -> float:
    """
    Calculate the size reduction as a percentage.

    Args:
        original_size: Original file size in bytes
        compressed_size: Compressed file size in bytes

    Returns:
        Reduction percentage rounded to one decimal (e.g. 65.0 means 65% smaller)
    """
    if original_size == 0:
        return 0.0
    return round((original_size - compressed_size) / original_size * 100, 1)


def output_name(original_name: str, prefix: str = "compressed_") -> str:
    """
    Name under which a compressed file is delivered.

    Args:
        original_name: Name of the uploaded file
        prefix: Prefix prepended to the name

    Returns:
        Output file name
    """
    return f"{prefix}{Path(original_name).name}"


def unique_path(directory: Union[str, Path], name: str) -> Path:
    """
    Return a path in *directory* that does not overwrite an existing file.

    Args:
        directory: Target directory
        name: Desired file name

    Returns:
        ``directory / name``, or the same name with a numeric suffix if taken
    """
    directory = Path(directory)
    candidate = directory / name
    counter = 1
    while candidate.exists():
        candidate = directory / f"{Path(name).stem}_{counter}{Path(name).suffix}"
        counter += 1
    return candidate
