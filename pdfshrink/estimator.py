"""
Size estimation for pdfshrink.

Maps a compression intent (a qualitative level or a target size) to the
concrete parameters a strategy renders with: lossy image quality, geometric
scale and the fraction of pages to keep. Everything here is pure and
deterministic.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

MIN_QUALITY = 0.02
MAX_QUALITY = 0.9
MIN_SCALE = 0.05
MAX_SCALE = 1.0
MIN_RETENTION = 0.05


class CompressionLevel(str, Enum):
    """Qualitative compression levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StrategyFamily(str, Enum):
    """Groups of strategies sharing a parameter table."""
    RENDER = "render"
    VECTOR_EMBED = "vector_embed"
    CONTENT_SCALE = "content_scale"
    PAGE_REMOVAL = "page_removal"
    EXTREME = "extreme"
    MINIMAL = "minimal"


@dataclass(frozen=True)
class CompressionIntent:
    """
    What the caller asked for: either a level or a target size in bytes.

    Exactly one of ``level`` and ``target_bytes`` is set.
    """
    level: Optional[CompressionLevel] = None
    target_bytes: Optional[int] = None

    def __post_init__(self):
        if (self.level is None) == (self.target_bytes is None):
            raise ValueError("Specify exactly one of a compression level or a target size")
        if self.target_bytes is not None:
            if isinstance(self.target_bytes, bool) or not isinstance(self.target_bytes, int):
                raise ValueError(f"Target size must be an integer number of bytes: {self.target_bytes!r}")
            if self.target_bytes <= 0:
                raise ValueError(f"Target size must be positive: {self.target_bytes}")
        if self.level is not None and not isinstance(self.level, CompressionLevel):
            object.__setattr__(self, "level", CompressionLevel(self.level))

    @classmethod
    def from_level(cls, level) -> "CompressionIntent":
        return cls(level=CompressionLevel(level))

    @classmethod
    def from_target_kb(cls, kilobytes: int) -> "CompressionIntent":
        """Build a target intent from a size in kilobytes (1 KB = 1024 bytes)."""
        if isinstance(kilobytes, bool) or not isinstance(kilobytes, int):
            raise ValueError(f"Target size must be a whole number of kilobytes: {kilobytes!r}")
        if kilobytes <= 0:
            raise ValueError(f"Target size must be positive: {kilobytes}")
        return cls(target_bytes=kilobytes * 1024)

    @property
    def has_target(self) -> bool:
        return self.target_bytes is not None

    def describe(self) -> str:
        if self.target_bytes is not None:
            return f"target {self.target_bytes / 1024:.0f}KB"
        return f"{self.level.value} compression"


@dataclass(frozen=True)
class RenderParameters:
    """Parameters for one strategy attempt."""
    image_quality: float
    geometric_scale: float
    page_retention_fraction: float = 1.0

    def to_dict(self) -> dict:
        return {
            "image_quality": round(self.image_quality, 3),
            "geometric_scale": round(self.geometric_scale, 3),
            "page_retention_fraction": round(self.page_retention_fraction, 3),
        }


# (quality, scale) per level
_RENDER_LEVELS = {
    CompressionLevel.LOW: (0.8, 0.9),
    CompressionLevel.MEDIUM: (0.5, 0.7),
    CompressionLevel.HIGH: (0.3, 0.5),
}

LEVEL_TABLES: Dict[StrategyFamily, Dict[CompressionLevel, Tuple[float, float]]] = {
    StrategyFamily.RENDER: _RENDER_LEVELS,
    StrategyFamily.VECTOR_EMBED: {
        CompressionLevel.LOW: (0.8, 0.85),
        CompressionLevel.MEDIUM: (0.5, 0.65),
        CompressionLevel.HIGH: (0.3, 0.45),
    },
    StrategyFamily.CONTENT_SCALE: {
        CompressionLevel.LOW: (0.8, 0.9),
        CompressionLevel.MEDIUM: (0.6, 0.7),
        CompressionLevel.HIGH: (0.4, 0.5),
    },
    StrategyFamily.PAGE_REMOVAL: _RENDER_LEVELS,
    StrategyFamily.EXTREME: _RENDER_LEVELS,
    StrategyFamily.MINIMAL: _RENDER_LEVELS,
}

# Ordered (upper ratio bound, quality, scale) bands; the last band has no bound
_RENDER_BANDS: Sequence[Tuple[float, float, float]] = (
    (0.3, 0.2, 0.4),
    (0.6, 0.4, 0.6),
    (math.inf, 0.6, 0.8),
)

_VECTOR_BANDS: Sequence[Tuple[float, float, float]] = (
    (0.2, 0.2, 0.3),
    (0.4, 0.3, 0.5),
    (0.6, 0.4, 0.6),
    (math.inf, 0.5, 0.7),
)

# Ordered (lower ratio bound, fraction kept) ladders, checked with ">"
_PAGE_REMOVAL_RETENTION: Sequence[Tuple[float, float]] = (
    (0.7, 1.0),
    (0.5, 0.7),
    (0.3, 0.5),
    (-math.inf, 0.3),
)

_EXTREME_RETENTION: Sequence[Tuple[float, float]] = (
    (0.5, 0.5),
    (0.3, 0.3),
    (-math.inf, 0.2),
)


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def compression_ratio(target_bytes: int, source_size_bytes: int) -> float:
    """
    Ratio of the target size to the source size.

    Args:
        target_bytes: Requested output size
        source_size_bytes: Input size

    Returns:
        ``target / source``; 1.0 for an empty source
    """
    if source_size_bytes <= 0:
        return 1.0
    return target_bytes / source_size_bytes


def _band(ratio: float, bands: Sequence[Tuple[float, float, float]]) -> Tuple[float, float]:
    for upper, quality, scale in bands:
        if ratio < upper:
            return quality, scale
    _, quality, scale = bands[-1]
    return quality, scale


def _target_quality_scale(ratio: float, family: StrategyFamily) -> Tuple[float, float]:
    render_quality, render_scale = _band(ratio, _RENDER_BANDS)

    if family == StrategyFamily.RENDER:
        return render_quality, render_scale
    if family == StrategyFamily.VECTOR_EMBED:
        return _band(ratio, _VECTOR_BANDS)
    if family in (StrategyFamily.CONTENT_SCALE, StrategyFamily.PAGE_REMOVAL):
        return render_quality, math.sqrt(max(ratio, 0.0))
    if family == StrategyFamily.EXTREME:
        return render_quality, max(ratio, 0.0) ** 0.8
    # Minimal reconstruction draws text only; scale is irrelevant
    quality, _ = _RENDER_BANDS[0][1:]
    return quality, 1.0


def page_retention_fraction(ratio: float, family: StrategyFamily) -> float:
    """
    Fraction of pages a page-removing strategy keeps for a target ratio.

    Args:
        ratio: Target-to-source size ratio
        family: Strategy family; only page-removing families drop pages

    Returns:
        Fraction in (0, 1]
    """
    if family == StrategyFamily.PAGE_REMOVAL:
        ladder = _PAGE_REMOVAL_RETENTION
    elif family == StrategyFamily.EXTREME:
        ladder = _EXTREME_RETENTION
    else:
        return 1.0

    for lower, fraction in ladder:
        if ratio > lower:
            return clamp(fraction, MIN_RETENTION, 1.0)
    return clamp(ladder[-1][1], MIN_RETENTION, 1.0)


def pages_to_keep(page_count: int, fraction: float) -> int:
    """Number of leading pages kept for a retention fraction (at least one)."""
    # Round away float noise so 10 * 0.7 keeps 7 pages, not 8
    return max(1, math.ceil(round(page_count * fraction, 9)))


def derive_parameters(
    intent: CompressionIntent,
    source_size_bytes: int,
    family: StrategyFamily,
) -> RenderParameters:
    """
    Derive render parameters for one strategy attempt.

    Args:
        intent: Compression level or target size
        source_size_bytes: Size of the input PDF
        family: Strategy family asking for parameters

    Returns:
        Clamped RenderParameters
    """
    if intent.target_bytes is None:
        quality, scale = LEVEL_TABLES[family][intent.level]
        retention = 1.0
    else:
        ratio = compression_ratio(intent.target_bytes, source_size_bytes)
        quality, scale = _target_quality_scale(ratio, family)
        retention = page_retention_fraction(ratio, family)

    return RenderParameters(
        image_quality=clamp(quality, MIN_QUALITY, MAX_QUALITY),
        geometric_scale=clamp(scale, MIN_SCALE, MAX_SCALE),
        page_retention_fraction=retention,
    )


def jpeg_quality(image_quality: float) -> int:
    """Convert a 0-1 quality into a Pillow JPEG quality setting."""
    return int(clamp(round(image_quality * 100), 1, 95))
