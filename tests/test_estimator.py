import math

import pytest

from pdfshrink.estimator import (
    MAX_QUALITY,
    MAX_SCALE,
    MIN_QUALITY,
    MIN_SCALE,
    CompressionIntent,
    CompressionLevel,
    StrategyFamily,
    compression_ratio,
    derive_parameters,
    jpeg_quality,
    page_retention_fraction,
    pages_to_keep,
)

MB = 1024 * 1024


def _target(ratio: float, source: int = 10 * MB) -> CompressionIntent:
    return CompressionIntent(target_bytes=round(source * ratio))


@pytest.mark.parametrize(
    "level, quality, scale",
    [("low", 0.8, 0.9), ("medium", 0.5, 0.7), ("high", 0.3, 0.5)],
)
def test_render_levels(level: str, quality: float, scale: float) -> None:
    params = derive_parameters(CompressionIntent.from_level(level), 10 * MB, StrategyFamily.RENDER)
    assert params.image_quality == pytest.approx(quality)
    assert params.geometric_scale == pytest.approx(scale)
    assert params.page_retention_fraction == 1.0


def test_levels_never_drop_pages() -> None:
    for family in (StrategyFamily.PAGE_REMOVAL, StrategyFamily.EXTREME):
        for level in CompressionLevel:
            params = derive_parameters(CompressionIntent(level=level), 10 * MB, family)
            assert params.page_retention_fraction == 1.0


def test_level_parameters_ignore_source_size() -> None:
    intent = CompressionIntent.from_level("medium")
    small = derive_parameters(intent, 1000, StrategyFamily.CONTENT_SCALE)
    large = derive_parameters(intent, 50 * MB, StrategyFamily.CONTENT_SCALE)
    assert small == large


@pytest.mark.parametrize(
    "ratio, quality, scale",
    [(0.1, 0.2, 0.4), (0.3, 0.4, 0.6), (0.5, 0.4, 0.6), (0.8, 0.6, 0.8)],
)
def test_render_target_bands(ratio: float, quality: float, scale: float) -> None:
    params = derive_parameters(_target(ratio), 10 * MB, StrategyFamily.RENDER)
    assert params.image_quality == pytest.approx(quality)
    assert params.geometric_scale == pytest.approx(scale)


@pytest.mark.parametrize(
    "ratio, quality, scale",
    [(0.1, 0.2, 0.3), (0.3, 0.3, 0.5), (0.5, 0.4, 0.6), (0.9, 0.5, 0.7)],
)
def test_vector_target_bands(ratio: float, quality: float, scale: float) -> None:
    params = derive_parameters(_target(ratio), 10 * MB, StrategyFamily.VECTOR_EMBED)
    assert params.image_quality == pytest.approx(quality)
    assert params.geometric_scale == pytest.approx(scale)


def test_content_scale_uses_square_root_of_ratio() -> None:
    params = derive_parameters(_target(0.25), 10 * MB, StrategyFamily.CONTENT_SCALE)
    assert params.geometric_scale == pytest.approx(0.5, rel=1e-3)
    assert params.image_quality == pytest.approx(0.2)


def test_extreme_scale_is_steeper() -> None:
    params = derive_parameters(_target(0.25), 10 * MB, StrategyFamily.EXTREME)
    assert params.geometric_scale == pytest.approx(0.25 ** 0.8, rel=1e-3)


@pytest.mark.parametrize(
    "ratio, fraction",
    [(0.8, 1.0), (0.7, 0.7), (0.6, 0.7), (0.4, 0.5), (0.3, 0.3), (0.1, 0.3)],
)
def test_page_removal_retention_ladder(ratio: float, fraction: float) -> None:
    assert page_retention_fraction(ratio, StrategyFamily.PAGE_REMOVAL) == fraction


@pytest.mark.parametrize("ratio, fraction", [(0.6, 0.5), (0.4, 0.3), (0.3, 0.2), (0.05, 0.2)])
def test_extreme_retention_ladder(ratio: float, fraction: float) -> None:
    assert page_retention_fraction(ratio, StrategyFamily.EXTREME) == fraction


def test_other_families_keep_every_page() -> None:
    assert page_retention_fraction(0.01, StrategyFamily.RENDER) == 1.0
    assert page_retention_fraction(0.01, StrategyFamily.CONTENT_SCALE) == 1.0


@pytest.mark.parametrize(
    "count, fraction, expected",
    [(10, 0.7, 7), (3, 0.5, 2), (1, 0.2, 1), (10, 0.05, 1), (7, 1.0, 7)],
)
def test_pages_to_keep(count: int, fraction: float, expected: int) -> None:
    assert pages_to_keep(count, fraction) == expected


@pytest.mark.parametrize("family", list(StrategyFamily))
@pytest.mark.parametrize("ratio", [0.0001, 0.01, 0.2, 0.5, 0.99, 1.5, 20.0])
def test_parameters_are_clamped(family: StrategyFamily, ratio: float) -> None:
    params = derive_parameters(_target(ratio), 10 * MB, family)
    assert MIN_QUALITY <= params.image_quality <= MAX_QUALITY
    assert MIN_SCALE <= params.geometric_scale <= MAX_SCALE
    assert 0 < params.page_retention_fraction <= 1.0


@pytest.mark.parametrize("family", list(StrategyFamily))
def test_smaller_targets_never_get_gentler_parameters(family: StrategyFamily) -> None:
    ratios = [0.01, 0.05, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.95]
    params = [derive_parameters(_target(r), 10 * MB, family) for r in ratios]
    for smaller, larger in zip(params, params[1:]):
        assert smaller.image_quality <= larger.image_quality
        assert smaller.geometric_scale <= larger.geometric_scale
        assert smaller.page_retention_fraction <= larger.page_retention_fraction


def test_derivation_is_deterministic() -> None:
    intent = CompressionIntent.from_target_kb(700)
    first = derive_parameters(intent, 3 * MB, StrategyFamily.EXTREME)
    second = derive_parameters(intent, 3 * MB, StrategyFamily.EXTREME)
    assert first == second


def test_compression_ratio_of_empty_source() -> None:
    assert compression_ratio(1024, 0) == 1.0
    assert compression_ratio(512, 1024) == 0.5


def test_intent_from_target_kb() -> None:
    intent = CompressionIntent.from_target_kb(500)
    assert intent.target_bytes == 500 * 1024
    assert intent.has_target
    assert intent.describe() == "target 500KB"


@pytest.mark.parametrize("value", [0, -5, 1.5, True, "100"])
def test_intent_rejects_bad_targets(value) -> None:
    with pytest.raises(ValueError):
        CompressionIntent.from_target_kb(value)


def test_intent_requires_exactly_one_mode() -> None:
    with pytest.raises(ValueError):
        CompressionIntent()
    with pytest.raises(ValueError):
        CompressionIntent(level=CompressionLevel.LOW, target_bytes=1024)


def test_intent_coerces_level_strings() -> None:
    intent = CompressionIntent(level="high")
    assert intent.level is CompressionLevel.HIGH
    assert not intent.has_target
    with pytest.raises(ValueError):
        CompressionIntent.from_level("maximum")


@pytest.mark.parametrize("quality, expected", [(0.5, 50), (0.9, 90), (1.0, 95), (0.001, 1)])
def test_jpeg_quality(quality: float, expected: int) -> None:
    assert jpeg_quality(quality) == expected


def test_minimal_family_does_not_scale() -> None:
    params = derive_parameters(_target(0.01), 10 * MB, StrategyFamily.MINIMAL)
    assert math.isclose(params.geometric_scale, 1.0)
