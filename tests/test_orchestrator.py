import functools
import multiprocessing
import os
import sys
import time
from pathlib import Path

import pytest

import fitz

from pdfshrink import CompressionIntent, CompressionOrchestrator, CompressorConfig, SourceDocument
from pdfshrink.estimator import StrategyFamily
from pdfshrink.exceptions import FileCompressionFailure, StrategyAttemptError
from pdfshrink.orchestrator import OrchestratorState, first_success
from pdfshrink.strategies import CompressionAttemptResult, CompressionStrategy, StrategyId

MEDIUM = CompressionIntent.from_level("medium")


def _stub(strategy_id: StrategyId, outcome, calls: list, requires_target: bool = False) -> CompressionStrategy:
    """Strategy returning a fixed output size, or raising *outcome* if it is an exception."""

    def handler(source, intent, context):
        calls.append(strategy_id)
        if isinstance(outcome, Exception):
            raise outcome
        data = b"%PDF-" + b"x" * (outcome - 5)
        succeeded = len(data) < source.size
        return CompressionAttemptResult(
            strategy_id=strategy_id,
            output_bytes=data if succeeded else None,
            output_size=len(data),
            succeeded=succeeded,
            page_count=source.page_count or 0,
        )

    return CompressionStrategy(strategy_id, StrategyFamily.RENDER, handler, "stub", requires_target)


def test_first_success_stops_at_first_accepted() -> None:
    tried = []

    def attempt(n):
        tried.append(n)
        return n

    assert first_success([1, 2, 3, 4], attempt, lambda r: r >= 2) == 2
    assert tried == [1, 2]


def test_first_success_reports_rejections() -> None:
    rejected = []

    def attempt(n):
        if n == 1:
            raise StrategyAttemptError("nope")
        return n

    result = first_success(
        [1, 2, 3], attempt, lambda r: r == 3,
        on_reject=lambda candidate, result, error: rejected.append((candidate, result, error is not None)),
    )
    assert result == 3
    assert rejected == [(1, None, True), (2, 2, False)]


def test_first_success_returns_none_when_exhausted() -> None:
    assert first_success([1, 2], lambda n: n, lambda r: False) is None


def test_first_success_propagates_unexpected_errors() -> None:
    def attempt(n):
        raise KeyError(n)

    with pytest.raises(KeyError):
        first_success([1], attempt, lambda r: True)


def test_cascade_accepts_first_smaller_output(fake_orchestrator, fake_source) -> None:
    calls = []
    strategies = [
        _stub(StrategyId.RENDER_RASTERIZE, StrategyAttemptError("render broke"), calls),
        _stub(StrategyId.VECTOR_EMBED, 6000, calls),
        _stub(StrategyId.CONTENT_SCALE, 2000, calls),
        _stub(StrategyId.PAGE_REMOVAL, 1000, calls),
    ]
    orchestrator = fake_orchestrator(strategies=strategies)

    outcome = orchestrator.compress(fake_source(size=5000), CompressionIntent.from_target_kb(1))

    assert outcome.state == OrchestratorState.ACCEPTED
    assert outcome.result.strategy_id == StrategyId.CONTENT_SCALE
    assert calls == [StrategyId.RENDER_RASTERIZE, StrategyId.VECTOR_EMBED, StrategyId.CONTENT_SCALE]
    assert outcome.attempted == calls
    assert len(outcome.rejections) == 2
    assert outcome.rejections[0].startswith("render_rasterize: render broke")
    assert not outcome.used_placeholder_fallback


def test_levels_skip_page_removing_strategies(fake_orchestrator, fake_source) -> None:
    calls = []
    strategies = [
        _stub(StrategyId.RENDER_RASTERIZE, 9000, calls),
        _stub(StrategyId.PAGE_REMOVAL, 100, calls, requires_target=True),
    ]
    orchestrator = fake_orchestrator(strategies=strategies, fallback=None)

    with pytest.raises(FileCompressionFailure) as exc_info:
        orchestrator.compress(fake_source(name="stubborn.pdf", size=5000), MEDIUM)

    assert calls == [StrategyId.RENDER_RASTERIZE]
    assert exc_info.value.message == 'Could not reduce "stubborn.pdf". Keeping the original file.'
    assert exc_info.value.file_name == "stubborn.pdf"


def test_minimal_fallback_for_unmet_target(fake_orchestrator, fake_source) -> None:
    calls = []
    strategies = [_stub(StrategyId.RENDER_RASTERIZE, 9000, calls)]
    fallback = _stub(StrategyId.MINIMAL_PLACEHOLDER, 500, calls, requires_target=True)
    orchestrator = fake_orchestrator(strategies=strategies, fallback=fallback)

    outcome = orchestrator.compress(fake_source(size=5000), CompressionIntent.from_target_kb(1))

    assert outcome.state == OrchestratorState.FALLBACK_MINIMAL
    assert outcome.used_placeholder_fallback
    assert outcome.result.strategy_id == StrategyId.MINIMAL_PLACEHOLDER
    assert calls == [StrategyId.RENDER_RASTERIZE, StrategyId.MINIMAL_PLACEHOLDER]


def test_no_fallback_for_levels(fake_orchestrator, fake_source) -> None:
    calls = []
    fallback = _stub(StrategyId.MINIMAL_PLACEHOLDER, 500, calls, requires_target=True)
    orchestrator = fake_orchestrator(strategies=[_stub(StrategyId.RENDER_RASTERIZE, 9000, calls)], fallback=fallback)

    with pytest.raises(FileCompressionFailure):
        orchestrator.compress(fake_source(size=5000), MEDIUM)
    assert StrategyId.MINIMAL_PLACEHOLDER not in calls


def test_no_fallback_when_target_exceeds_source(fake_orchestrator, fake_source) -> None:
    calls = []
    fallback = _stub(StrategyId.MINIMAL_PLACEHOLDER, 500, calls, requires_target=True)
    orchestrator = fake_orchestrator(strategies=[_stub(StrategyId.RENDER_RASTERIZE, 9000, calls)], fallback=fallback)

    with pytest.raises(FileCompressionFailure):
        orchestrator.compress(fake_source(size=5000), CompressionIntent.from_target_kb(10))
    assert calls == [StrategyId.RENDER_RASTERIZE]


def test_unexpected_handler_errors_count_as_rejections(fake_orchestrator, fake_source) -> None:
    calls = []
    strategies = [
        _stub(StrategyId.RENDER_RASTERIZE, RuntimeError("library crash"), calls),
        _stub(StrategyId.VECTOR_EMBED, 1000, calls),
    ]
    outcome = fake_orchestrator(strategies=strategies).compress(fake_source(size=5000), MEDIUM)

    assert outcome.result.strategy_id == StrategyId.VECTOR_EMBED
    assert "library crash" in outcome.rejections[0]


def test_probe_rejects_undecodable_input(fake_orchestrator) -> None:
    calls = []
    orchestrator = fake_orchestrator(strategies=[_stub(StrategyId.RENDER_RASTERIZE, 10, calls)])
    broken = SourceDocument(name="broken.pdf", data=b"%PDF-not really")

    with pytest.raises(FileCompressionFailure, match="broken.pdf"):
        orchestrator.compress(broken, CompressionIntent.from_target_kb(1))
    assert calls == []


def test_probe_rejects_documents_without_pages(fake_orchestrator, fake_source) -> None:
    with pytest.raises(FileCompressionFailure, match="has no pages"):
        fake_orchestrator().compress(fake_source(pages=0), MEDIUM)


def test_probe_records_page_count(fake_orchestrator, fake_source) -> None:
    calls = []
    outcome = fake_orchestrator(strategies=[_stub(StrategyId.RENDER_RASTERIZE, 100, calls)]).compress(
        fake_source(pages=6), MEDIUM
    )
    assert outcome.source.page_count == 6
    assert outcome.result.page_count == 6


def _sleepy_handler(marker: str, source, intent, context):
    Path(marker).write_text(str(os.getpid()))
    time.sleep(60)
    raise StrategyAttemptError("woke up")


def _after_sleepy_handler(marker: str, source, intent, context):
    """Succeeds only if the attempt recorded in *marker* is no longer running."""
    pid = int(Path(marker).read_text())
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        data = b"%PDF-" + b"x" * 95
        return CompressionAttemptResult(
            strategy_id=StrategyId.VECTOR_EMBED,
            output_bytes=data,
            output_size=len(data),
            succeeded=True,
            page_count=source.page_count,
        )
    raise StrategyAttemptError(f"attempt {pid} is still running")


def _broken_handler(source, intent, context):
    raise RuntimeError("render broke")


@pytest.mark.skipif(sys.platform == "win32", reason="checks process liveness with os.kill")
def test_timed_out_attempt_is_stopped_before_next_strategy(fake_orchestrator, fake_source, tmp_path) -> None:
    marker = str(tmp_path / "slow.pid")
    strategies = [
        CompressionStrategy(
            StrategyId.RENDER_RASTERIZE, StrategyFamily.RENDER, functools.partial(_sleepy_handler, marker), "slow"
        ),
        CompressionStrategy(
            StrategyId.VECTOR_EMBED, StrategyFamily.VECTOR_EMBED,
            functools.partial(_after_sleepy_handler, marker), "after slow",
        ),
    ]
    orchestrator = fake_orchestrator(strategies=strategies, config=CompressorConfig(attempt_timeout=5))

    outcome = orchestrator.compress(fake_source(size=5000), MEDIUM)

    assert outcome.result.strategy_id == StrategyId.VECTOR_EMBED
    assert outcome.rejections == ["render_rasterize: Timed out after 5s"]
    assert multiprocessing.active_children() == []


def test_timed_attempt_errors_are_rejections(fake_orchestrator, fake_source) -> None:
    strategies = [
        CompressionStrategy(StrategyId.RENDER_RASTERIZE, StrategyFamily.RENDER, _broken_handler, "broken"),
    ]
    orchestrator = fake_orchestrator(strategies=strategies, fallback=None, config=CompressorConfig(attempt_timeout=30))

    with pytest.raises(FileCompressionFailure):
        orchestrator.compress(fake_source(size=5000), MEDIUM)
    assert multiprocessing.active_children() == []


def test_probe_wraps_page_count_errors(fake_orchestrator, fake_codec, fake_source, monkeypatch) -> None:
    def page_count(doc):
        raise RuntimeError("xref table damaged")

    monkeypatch.setattr(fake_codec, "page_count", page_count)

    with pytest.raises(FileCompressionFailure, match="xref table damaged") as exc_info:
        fake_orchestrator().compress(fake_source(name="damaged.pdf"), MEDIUM)
    assert exc_info.value.file_name == "damaged.pdf"
    assert fake_codec.decoded[0].closed


def test_real_cascade_compresses_scanned_page(noise_pdf_bytes: bytes) -> None:
    source = SourceDocument(name="scan.pdf", data=noise_pdf_bytes)
    outcome = CompressionOrchestrator().compress(source, MEDIUM)

    assert outcome.result.strategy_id == StrategyId.RENDER_RASTERIZE
    assert outcome.result.output_size < source.size

    doc = fitz.open(stream=outcome.result.output_bytes, filetype="pdf")
    try:
        assert len(doc) == 1
        assert doc[0].rect.width == pytest.approx(612 * 0.7, abs=1)
        assert doc.metadata["title"] == "Noise Sample"
        assert doc.metadata["producer"] == "pdfshrink"
    finally:
        doc.close()


def test_real_cascade_removes_pages_for_tight_target(noise_pdf_pages: bytes) -> None:
    source = SourceDocument(name="scan.pdf", data=noise_pdf_pages)
    intent = CompressionIntent(target_bytes=source.size // 2)
    strategies = [
        s for s in CompressionOrchestrator().strategies if s.strategy_id == StrategyId.PAGE_REMOVAL
    ]
    outcome = CompressionOrchestrator(strategies=strategies, fallback=None).compress(source, intent)

    assert outcome.result.page_count == 2
    doc = fitz.open(stream=outcome.result.output_bytes, filetype="pdf")
    try:
        assert len(doc) == 2
        assert doc.metadata.get("title", "") == ""
    finally:
        doc.close()
