import io
import random
from pathlib import Path
from typing import Callable

import fitz
import pytest
from PIL import Image

from pdfshrink import CompressionOrchestrator, CompressorConfig, SourceDocument

from tests.fakes import FakeImageCodec, FakePdfCodec, fake_pdf_bytes


def _noise_png(size: int, seed: int) -> bytes:
    # Random pixels do not compress losslessly, so the PDF stays large
    pixels = random.Random(seed).randbytes(size * size * 3)
    image = Image.frombytes("RGB", (size, size), pixels)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def build_noise_pdf(pages: int = 1, image_size: int = 800) -> bytes:
    doc = fitz.open()
    for n in range(pages):
        page = doc.new_page(width=612, height=792)
        page.insert_image(page.rect, stream=_noise_png(image_size, seed=n))
        page.insert_text((72, 72), f"Noise page {n + 1}", fontsize=14)
    doc.set_metadata({"title": "Noise Sample", "author": "pdfshrink tests"})
    data = doc.tobytes()
    doc.close()
    return data


def build_text_pdf(pages: int = 3) -> bytes:
    doc = fitz.open()
    for n in range(pages):
        page = doc.new_page(width=612, height=792)
        page.insert_text((72, 72), f"Hello from page {n + 1}", fontsize=14)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture(scope="session")
def noise_pdf_bytes() -> bytes:
    return build_noise_pdf(pages=1)


@pytest.fixture(scope="session")
def noise_pdf_pages() -> bytes:
    return build_noise_pdf(pages=4)


@pytest.fixture()
def noise_pdf(tmp_path: Path, noise_pdf_bytes: bytes) -> Path:
    path = tmp_path / "noise.pdf"
    path.write_bytes(noise_pdf_bytes)
    return path


@pytest.fixture()
def text_pdf(tmp_path: Path) -> Path:
    path = tmp_path / "text.pdf"
    path.write_bytes(build_text_pdf())
    return path


@pytest.fixture()
def fake_codec() -> FakePdfCodec:
    return FakePdfCodec()


@pytest.fixture()
def fake_images() -> FakeImageCodec:
    return FakeImageCodec()


@pytest.fixture()
def fake_source() -> Callable[..., SourceDocument]:
    def _create(name: str = "doc.pdf", pages: int = 3, size: int = 5000) -> SourceDocument:
        return SourceDocument(name=name, data=fake_pdf_bytes(pages, size))

    return _create


@pytest.fixture()
def fake_orchestrator(fake_codec: FakePdfCodec, fake_images: FakeImageCodec):
    def _create(**kwargs) -> CompressionOrchestrator:
        config = kwargs.pop("config", None) or CompressorConfig()
        return CompressionOrchestrator(fake_codec, fake_images, config=config, **kwargs)

    return _create
