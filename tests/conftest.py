"""Shared test fixtures: fake renderers standing in for the external engines."""

from pathlib import Path

import pytest

from pdf_converter.conversion import ArtifactLifecycle


class FakeRenderer:
    """Writes a small PDF-looking payload tagged with its own name."""

    def __init__(self, name: str):
        self.name = name
        self.calls: list[tuple[str, str]] = []

    def render(self, input_path: str, output_path: str) -> None:
        self.calls.append((input_path, output_path))
        Path(output_path).write_bytes(f"%PDF-1.4 rendered by {self.name}".encode())


class FailingRenderer(FakeRenderer):
    def __init__(self, name: str, message: str = "engine crashed", *, partial: bool = False):
        super().__init__(name)
        self.message = message
        self.partial = partial

    def render(self, input_path: str, output_path: str) -> None:
        self.calls.append((input_path, output_path))
        if self.partial:
            Path(output_path).write_bytes(b"%PDF-1.4 trunc")
        raise RuntimeError(self.message)


class EmptyRenderer(FakeRenderer):
    def render(self, input_path: str, output_path: str) -> None:
        self.calls.append((input_path, output_path))
        Path(output_path).write_bytes(b"")


class SilentRenderer(FakeRenderer):
    def render(self, input_path: str, output_path: str) -> None:
        self.calls.append((input_path, output_path))


@pytest.fixture
def lifecycle(tmp_path):
    lc = ArtifactLifecycle(str(tmp_path), purge_delay=0.01)
    lc.ensure_directories()
    return lc


@pytest.fixture
def sample_input(lifecycle):
    path = lifecycle.uploads_dir / "0000-report.txt"
    path.write_text("Quarterly report\nRevenue up\n", encoding="utf-8")
    return path


@pytest.fixture
def output_path(lifecycle):
    return lifecycle.output_dir / "converted-test.pdf"
