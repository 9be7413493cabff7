import logging
import os
import shutil
import subprocess
import tempfile
import uuid
from pathlib import Path

from .interfaces import Renderer, RenderError, Strategy
from .lifecycle import ArtifactLifecycle
from .markup import document_to_html, strip_markup, wrap_document

logger = logging.getLogger(__name__)

A4_POINTS = (595.28, 841.89)
TEXT_X = 50
TEXT_TOP = 800
TEXT_FLOOR = 50
LINE_HEIGHT = 14
FONT_SIZE = 12
MAX_LINES = int((TEXT_TOP - TEXT_FLOOR) // LINE_HEIGHT)


class LibreOfficeRenderer(Renderer):
    name = Strategy.LIBREOFFICE

    def __init__(self, scratch_dir: str, *, binary: str = "soffice", timeout: float = 120) -> None:
        self._scratch = Path(scratch_dir)
        self._binary = binary
        self._timeout = timeout

    def render(self, input_path: str, output_path: str) -> None:
        self._scratch.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix="lo-", dir=self._scratch))
        try:
            out_dir = workdir / "out"
            profile = workdir / "profile"
            out_dir.mkdir()
            profile.mkdir()
            # Private profile per call, concurrent soffice instances lock a shared one
            cmd = [
                self._binary,
                "--headless",
                "--nologo",
                "--nolockcheck",
                "--nodefault",
                "--norestore",
                f"-env:UserInstallation={profile.as_uri()}",
                "--convert-to", "pdf",
                "--outdir", str(out_dir),
                str(input_path),
            ]
            try:
                proc = subprocess.run(
                    cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, timeout=self._timeout
                )
            except FileNotFoundError as e:
                raise RenderError(f"LibreOffice binary not found: {self._binary}") from e
            except subprocess.TimeoutExpired as e:
                raise RenderError(f"LibreOffice timed out after {self._timeout}s") from e
            if proc.returncode != 0:
                raise RenderError(f"LibreOffice exited with {proc.returncode}: {proc.stderr.strip()[-500:]}")

            produced = out_dir / (Path(input_path).stem + ".pdf")
            if not produced.exists() or produced.stat().st_size == 0:
                raise RenderError("LibreOffice returned no output")
            shutil.move(str(produced), output_path)
        finally:
            ArtifactLifecycle.remove(workdir)


class BrowserRenderer(Renderer):
    """Styled HTML printed to A4 by headless Chromium.

    The source is first turned into markup and written to a scratch HTML file
    under temp/, which the browser loads over file://. Relative references in
    the source do not survive the move. The page is printed once network
    activity has gone idle. The scratch file is always removed before
    returning.
    """

    name = Strategy.BROWSER

    def __init__(self, scratch_dir: str, *, timeout: float = 30) -> None:
        self._scratch = Path(scratch_dir)
        self._timeout = timeout

    def render(self, input_path: str, output_path: str) -> None:
        body = document_to_html(input_path)
        self._scratch.mkdir(parents=True, exist_ok=True)
        html_path = self._scratch / f"temp-{uuid.uuid4()}.html"
        try:
            html_path.write_text(wrap_document(body), encoding="utf-8")
            pdf = self._print(html_path)
            Path(output_path).write_bytes(pdf)
        finally:
            ArtifactLifecycle.remove(html_path)

    def _print(self, html_path: Path) -> bytes:
        from playwright.sync_api import sync_playwright

        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True, args=["--no-sandbox", "--disable-setuid-sandbox"])
            try:
                page = browser.new_page()
                page.goto(html_path.resolve().as_uri(), wait_until="networkidle", timeout=self._timeout * 1000)
                return page.pdf(
                    format="A4",
                    print_background=True,
                    margin={"top": "20mm", "right": "20mm", "bottom": "20mm", "left": "20mm"},
                )
            finally:
                browser.close()


def layout_lines(text: str) -> list[tuple[float, str]]:
    """Place lines top-down on one page, dropping whatever does not fit."""
    lines = text.splitlines()
    kept = lines[:MAX_LINES]
    if len(lines) > len(kept):
        logger.warning("minimal renderer dropped %d line(s) past the page floor", len(lines) - len(kept))
    return [(TEXT_TOP - i * LINE_HEIGHT, line) for i, line in enumerate(kept)]


class MinimalRenderer(Renderer):
    name = Strategy.MINIMAL

    def render(self, input_path: str, output_path: str) -> None:
        from reportlab.pdfgen import canvas

        text = strip_markup(document_to_html(input_path))
        pdf = canvas.Canvas(os.fspath(output_path), pagesize=A4_POINTS)
        pdf.setFont("Helvetica", FONT_SIZE)
        for y, line in layout_lines(text):
            pdf.drawString(TEXT_X, y, line)
        pdf.showPage()
        pdf.save()


def default_renderers(
    scratch_dir: str,
    *,
    soffice_bin: str = "soffice",
    soffice_timeout: float = 120,
    browser_timeout: float = 30,
) -> list[Renderer]:
    return [
        LibreOfficeRenderer(scratch_dir, binary=soffice_bin, timeout=soffice_timeout),
        BrowserRenderer(scratch_dir, timeout=browser_timeout),
        MinimalRenderer(),
    ]
