import logging
from pathlib import Path
from typing import Sequence

from .interfaces import ConversionResult, Failure, Renderer, Success
from .lifecycle import ArtifactLifecycle

logger = logging.getLogger(__name__)


class FallbackOrchestrator:
    """Try each renderer in a fixed order until one yields a usable PDF.

    Renderers run strictly one after another. The order never depends on the
    input type. Only the last failure's message is reported when every
    renderer fails, and no output file is left behind in that case.
    """

    def __init__(self, renderers: Sequence[Renderer]) -> None:
        if not renderers:
            raise ValueError("at least one renderer is required")
        self._renderers = list(renderers)

    @property
    def strategy(self) -> tuple[str, ...]:
        return tuple(r.name for r in self._renderers)

    def convert(self, input_path: str, output_path: str) -> ConversionResult:
        result: ConversionResult = Failure("no renderer attempted")
        for renderer in self._renderers:
            result = self._attempt(renderer, input_path, output_path)
            if result.ok:
                logger.info("converted %s with %s (%d bytes)", Path(input_path).name, renderer.name, result.size_bytes)
                return result
            logger.warning("%s failed for %s: %s", renderer.name, Path(input_path).name, result.reason)
            ArtifactLifecycle.remove(output_path)
        return result

    @staticmethod
    def _attempt(renderer: Renderer, input_path: str, output_path: str) -> ConversionResult:
        try:
            renderer.render(input_path, output_path)
        except Exception as e:
            return Failure(str(e) or type(e).__name__)
        out = Path(output_path)
        # Renderers may return cleanly without writing anything
        if not out.is_file() or out.stat().st_size == 0:
            return Failure(f"{renderer.name} produced no output")
        return Success(output_path=str(out), size_bytes=out.stat().st_size, strategy=renderer.name)
