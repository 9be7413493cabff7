"""
Domain layer for PDF conversion.
Provides the renderer contract, the fallback orchestrator, artifact lifecycle
management and a service tying them together so front-ends (HTTP or others)
can use the same core logic.
"""

from .interfaces import (
    ConversionJob,
    ConversionResult,
    Failure,
    Renderer,
    RenderError,
    Strategy,
    Success,
    UnsupportedSource,
    UploadRejected,
)
from .lifecycle import ArtifactLifecycle
from .orchestrator import FallbackOrchestrator
from .service import ConversionService
