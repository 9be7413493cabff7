from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union


class Strategy:
    LIBREOFFICE = "libreoffice"
    BROWSER = "browser"
    MINIMAL = "minimal"

    ORDER = (LIBREOFFICE, BROWSER, MINIMAL)


class RenderError(RuntimeError):
    """Hard failure of a rendering engine."""


class UnsupportedSource(RenderError):
    """The source document cannot be turned into markup."""


class UploadRejected(ValueError):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class Renderer(Protocol):
    name: str

    def render(self, input_path: str, output_path: str) -> None:
        """Write a PDF for input_path at output_path or raise.
        This is a blocking call; callers should offload to threads if needed.
        """


@dataclass(frozen=True)
class Success:
    output_path: str
    size_bytes: int
    strategy: str

    ok = True


@dataclass(frozen=True)
class Failure:
    reason: str

    ok = False


ConversionResult = Union[Success, Failure]


@dataclass
class ConversionJob:
    job_id: str
    input_path: str
    original_name: str
    output_path: str
    strategy: str | None = None

    @property
    def converted_name(self) -> str:
        return Path(self.output_path).name
