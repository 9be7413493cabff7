import asyncio
import logging
import shutil
import time
from pathlib import Path

from .interfaces import ConversionJob

logger = logging.getLogger(__name__)

UPLOADS = "uploads"
TEMP = "temp"
OUTPUT = "output"


class ArtifactLifecycle:
    """Owns the uploads/temp/output directories and every way files leave them.

    Job-driven cleanup (uploads after a terminal state, outputs shortly after
    delivery) is the primary path. The periodic sweep is a coarse, age-based
    safety net over output and temp that ignores job ownership entirely.
    """

    def __init__(
        self,
        base_dir: str,
        *,
        max_age: float = 3600,
        sweep_interval: float = 1800,
        purge_delay: float = 5,
    ) -> None:
        self._base = Path(base_dir).resolve()
        self.max_age = max_age
        self.sweep_interval = sweep_interval
        self.purge_delay = purge_delay
        self._task: asyncio.Task | None = None

    @property
    def uploads_dir(self) -> Path:
        return self._base / UPLOADS

    @property
    def temp_dir(self) -> Path:
        return self._base / TEMP

    @property
    def output_dir(self) -> Path:
        return self._base / OUTPUT

    def ensure_directories(self) -> None:
        for d in (self.uploads_dir, self.temp_dir, self.output_dir):
            d.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def remove(path: str | Path) -> bool:
        """Delete a file or directory; returns False if it was already gone."""
        p = Path(path)
        try:
            if p.is_dir() and not p.is_symlink():
                shutil.rmtree(p)
            else:
                p.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("could not delete %s: %s", p, e)
            return False

    def discard_upload(self, job: ConversionJob) -> None:
        if self.remove(job.input_path):
            logger.debug("removed upload %s", job.input_path)

    def schedule_removal(self, path: str | Path, delay: float | None = None) -> asyncio.TimerHandle:
        """Delete path after a delay on the running loop. No retry."""
        wait = self.purge_delay if delay is None else delay
        loop = asyncio.get_running_loop()
        return loop.call_later(wait, self.remove, path)

    def sweep(self, now: float | None = None) -> list[Path]:
        current = time.time() if now is None else now
        removed: list[Path] = []
        for d in (self.output_dir, self.temp_dir):
            if not d.exists():
                continue
            for entry in d.iterdir():
                try:
                    age = current - entry.stat().st_mtime
                except FileNotFoundError:
                    continue
                if age > self.max_age and self.remove(entry):
                    removed.append(entry)
        if removed:
            logger.info("sweep removed %d stale file(s)", len(removed))
        return removed

    async def start(self) -> None:
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("sweep failed")
