from __future__ import annotations
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

from .config import PipelineConfig
from .utils import get_logger

logger = get_logger("ingest")

STDERR_TAIL = 600


@dataclass
class IngestResult:
    ok: bool
    code: Optional[int] = None
    error: Optional[str] = None
    skipped: bool = False


class MediaIngestPort(Protocol):
    def ingest(self, spus: List[str]) -> IngestResult:
        ...


class SubprocessMediaIngest:
    """Runs the media library script that republishes moved images."""

    def __init__(self, config: PipelineConfig) -> None:
        self.script = Path(config.media_ingest_script)
        self.interpreter = config.media_ingest_interpreter
        self.timeout = config.media_ingest_timeout
        self.source = Path(config.live_image_root)
        self.dest = Path(config.catalog_image_root)

    def command(self, spus: List[str]) -> List[str]:
        argv = [self.interpreter] if self.interpreter else []
        argv += [str(self.script), "--source", str(self.source), "--dest", str(self.dest), "--spu", ",".join(spus)]
        return argv

    def ingest(self, spus: List[str]) -> IngestResult:
        if not spus:
            return IngestResult(ok=True, skipped=True)
        if not self.script.exists():
            return IngestResult(ok=False, error="Media library script not found.")
        argv = self.command(spus)
        logger.info("Running media ingest for %d SPU(s): %s", len(spus), self.script)
        try:
            cp = subprocess.run(
                argv,
                stdin=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return IngestResult(ok=False, error=f"Media ingest timed out after {self.timeout:g}s.")
        except OSError as e:
            return IngestResult(ok=False, error=str(e))
        if cp.returncode == 0:
            return IngestResult(ok=True, code=0)
        return IngestResult(ok=False, code=cp.returncode, error=(cp.stderr or "")[-STDERR_TAIL:] or "Media ingest failed.")
