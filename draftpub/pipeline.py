from __future__ import annotations
import os
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .archive import archive_run_folders
from .config import PipelineConfig, check_config
from .errors import MediaIngestFailed, PublishError, PublishInProgress
from .images import gate
from .importer import finalize_status, run_import_procedures
from .ingest import MediaIngestPort, SubprocessMediaIngest
from .models import PublishResponse, PublishStep
from .mover import clean_run_folders, move_folders
from .selector import select_drafts
from .staging import load_staging
from .store import DraftStore
from .utils import get_logger

logger = get_logger("pipeline")


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class PipelineLock:
    """One publish run at a time: a process-wide lock plus a lock file shared with other processes."""

    _thread_lock = threading.Lock()

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def __enter__(self) -> "PipelineLock":
        if not self._thread_lock.acquire(blocking=False):
            raise PublishInProgress("A publish run is already in progress.")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            self._thread_lock.release()
            raise PublishInProgress(
                f"Another publish run appears to be in progress (lock file present). "
                f"If no run is active, delete: {self.path}"
            )
        except OSError:
            self._thread_lock.release()
            raise
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()} @ {utcnow()}")
        return self

    def __exit__(self, *exc: Any) -> None:
        try:
            if self.path.exists():
                self.path.unlink()
        finally:
            self._thread_lock.release()


class PublishPipeline:
    def __init__(self, config: PipelineConfig, store: Optional[DraftStore] = None, ingest: Optional[MediaIngestPort] = None) -> None:
        self.config = config
        self.store = store or DraftStore(config.db_path)
        self.ingest = ingest or SubprocessMediaIngest(config)

    def publish(self, spus: Optional[Sequence[object]] = None, publish_all: bool = False) -> PublishResponse:
        check_config(self.config)
        with PipelineLock(self.config.lock_path):
            return self._run(spus, publish_all)

    def _record(self, steps: List[PublishStep]) -> None:
        try:
            self.store.record_steps(steps)
        except sqlite3.Error as e:
            logger.warning("Could not write step log: %s", e)

    def _record_all(self, run_id: str, spus: List[str], stage: str, ok: bool = True, detail: Optional[str] = None) -> None:
        self._record([PublishStep(run_id=run_id, spu=spu, stage=stage, ok=ok, detail=detail) for spu in spus])

    def _stage(self, run_id: str, spus: List[str], stage: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            result = fn(*args)
        except PublishError as e:
            self._record_all(run_id, spus, stage, ok=False, detail=e.message)
            raise
        self._record_all(run_id, spus, stage)
        return result

    def _run(self, spus: Optional[Sequence[object]], publish_all: bool) -> PublishResponse:
        run_id = uuid.uuid4().hex[:12]
        now = utcnow()

        # Everything up to the import can fail without leaving anything to undo
        selection = select_drafts(self.store, spus, publish_all)
        spu_list = selection.spus
        logger.info("Publish run %s started for %d SPU(s)", run_id, len(spu_list))
        run_folders = gate(selection.products, self.config)
        archived = archive_run_folders(run_folders, self.config)
        staged = self._stage(run_id, spu_list, "staged", load_staging, self.store, selection, self.config, now)
        self._stage(run_id, spu_list, "imported", run_import_procedures, self.store, spu_list)

        # From here on files move; failures are per SPU and nothing is rolled back
        moved = move_folders(selection.products, self.config)
        self._record([PublishStep(run_id=run_id, spu=m.spu, stage="moved", ok=m.moved, detail=m.error) for m in moved])

        result = self.ingest.ingest(spu_list)
        self._record_all(run_id, spu_list, "ingested", ok=result.ok, detail=result.error)
        if not result.ok:
            logger.error("Media ingest failed for run %s; moved folders stay in %s", run_id, self.config.live_image_root)
            raise MediaIngestFailed(result.error or "Media ingest failed.")

        removal_errors = clean_run_folders(run_folders, moved, self.config)
        for entry in archived:
            error = removal_errors.get(Path(entry.run_folder))
            if error:
                entry.error = error

        self._stage(run_id, spu_list, "published", finalize_status, self.store, spu_list, now)
        logger.info("Publish run %s finished", run_id)
        return PublishResponse(run_id=run_id, spus=spu_list, staged=staged, moved=moved, archived=archived)


def publish_request(pipeline: PublishPipeline, payload: Any) -> Tuple[int, Dict[str, Any]]:
    """Handle a `{spus, publishAll}` request and return (status code, JSON body)."""
    body = payload if isinstance(payload, dict) else {}
    spus = body.get("spus")
    spus = spus if isinstance(spus, list) else []
    try:
        response = pipeline.publish(spus, bool(body.get("publishAll")))
    except PublishError as e:
        log = logger.warning if e.status_code < 500 else logger.error
        log("Publish failed (%s): %s", e.status_code, e.message)
        return e.status_code, e.to_payload()
    return 200, response.to_payload()
