from __future__ import annotations
import shutil
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from .config import PipelineConfig
from .errors import ArchiveFailed
from .models import ArchiveResult
from .utils import get_logger

logger = get_logger("archive")


def resolve_archive_path(archive_root: Path, name: str) -> Path:
    base = archive_root / name
    if not base.exists():
        return base
    stamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-").replace("+", "-")
    candidate = archive_root / f"{name}-{stamp}"
    i = 2
    while candidate.exists():
        candidate = archive_root / f"{name}-{stamp}-{i}"
        i += 1
    return candidate


def archive_run_folder(run_folder: Path, config: PipelineConfig) -> Path:
    if Path(run_folder).resolve() == Path(config.draft_image_root).resolve():
        raise ArchiveFailed("Run folder is the draft image root; refusing to archive it.")
    archive_root = run_folder.parent / config.archive_dir_name
    try:
        archive_root.mkdir(parents=True, exist_ok=True)
        dest = resolve_archive_path(archive_root, run_folder.name)
        shutil.copytree(run_folder, dest)
    except OSError as e:
        raise ArchiveFailed(str(e)) from e
    return dest


def _archive_one(run_folder: Path, config: PipelineConfig) -> ArchiveResult:
    try:
        dest = archive_run_folder(run_folder, config)
    except ArchiveFailed as e:
        logger.warning("Archive failed for %s: %s", run_folder, e.message)
        return ArchiveResult(run_folder=str(run_folder), archived=False, error=e.message)
    logger.info("Archived %s -> %s", run_folder, dest)
    return ArchiveResult(run_folder=str(run_folder), archived=True, archive_path=str(dest))


def archive_run_folders(run_folders: Dict[Path, List[str]], config: PipelineConfig) -> List[ArchiveResult]:
    if not run_folders:
        return []
    with ThreadPoolExecutor(max_workers=max(1, config.workers)) as pool:
        return list(pool.map(lambda folder: _archive_one(folder, config), run_folders))
