from __future__ import annotations
import errno
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List

from .config import PipelineConfig
from .errors import FileMoveFailed
from .images import resolve_draft_folder
from .models import DraftProduct, MoveResult
from .utils import get_logger

logger = get_logger("mover")


def move_or_copy(src: Path, dst: Path) -> None:
    """Move a folder, replacing `dst`. Falls back to copy + delete across filesystems."""
    if dst.exists():
        shutil.rmtree(dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.rename(src, dst)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
    logger.info("Cross-device move, copying %s -> %s", src, dst)
    shutil.copytree(src, dst)
    shutil.rmtree(src)


def live_destination(spu: str, config: PipelineConfig) -> Path:
    if not spu or spu in (".", "..") or "/" in spu or "\\" in spu:
        raise FileMoveFailed("Invalid SPU for destination path.")
    return Path(config.live_image_root) / spu


def move_product_folder(product: DraftProduct, config: PipelineConfig) -> Path:
    if not product.image_folder:
        raise FileMoveFailed("No folder.")
    src = resolve_draft_folder(product.image_folder, config.draft_image_root)
    if src is None or not src.exists():
        raise FileMoveFailed("Draft folder missing.")
    dest = live_destination(product.spu, config)
    try:
        move_or_copy(src, dest)
    except OSError as e:
        raise FileMoveFailed(str(e)) from e
    return dest


def _move_one(product: DraftProduct, config: PipelineConfig) -> MoveResult:
    try:
        dest = move_product_folder(product, config)
    except FileMoveFailed as e:
        logger.warning("Move failed for %s: %s", product.spu, e.message)
        return MoveResult(spu=product.spu, moved=False, error=e.message)
    logger.info("Moved %s -> %s", product.spu, dest)
    return MoveResult(spu=product.spu, moved=True)


def move_folders(products: List[DraftProduct], config: PipelineConfig) -> List[MoveResult]:
    with ThreadPoolExecutor(max_workers=max(1, config.workers)) as pool:
        return list(pool.map(lambda p: _move_one(p, config), products))


def clean_run_folders(run_folders: Dict[Path, List[str]], moved: List[MoveResult], config: PipelineConfig) -> Dict[Path, str]:
    """Delete run folders whose SPUs all moved. Returns removal errors by run folder.

    A folder that still holds subfolders (SPU folders of drafts outside this run) is
    kept even when every SPU in it moved.
    """
    moved_by_spu = {m.spu: m.moved for m in moved}
    draft_root = Path(config.draft_image_root).resolve()
    errors: Dict[Path, str] = {}
    for run_folder, spus in run_folders.items():
        if not all(moved_by_spu.get(spu) for spu in spus):
            logger.info("Keeping %s: not every SPU moved", run_folder)
            continue
        if run_folder.resolve() == draft_root:
            continue
        if not run_folder.exists():
            continue
        # SPU folders of drafts outside this run can share the run folder
        leftovers = [p.name for p in run_folder.iterdir() if p.is_dir()]
        if leftovers:
            logger.info("Keeping %s: still holds %s", run_folder, ", ".join(sorted(leftovers)))
            continue
        try:
            shutil.rmtree(run_folder)
        except OSError as e:
            logger.warning("Could not remove run folder %s: %s", run_folder, e)
            errors[run_folder] = str(e)
            continue
        logger.info("Removed run folder %s", run_folder)
    return errors
