from __future__ import annotations
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import PipelineConfig
from .errors import ImageValidationFailed
from .models import DraftProduct, ImageIssue
from .utils import get_logger

logger = get_logger("images")

IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp"}
TAGS = {"MAIN", "ENV"}
_SEPARATORS = re.compile(r"[-_\s.]+")


@dataclass
class FolderCheck:
    count: int = 0
    mains: List[str] = field(default_factory=list)
    invalid_prefixes: List[str] = field(default_factory=list)


def is_image_file(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMAGE_EXTS


def list_images(folder: Path) -> List[Path]:
    return sorted((p for p in folder.iterdir() if is_image_file(p)), key=lambda p: p.name)


def has_tag(name: str, tag: str) -> bool:
    stem = os.path.splitext(name)[0]
    return tag.upper() in {t.upper() for t in _SEPARATORS.split(stem) if t}


def resolve_draft_folder(value: str, draft_root: Path) -> Optional[Path]:
    """Resolve an image_folder value; None when it escapes the draft root."""
    root = Path(draft_root).resolve()
    if os.path.isabs(value):
        candidate = Path(value)
    else:
        candidate = root / value.lstrip("/")
    resolved = candidate.resolve()
    if resolved == root or root not in resolved.parents:
        return None
    return resolved


def canonical_name(name: str, spu: str) -> Optional[str]:
    """Canonical file name for an image of `spu`, or None if the file is not prefixed with it."""
    stem, ext = os.path.splitext(name)
    if stem.upper() == spu.upper():
        tokens = ["1"]
    elif stem.upper().startswith(spu.upper()) and stem[len(spu)] in "-_ .":
        tokens = [t for t in _SEPARATORS.split(stem[len(spu) + 1:]) if t] or ["1"]
    else:
        return None
    tokens = [t.upper() if t.upper() in TAGS else t for t in tokens]
    return f"{spu}-{'-'.join(tokens)}{ext}"


def ensure_unique(folder: Path, base: str, ext: str) -> Path:
    candidate = folder / f"{base}{ext}"
    i = 2
    while candidate.exists():
        candidate = folder / f"{base}-{i}{ext}"
        i += 1
    return candidate


def _same_file(a: Path, b: Path) -> bool:
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False


def normalize_image_names(folder: Path, spu: str) -> int:
    """Rename SPU images to `{SPU}-{serial}[-MAIN][-ENV]`. Returns the number of renames."""
    renamed = 0
    for path in list_images(folder):
        target_name = canonical_name(path.name, spu)
        if not target_name or target_name == path.name:
            continue
        target = folder / target_name
        if target.exists() and not _same_file(path, target):
            stem, ext = os.path.splitext(target_name)
            target = ensure_unique(folder, stem, ext)
        logger.info("Renaming %s -> %s", path.name, target.name)
        path.rename(target)
        renamed += 1
    return renamed


def validate_image_folder(folder: Path, spu: str) -> FolderCheck:
    images = [p.name for p in list_images(folder)]
    prefix = f"{spu.upper()}-"
    return FolderCheck(
        count=len(images),
        mains=[n for n in images if has_tag(n, "MAIN")],
        invalid_prefixes=[n for n in images if not n.upper().startswith(prefix)],
    )


def check_product_folder(spu: str, folder: Path) -> Optional[ImageIssue]:
    if not folder.is_dir():
        return ImageIssue(spu=spu, folder=str(folder), error="Draft folder missing.")
    try:
        normalize_image_names(folder, spu)
        check = validate_image_folder(folder, spu)
    except OSError as e:
        return ImageIssue(spu=spu, folder=str(folder), error=str(e))
    if check.count == 0:
        return None
    if len(check.mains) == 1 and not check.invalid_prefixes:
        return None
    return ImageIssue(
        spu=spu,
        folder=str(folder),
        missing_main=True if not check.mains else None,
        multiple_main=check.mains if len(check.mains) > 1 else None,
        invalid_prefixes=check.invalid_prefixes or None,
    )


def validate_folders(products: List[DraftProduct], config: PipelineConfig) -> Tuple[List[ImageIssue], Dict[Path, List[str]]]:
    issues: Dict[str, ImageIssue] = {}
    resolved: Dict[str, Path] = {}
    owners: Dict[Path, str] = {}
    for product in products:
        if not product.image_folder or not product.spu:
            continue
        folder = resolve_draft_folder(product.image_folder, config.draft_image_root)
        if folder is None:
            issues[product.spu] = ImageIssue(spu=product.spu, folder=product.image_folder, error="Invalid draft folder path.")
        elif folder in owners:
            issues[product.spu] = ImageIssue(spu=product.spu, folder=str(folder), error="Draft folder is shared with another SPU.")
        else:
            owners[folder] = product.spu
            resolved[product.spu] = folder

    with ThreadPoolExecutor(max_workers=max(1, config.workers)) as pool:
        results = list(pool.map(lambda item: check_product_folder(*item), resolved.items()))
    for spu, issue in zip(resolved, results):
        if issue is not None:
            issues[spu] = issue

    run_folders: Dict[Path, List[str]] = {}
    for spu, folder in resolved.items():
        run_folders.setdefault(folder.parent, []).append(spu)
    ordered = [issues[p.spu] for p in products if p.spu in issues]
    return ordered, run_folders


def gate(products: List[DraftProduct], config: PipelineConfig) -> Dict[Path, List[str]]:
    """Validate every folder; raise ImageValidationFailed if any SPU has an issue."""
    issues, run_folders = validate_folders(products, config)
    if issues:
        for issue in issues:
            logger.warning("Image folder issue for %s: %s", issue.spu, issue.model_dump(by_alias=True, exclude_none=True))
        raise ImageValidationFailed(
            "Some draft image folders are missing required naming structure. Please resolve and retry.",
            issues=[i.model_dump(by_alias=True, exclude_none=True) for i in issues],
        )
    logger.info("Image folders valid for %d SPU(s) in %d run folder(s)", sum(map(len, run_folders.values())), len(run_folders))
    return run_folders
