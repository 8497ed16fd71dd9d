import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest


def pytest_sessionstart(session):
    # Make the draftpub package importable when pytest runs from the repo root
    project_root = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.abspath(os.path.join(project_root, os.pardir))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


class StubIngest:
    """In-memory media ingest: records calls, returns a fixed result."""

    def __init__(self, ok: bool = True, error: Optional[str] = None, code: Optional[int] = None) -> None:
        self.ok = ok
        self.error = error
        self.code = code
        self.calls: List[List[str]] = []

    def ingest(self, spus):
        from draftpub.ingest import IngestResult
        self.calls.append(list(spus))
        return IngestResult(ok=self.ok, code=self.code if self.code is not None else (0 if self.ok else 1), error=self.error)


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    (root / "drafts").mkdir(parents=True)
    return root


@pytest.fixture
def config(tmp_path: Path, media_root: Path):
    from draftpub.config import PipelineConfig
    return PipelineConfig(
        db_path=tmp_path / "draftpub.db",
        draft_image_root=media_root,
        live_image_root=tmp_path / "live",
        catalog_image_root=tmp_path / "catalog",
        media_ingest_script=tmp_path / "ingest.py",
        media_ingest_interpreter=sys.executable,
        media_ingest_timeout=30,
        workers=2,
    )


@pytest.fixture
def store(config):
    from draftpub.store import DraftStore, init_db
    init_db(config.db_path)
    return DraftStore(config.db_path)


@pytest.fixture
def stub_ingest() -> StubIngest:
    return StubIngest()


def make_folder(media_root: Path, run: str, spu: str, names: List[str]) -> str:
    """Create draft image files for an SPU and return its image_folder value."""
    folder = media_root / "drafts" / run / spu
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_bytes(b"\xff\xd8fake-image")
    return f"drafts/{run}/{spu}"


def add_draft(store, spu: str, image_folder: Optional[str] = None, variants: Optional[List[Dict]] = None, raw_row: Optional[Dict] = None, **fields):
    from draftpub.models import DraftProduct, DraftVariant
    store.add_draft_product(DraftProduct(spu=spu, title=f"Product {spu}", image_folder=image_folder, raw_row=raw_row, **fields))
    for variant in variants or []:
        store.add_draft_variant(DraftVariant(spu=spu, **variant))
