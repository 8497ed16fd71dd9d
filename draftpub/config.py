from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

@dataclass
class PipelineConfig:
    db_path: Path
    draft_image_root: Path
    live_image_root: Path
    catalog_image_root: Path
    media_ingest_script: Path
    media_ingest_interpreter: Optional[str] = "node"
    media_ingest_timeout: float = 900.0
    archive_dir_name: str = "Draft Archive"
    staging_batch_size: int = 200
    workers: int = 4
    lock_path: Optional[Path] = None
    default_tax_code: str = "HST20"
    default_country_of_origin: str = "CN"

    def __post_init__(self) -> None:
        if self.lock_path is None:
            self.lock_path = Path(f"{self.db_path}.publish.lock")


def get_config() -> PipelineConfig:
    db_path = Path(os.getenv("DB_PATH", "draftpub.db"))
    lock_path = os.getenv("PUBLISH_LOCK_PATH")
    return PipelineConfig(
        db_path=db_path,
        draft_image_root=Path(os.getenv("DRAFT_IMAGE_ROOT", "/srv/resources/media")),
        live_image_root=Path(os.getenv("LIVE_IMAGE_ROOT", "/srv/resources/media/images/new-nd-catalog")),
        catalog_image_root=Path(os.getenv("CATALOG_IMAGE_ROOT", "/srv/resources/media/images/catalog")),
        media_ingest_script=Path(
            os.getenv("MEDIA_INGEST_SCRIPT", "/srv/shopify-sync/api/scripts/ingest-media-library.mjs")
        ),
        media_ingest_interpreter=os.getenv("MEDIA_INGEST_INTERPRETER", "node") or None,
        media_ingest_timeout=float(os.getenv("MEDIA_INGEST_TIMEOUT", "900")),
        archive_dir_name=os.getenv("ARCHIVE_DIR_NAME", "Draft Archive"),
        staging_batch_size=int(os.getenv("STAGING_BATCH_SIZE", "200")),
        workers=int(os.getenv("PUBLISH_WORKERS", "4")),
        lock_path=Path(lock_path) if lock_path else None,
        default_tax_code=os.getenv("DEFAULT_TAX_CODE", "HST20"),
        default_country_of_origin=os.getenv("DEFAULT_COUNTRY_OF_ORIGIN", "CN"),
    )


def check_config(config: PipelineConfig) -> None:
    if not Path(config.db_path).exists():
        raise ConfigurationError(f"Catalog database not found: {config.db_path} (run init-db first).")
    if not Path(config.draft_image_root).is_dir():
        raise ConfigurationError(f"Draft image root does not exist: {config.draft_image_root}")
