from __future__ import annotations
import sqlite3
from typing import List

from .errors import ImportProcedureFailed, StatusUpdateFailed
from .store import DraftStore
from .utils import get_logger

logger = get_logger("importer")


def run_import_procedures(store: DraftStore, spus: List[str]) -> None:
    try:
        products = store.process_import_spu(spus)
        variants = store.process_import_sku(spus)
    except sqlite3.Error as e:
        raise ImportProcedureFailed(str(e)) from e
    logger.info("Imported %d product row(s), %d variant row(s) into the live catalog", products, variants)


def finalize_status(store: DraftStore, spus: List[str], now: str) -> None:
    try:
        store.mark_published(spus, now)
    except sqlite3.Error as e:
        raise StatusUpdateFailed(str(e)) from e
    logger.info("Marked %d SPU(s) as published", len(spus))
