from __future__ import annotations
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .errors import DraftQueryFailed, NoDraftsFound
from .models import DraftProduct, DraftVariant
from .store import DraftStore
from .utils import get_logger

logger = get_logger("selector")


@dataclass
class Selection:
    products: List[DraftProduct]
    variants: List[DraftVariant] = field(default_factory=list)

    @property
    def spus(self) -> List[str]:
        return [p.spu for p in self.products if p.spu]


def clean_spu_list(values: Optional[Iterable[object]]) -> List[str]:
    seen = set()
    spus: List[str] = []
    for value in values or []:
        spu = str(value if value is not None else "").strip()
        if spu and spu not in seen:
            seen.add(spu)
            spus.append(spu)
    return spus


def select_drafts(store: DraftStore, spus: Optional[Iterable[object]] = None, publish_all: bool = False) -> Selection:
    requested = clean_spu_list(spus)
    # An empty request publishes every pending draft
    publish_all = publish_all or not requested
    try:
        products = store.fetch_draft_products(None if publish_all else requested)
        spu_list = [p.spu for p in products if p.spu]
        variants = store.fetch_draft_variants(spu_list)
    except sqlite3.Error as e:
        raise DraftQueryFailed(str(e)) from e
    if not products:
        raise NoDraftsFound("No draft products found to publish.")
    logger.info("Selected %d draft product(s), %d variant(s)", len(products), len(variants))
    return Selection(products=products, variants=variants)
