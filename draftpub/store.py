from __future__ import annotations
import json
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import DraftProduct, DraftVariant, PublishStep, StagingSkuRow, StagingSpuRow
from .utils import chunked

PRODUCT_COLUMNS: List[str] = list(DraftProduct.model_fields)
VARIANT_COLUMNS: List[str] = list(DraftVariant.model_fields)
STG_SPU_COLUMNS: List[str] = list(StagingSpuRow.model_fields)
STG_SKU_COLUMNS: List[str] = list(StagingSkuRow.model_fields)
LIVE_SPU_COLUMNS: List[str] = [c for c in STG_SPU_COLUMNS if c != "processed"]
LIVE_SKU_COLUMNS: List[str] = [c for c in STG_SKU_COLUMNS if c != "processed"]

JSON_COLUMNS = {"raw_row", "image_urls"}
BOOL_COLUMNS = {"processed", "shopify_tingelo_sync"}
# No type affinity: spreadsheet numbers must come back as numbers, not "49.0"
SCALAR_COLUMNS = {
    "price", "compare_at_price", "cost", "weight", "barcode", "taxable", "hs_code",
    "b2b_dropship_price_se", "b2b_dropship_price_no", "b2b_dropship_price_dk", "b2b_dropship_price_fi",
    "purchase_price_cny",
}

# Keeps IN (...) lists under SQLite's bound-variable limit
IN_CHUNK = 500


def _column_defs(columns: Iterable[str], skip: Sequence[str] = (), untyped: Iterable[str] = ()) -> str:
    defs = []
    for col in columns:
        if col in skip:
            continue
        if col in untyped:
            defs.append(f" {col}")
            continue
        col_type = "INTEGER" if col in BOOL_COLUMNS else "TEXT"
        defs.append(f" {col} {col_type}")
    return ",\n".join(defs)


SCHEMA = f"""
CREATE TABLE IF NOT EXISTS draft_products (
 id TEXT PRIMARY KEY,
 spu TEXT NOT NULL UNIQUE,
{_column_defs(PRODUCT_COLUMNS, skip=("id", "spu"))}
);
CREATE TABLE IF NOT EXISTS draft_variants (
 id TEXT PRIMARY KEY,
{_column_defs(VARIANT_COLUMNS, skip=("id",), untyped=SCALAR_COLUMNS)}
);
CREATE INDEX IF NOT EXISTS idx_draft_variants_spu ON draft_variants(spu);
CREATE TABLE IF NOT EXISTS stg_import_spu (
{_column_defs(STG_SPU_COLUMNS)}
);
CREATE INDEX IF NOT EXISTS idx_stg_import_spu_spu ON stg_import_spu(spu);
CREATE TABLE IF NOT EXISTS stg_import_sku (
{_column_defs(STG_SKU_COLUMNS)}
);
CREATE INDEX IF NOT EXISTS idx_stg_import_sku_spu ON stg_import_sku(spu);
CREATE TABLE IF NOT EXISTS catalog_products (
 spu TEXT PRIMARY KEY,
{_column_defs(LIVE_SPU_COLUMNS, skip=("spu",))}
);
CREATE TABLE IF NOT EXISTS catalog_variants (
 spu TEXT NOT NULL,
 sku TEXT NOT NULL,
{_column_defs(LIVE_SKU_COLUMNS, skip=("spu", "sku"))},
 PRIMARY KEY (spu, sku)
);
CREATE TABLE IF NOT EXISTS publish_steps (
 run_id TEXT NOT NULL,
 spu TEXT,
 stage TEXT NOT NULL,
 ok INTEGER NOT NULL,
 detail TEXT,
 recorded_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_publish_steps_run ON publish_steps(run_id);
"""


def init_db(db_path: Path) -> None:
    db_path = Path(db_path)
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


def _encode(col: str, value: Any) -> Any:
    if value is None:
        return None
    if col in JSON_COLUMNS and not isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return int(value)
    return value


def _decode(row: sqlite3.Row) -> Dict[str, Any]:
    data = dict(row)
    for col in JSON_COLUMNS & data.keys():
        value = data[col]
        if isinstance(value, str) and value[:1] in ("{", "["):
            data[col] = json.loads(value)
    for col in BOOL_COLUMNS & data.keys():
        if data[col] is not None:
            data[col] = bool(data[col])
    return data


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class DraftStore:
    """Access to the draft, staging, live and step-log tables of one SQLite file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _select(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(sql, tuple(params))
            return [_decode(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _insert(self, table: str, columns: List[str], rows: Sequence[Dict[str, Any]]) -> None:
        if not rows:
            return
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({_placeholders(columns)})"
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.executemany(sql, [tuple(_encode(c, r.get(c)) for c in columns) for r in rows])
            conn.commit()
        finally:
            conn.close()

    # Drafts (written by the spreadsheet import; exposed here as plain calls)
    def add_draft_product(self, product: DraftProduct) -> DraftProduct:
        if not product.id:
            product = product.model_copy(update={"id": uuid.uuid4().hex})
        self._insert("draft_products", PRODUCT_COLUMNS, [product.model_dump()])
        return product

    def add_draft_variant(self, variant: DraftVariant) -> DraftVariant:
        if not variant.id:
            variant = variant.model_copy(update={"id": uuid.uuid4().hex})
        self._insert("draft_variants", VARIANT_COLUMNS, [variant.model_dump()])
        return variant

    def fetch_draft_products(self, spus: Optional[List[str]] = None, status: Optional[str] = "draft") -> List[DraftProduct]:
        sql = "SELECT * FROM draft_products WHERE 1=1"
        params: List[Any] = []
        if status:
            sql += " AND status = ?"
            params.append(status)
        if spus is None:
            rows = self._select(sql + " ORDER BY spu", params)
        else:
            rows = []
            for chunk in chunked(spus, IN_CHUNK):
                rows += self._select(sql + f" AND spu IN ({_placeholders(chunk)})", params + chunk)
            rows.sort(key=lambda r: r["spu"])
        return [DraftProduct(**r) for r in rows]

    def fetch_draft_variants(self, spus: List[str], status: Optional[str] = "draft") -> List[DraftVariant]:
        rows: List[Dict[str, Any]] = []
        for chunk in chunked(spus, IN_CHUNK):
            sql = f"SELECT * FROM draft_variants WHERE spu IN ({_placeholders(chunk)})"
            params: List[Any] = list(chunk)
            if status:
                sql += " AND status = ?"
                params.append(status)
            rows += self._select(sql + " ORDER BY spu, rowid", params)
        # stable: keeps rowid order within an SPU
        rows.sort(key=lambda r: r["spu"])
        return [DraftVariant(**r) for r in rows]

    # Staging
    def delete_staging(self, spus: List[str]) -> None:
        conn = self._connect()
        try:
            cur = conn.cursor()
            for chunk in chunked(spus, IN_CHUNK):
                cur.execute(f"DELETE FROM stg_import_spu WHERE spu IN ({_placeholders(chunk)})", tuple(chunk))
                cur.execute(f"DELETE FROM stg_import_sku WHERE spu IN ({_placeholders(chunk)})", tuple(chunk))
            conn.commit()
        finally:
            conn.close()

    def insert_staging_spu(self, rows: Sequence[Dict[str, Any]]) -> None:
        self._insert("stg_import_spu", STG_SPU_COLUMNS, rows)

    def insert_staging_sku(self, rows: Sequence[Dict[str, Any]]) -> None:
        self._insert("stg_import_sku", STG_SKU_COLUMNS, rows)

    def fetch_staging_spu(self, spus: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        if spus is None:
            return self._select("SELECT * FROM stg_import_spu ORDER BY spu")
        return self._select(f"SELECT * FROM stg_import_spu WHERE spu IN ({_placeholders(spus)}) ORDER BY spu", spus)

    def fetch_staging_sku(self, spus: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        if spus is None:
            return self._select("SELECT * FROM stg_import_sku ORDER BY spu, rowid")
        return self._select(
            f"SELECT * FROM stg_import_sku WHERE spu IN ({_placeholders(spus)}) ORDER BY spu, rowid", spus
        )

    # Import procedures: one transaction each, safe to repeat for the same SPU list
    def _upsert_from_staging(self, live: str, staging: str, columns: List[str], keys: List[str], spus: List[str], extra_where: str = "") -> int:
        updates = ", ".join(f"{c}=excluded.{c}" for c in columns if c not in keys)
        count = 0
        conn = self._connect()
        try:
            with conn:
                for chunk in chunked(spus, IN_CHUNK):
                    sql = (
                        f"INSERT INTO {live} ({', '.join(columns)}) "
                        f"SELECT {', '.join(columns)} FROM {staging} "
                        f"WHERE spu IN ({_placeholders(chunk)}){extra_where} "
                        f"ON CONFLICT({', '.join(keys)}) DO UPDATE SET {updates}"
                    )
                    count += conn.execute(sql, tuple(chunk)).rowcount
                    conn.execute(
                        f"UPDATE {staging} SET processed = 1 WHERE spu IN ({_placeholders(chunk)})", tuple(chunk)
                    )
            return count
        finally:
            conn.close()

    def process_import_spu(self, spus: List[str]) -> int:
        return self._upsert_from_staging("catalog_products", "stg_import_spu", LIVE_SPU_COLUMNS, ["spu"], spus)

    def process_import_sku(self, spus: List[str]) -> int:
        return self._upsert_from_staging(
            "catalog_variants", "stg_import_sku", LIVE_SKU_COLUMNS, ["spu", "sku"], spus,
            extra_where=" AND sku IS NOT NULL",
        )

    def fetch_catalog_products(self) -> List[Dict[str, Any]]:
        return self._select("SELECT * FROM catalog_products ORDER BY spu")

    def fetch_catalog_variants(self) -> List[Dict[str, Any]]:
        return self._select("SELECT * FROM catalog_variants ORDER BY spu, sku")

    # Status
    def mark_published(self, spus: List[str], now: str) -> None:
        conn = self._connect()
        try:
            with conn:
                for chunk in chunked(spus, IN_CHUNK):
                    for table in ("draft_products", "draft_variants"):
                        conn.execute(
                            f"UPDATE {table} SET status = 'published', updated_at = ? WHERE spu IN ({_placeholders(chunk)})",
                            (now, *chunk),
                        )
        finally:
            conn.close()

    # Step log
    def record_steps(self, steps: Sequence[PublishStep]) -> None:
        rows = [s.model_dump(exclude_none=True) for s in steps]
        conn = self._connect()
        try:
            with conn:
                for row in rows:
                    cols = list(row)
                    conn.execute(
                        f"INSERT INTO publish_steps ({', '.join(cols)}) VALUES ({_placeholders(cols)})",
                        tuple(_encode(c, row[c]) for c in cols),
                    )
        finally:
            conn.close()

    def fetch_steps(self, run_id: str) -> List[PublishStep]:
        rows = self._select("SELECT * FROM publish_steps WHERE run_id = ? ORDER BY rowid", [run_id])
        return [PublishStep(**{**r, "ok": bool(r["ok"])}) for r in rows]
