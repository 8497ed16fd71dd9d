from __future__ import annotations
import re
import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import PipelineConfig
from .errors import StagingWriteFailed
from .models import DraftProduct, DraftVariant, StagedCounts, StagingSkuRow, StagingSpuRow
from .selector import Selection
from .store import DraftStore
from .utils import chunked, get_logger

logger = get_logger("staging")

# Excel writes carriage returns as a literal token inside cell text
_X000D = re.compile(r"_x000d_", re.IGNORECASE)

# Column names drift between spreadsheet imports; first non-empty key wins
RAW_ALIASES: Dict[str, List[str]] = {
    "brand": ["brand"],
    "vendor": ["vendor"],
    "price": ["price", "product_price", "product_price_cny"],
    "cost": ["cost", "product_cost", "product_cost_cny"],
    "weight": ["product_weights_1688", "product_weight_gram", "product_weight", "weight"],
    "shipping_name_en": ["EN_shipname", "en_shipname", "shipping_name_en"],
    "short_title_zh": ["CN_title", "cn_title", "short_title_zh"],
    "shipping_name_zh": ["CN_shipname", "cn_shipname", "shipping_name_zh"],
    "shipping_class": ["product_shiptype", "product_shipType"],
    "tax_code": ["tax_code", "taxcode", "tax code"],
    "hs_code": ["hs_code", "HS_code", "hs code"],
    "country_of_origin": ["country_of_origin", "country of origin", "origin_country", "origin"],
    "supplier_name": ["supplier_name_1688", "supplier_name"],
    "purchase_price_cny": ["purchase_price_cny", "purchase_price", "purchase price"],
    "category_keys": ["category_external_key_shopify_tingelo", "shopify_tingelo_category_keys"],
    "categorizer_keywords": ["product_categorizer_keywords", "poduct_categorizer_keywords", "poduct_keywords"],
}


def normalize_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    text = _X000D.sub("", text).replace("\r\n", "\n").replace("\r", "\n").strip()
    return text or None


def raw_text(raw: Optional[Mapping[str, Any]], key: str) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    return normalize_text(raw.get(key))


def lookup_raw(raw: Optional[Mapping[str, Any]], field: str) -> Optional[str]:
    for key in RAW_ALIASES[field]:
        value = raw_text(raw, key)
        if value:
            return value
    return None


def spu_prefix(spu: Optional[str]) -> Optional[str]:
    text = normalize_text(spu)
    if not text:
        return None
    return text.upper()[:2]


def join_urls(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        items = [str(v or "").strip() for v in value]
        items = [v for v in items if v]
        return ";".join(items) if items else None
    return normalize_text(value)


def build_fallback_variant(product: DraftProduct) -> DraftVariant:
    raw = product.raw_row
    return DraftVariant(
        id=f"fallback-{product.spu}",
        spu=product.spu,
        sku=product.spu,
        price=lookup_raw(raw, "price"),
        cost=lookup_raw(raw, "cost"),
        weight=lookup_raw(raw, "weight"),
        shipping_name_en=lookup_raw(raw, "shipping_name_en"),
        short_title_zh=lookup_raw(raw, "short_title_zh"),
        shipping_name_zh=lookup_raw(raw, "shipping_name_zh"),
        shipping_class=lookup_raw(raw, "shipping_class"),
        tax_code=lookup_raw(raw, "tax_code"),
        hs_code=lookup_raw(raw, "hs_code"),
        country_of_origin=lookup_raw(raw, "country_of_origin"),
        supplier_name=lookup_raw(raw, "supplier_name"),
        purchase_price_cny=lookup_raw(raw, "purchase_price_cny"),
        raw_row=raw,
    )


def to_spu_row(product: DraftProduct, config: PipelineConfig, now: str) -> StagingSpuRow:
    raw = product.raw_row
    n = normalize_text
    return StagingSpuRow(
        spu=product.spu,
        sku=product.spu,
        product_title=n(product.title),
        subtitle=n(product.subtitle),
        product_description_html=n(product.description_html),
        product_description_main_html=n(product.product_description_main_html or product.description_html),
        brand=lookup_raw(raw, "brand") or spu_prefix(product.spu),
        vendor=lookup_raw(raw, "vendor") or spu_prefix(product.spu),
        mf_product_short_title=n(product.mf_product_short_title),
        mf_product_long_title=n(product.mf_product_long_title),
        mf_product_subtitle=n(product.mf_product_subtitle),
        mf_product_bullets_short=n(product.mf_product_bullets_short),
        mf_product_bullets=n(product.mf_product_bullets),
        mf_product_bullets_long=n(product.mf_product_bullets_long),
        mf_product_specs=n(product.mf_product_specs),
        mf_product_description_short_html=n(product.mf_product_description_short_html),
        mf_product_description_extended_html=n(product.mf_product_description_extended_html),
        option1_name=n(product.option1_name),
        option2_name=n(product.option2_name),
        option3_name=n(product.option3_name),
        option4_name=n(product.option4_name),
        legacy_title_sv=n(product.legacy_title_sv),
        legacy_description_sv=n(product.legacy_description_sv),
        legacy_bullets_sv=n(product.legacy_bullets_sv),
        supplier_1688_url=n(product.supplier_1688_url),
        product_main_image_url=n(product.main_image_url),
        product_additional_image_urls=join_urls(product.image_urls),
        shopify_tingelo_category_keys=lookup_raw(raw, "category_keys"),
        product_categorizer_keywords=lookup_raw(raw, "categorizer_keywords"),
        image_folder=f"{str(config.catalog_image_root).rstrip('/')}/{product.spu}",
        raw_row=raw,
        imported_at=now,
        product_created_at=product.created_at,
    )


def to_sku_row(variant: DraftVariant, parent: Optional[DraftProduct], config: PipelineConfig, now: str) -> StagingSkuRow:
    raw = variant.raw_row
    n = normalize_text
    shipping_class = n(variant.shipping_class) or lookup_raw(parent.raw_row if parent else None, "shipping_class")
    purchase_price = n(variant.purchase_price_cny) or n(variant.price) or raw_text(raw, "price")
    return StagingSkuRow(
        spu=variant.spu,
        sku=n(variant.sku),
        option1=n(variant.option1),
        option2=n(variant.option2),
        option3=n(variant.option3),
        option4=n(variant.option4),
        option1_name=n(parent.option1_name) if parent else None,
        option2_name=n(parent.option2_name) if parent else None,
        option3_name=n(parent.option3_name) if parent else None,
        option4_name=n(parent.option4_name) if parent else None,
        option_combined_zh=n(variant.option_combined_zh),
        option1_zh=n(variant.option1_zh),
        option2_zh=n(variant.option2_zh),
        option3_zh=n(variant.option3_zh),
        option4_zh=n(variant.option4_zh),
        variation_color_se=raw_text(raw, "variation_color_se"),
        variation_size_se=raw_text(raw, "variation_size_se"),
        variation_other_se=raw_text(raw, "variation_other_se"),
        variation_amount_se=raw_text(raw, "variation_amount_se"),
        price=n(variant.price),
        compare_at_price=n(variant.compare_at_price),
        cost=n(variant.cost),
        weight=n(variant.weight),
        weight_unit=n(variant.weight_unit),
        barcode=n(variant.barcode),
        ean_code=n(variant.barcode),
        variant_image_url=n(variant.variant_image_url),
        shipping_name_en=n(variant.shipping_name_en),
        short_title_zh=n(variant.short_title_zh),
        shipping_name_zh=n(variant.shipping_name_zh),
        shipping_class=shipping_class,
        taxable=n(variant.taxable),
        tax_code=n(variant.tax_code) or config.default_tax_code,
        hs_code=n(variant.hs_code),
        country_of_origin=n(variant.country_of_origin) or config.default_country_of_origin,
        category_code_fq=n(variant.category_code_fq),
        category_code_ld=n(variant.category_code_ld),
        supplier_name=n(variant.supplier_name),
        supplier_location=n(variant.supplier_location),
        b2b_dropship_price_se=n(variant.b2b_dropship_price_se),
        b2b_dropship_price_no=n(variant.b2b_dropship_price_no),
        b2b_dropship_price_dk=n(variant.b2b_dropship_price_dk),
        b2b_dropship_price_fi=n(variant.b2b_dropship_price_fi),
        purchase_price_cny=purchase_price,
        raw_row=raw,
        imported_at=now,
    )


def build_staging_rows(selection: Selection, config: PipelineConfig, now: str) -> Tuple[List[StagingSpuRow], List[StagingSkuRow]]:
    by_spu = {p.spu: p for p in selection.products if p.spu}
    variants = [v for v in selection.variants if v.spu in by_spu]
    with_variants = {v.spu for v in variants}
    for product in selection.products:
        if product.spu and product.spu not in with_variants:
            logger.info("No variants for %s, using a fallback variant from raw_row", product.spu)
            variants.append(build_fallback_variant(product))
    spu_rows = [to_spu_row(p, config, now) for p in by_spu.values()]
    sku_rows = [to_sku_row(v, by_spu.get(v.spu), config, now) for v in variants]
    return spu_rows, sku_rows


def load_staging(store: DraftStore, selection: Selection, config: PipelineConfig, now: str) -> StagedCounts:
    """Replace the staging rows of the selected SPUs."""
    spu_rows, sku_rows = build_staging_rows(selection, config, now)
    spus = selection.spus
    try:
        store.delete_staging(spus)
        for chunk in chunked([r.model_dump() for r in spu_rows], config.staging_batch_size):
            store.insert_staging_spu(chunk)
        for chunk in chunked([r.model_dump() for r in sku_rows], config.staging_batch_size):
            store.insert_staging_sku(chunk)
    except sqlite3.Error as e:
        raise StagingWriteFailed(str(e)) from e
    logger.info("Staged %d SPU row(s), %d SKU row(s)", len(spu_rows), len(sku_rows))
    return StagedCounts(spus=len(spu_rows), skus=len(sku_rows))
