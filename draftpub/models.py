from __future__ import annotations
from typing import Any, Dict, List, Optional, Literal, Union
from pydantic import BaseModel, ConfigDict, Field

# Spreadsheet imports leave numbers and text mixed in the same columns
Scalar = Union[str, int, float, None]


class DraftProduct(BaseModel):
    id: Optional[str] = None
    spu: str
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description_html: Optional[str] = None
    product_description_main_html: Optional[str] = None
    mf_product_short_title: Optional[str] = None
    mf_product_long_title: Optional[str] = None
    mf_product_subtitle: Optional[str] = None
    mf_product_bullets_short: Optional[str] = None
    mf_product_bullets: Optional[str] = None
    mf_product_bullets_long: Optional[str] = None
    mf_product_specs: Optional[str] = None
    mf_product_description_short_html: Optional[str] = None
    mf_product_description_extended_html: Optional[str] = None
    option1_name: Optional[str] = None
    option2_name: Optional[str] = None
    option3_name: Optional[str] = None
    option4_name: Optional[str] = None
    legacy_title_sv: Optional[str] = None
    legacy_description_sv: Optional[str] = None
    legacy_bullets_sv: Optional[str] = None
    supplier_1688_url: Optional[str] = None
    image_folder: Optional[str] = None
    main_image_url: Optional[str] = None
    image_urls: Union[List[str], str, None] = None
    raw_row: Optional[Dict[str, Any]] = None
    status: Literal["draft", "published"] = "draft"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DraftVariant(BaseModel):
    id: Optional[str] = None
    spu: Optional[str] = None
    sku: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    option4: Optional[str] = None
    option_combined_zh: Optional[str] = None
    option1_zh: Optional[str] = None
    option2_zh: Optional[str] = None
    option3_zh: Optional[str] = None
    option4_zh: Optional[str] = None
    price: Scalar = None
    compare_at_price: Scalar = None
    cost: Scalar = None
    weight: Scalar = None
    weight_unit: Optional[str] = None
    barcode: Scalar = None
    variant_image_url: Optional[str] = None
    shipping_name_en: Optional[str] = None
    short_title_zh: Optional[str] = None
    shipping_name_zh: Optional[str] = None
    shipping_class: Optional[str] = None
    taxable: Scalar = None
    tax_code: Optional[str] = None
    hs_code: Scalar = None
    country_of_origin: Optional[str] = None
    category_code_fq: Optional[str] = None
    category_code_ld: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_location: Optional[str] = None
    b2b_dropship_price_se: Scalar = None
    b2b_dropship_price_no: Scalar = None
    b2b_dropship_price_dk: Scalar = None
    b2b_dropship_price_fi: Scalar = None
    purchase_price_cny: Scalar = None
    raw_row: Optional[Dict[str, Any]] = None
    status: Literal["draft", "published"] = "draft"
    updated_at: Optional[str] = None


class StagingSpuRow(BaseModel):
    spu: str
    sku: str
    product_title: Optional[str] = None
    subtitle: Optional[str] = None
    product_description_html: Optional[str] = None
    product_description_main_html: Optional[str] = None
    brand: Optional[str] = None
    vendor: Optional[str] = None
    mf_product_short_title: Optional[str] = None
    mf_product_long_title: Optional[str] = None
    mf_product_subtitle: Optional[str] = None
    mf_product_bullets_short: Optional[str] = None
    mf_product_bullets: Optional[str] = None
    mf_product_bullets_long: Optional[str] = None
    mf_product_specs: Optional[str] = None
    mf_product_description_short_html: Optional[str] = None
    mf_product_description_extended_html: Optional[str] = None
    option1_name: Optional[str] = None
    option2_name: Optional[str] = None
    option3_name: Optional[str] = None
    option4_name: Optional[str] = None
    legacy_title_sv: Optional[str] = None
    legacy_description_sv: Optional[str] = None
    legacy_bullets_sv: Optional[str] = None
    supplier_1688_url: Optional[str] = None
    product_main_image_url: Optional[str] = None
    product_additional_image_urls: Optional[str] = None
    shopify_tingelo_category_keys: Optional[str] = None
    product_categorizer_keywords: Optional[str] = None
    is_active: str = "true"
    status: str = "active"
    published: str = "true"
    published_scope: str = "global"
    shopify_tingelo_sync: bool = True
    image_folder: Optional[str] = None
    raw_row: Optional[Dict[str, Any]] = None
    imported_at: str
    processed: bool = False
    product_created_at: Optional[str] = None


class StagingSkuRow(BaseModel):
    spu: str
    sku: Optional[str] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    option4: Optional[str] = None
    option1_name: Optional[str] = None
    option2_name: Optional[str] = None
    option3_name: Optional[str] = None
    option4_name: Optional[str] = None
    option_combined_zh: Optional[str] = None
    option1_zh: Optional[str] = None
    option2_zh: Optional[str] = None
    option3_zh: Optional[str] = None
    option4_zh: Optional[str] = None
    variation_color_se: Optional[str] = None
    variation_size_se: Optional[str] = None
    variation_other_se: Optional[str] = None
    variation_amount_se: Optional[str] = None
    price: Optional[str] = None
    compare_at_price: Optional[str] = None
    cost: Optional[str] = None
    weight: Optional[str] = None
    weight_unit: Optional[str] = None
    barcode: Optional[str] = None
    ean_code: Optional[str] = None
    variant_image_url: Optional[str] = None
    shipping_name_en: Optional[str] = None
    short_title_zh: Optional[str] = None
    shipping_name_zh: Optional[str] = None
    shipping_class: Optional[str] = None
    taxable: Optional[str] = None
    tax_code: Optional[str] = None
    hs_code: Optional[str] = None
    country_of_origin: Optional[str] = None
    category_code_fq: Optional[str] = None
    category_code_ld: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_location: Optional[str] = None
    b2b_dropship_price_se: Optional[str] = None
    b2b_dropship_price_no: Optional[str] = None
    b2b_dropship_price_dk: Optional[str] = None
    b2b_dropship_price_fi: Optional[str] = None
    purchase_price_cny: Optional[str] = None
    raw_row: Optional[Dict[str, Any]] = None
    imported_at: str
    processed: bool = False


class ImageIssue(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    spu: str
    folder: str
    error: Optional[str] = None
    missing_main: Optional[bool] = Field(default=None, alias="missingMain")
    multiple_main: Optional[List[str]] = Field(default=None, alias="multipleMain")
    invalid_prefixes: Optional[List[str]] = Field(default=None, alias="invalidPrefixes")


class MoveResult(BaseModel):
    spu: str
    moved: bool
    error: Optional[str] = None


class ArchiveResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_folder: str = Field(alias="runFolder")
    archived: bool
    archive_path: Optional[str] = Field(default=None, alias="archivePath")
    error: Optional[str] = None


class StagedCounts(BaseModel):
    spus: int
    skus: int


class PublishResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    run_id: Optional[str] = Field(default=None, alias="runId")
    spus: List[str]
    staged: StagedCounts
    moved: List[MoveResult] = Field(default_factory=list)
    archived: List[ArchiveResult] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PublishStep(BaseModel):
    run_id: str
    spu: Optional[str] = None
    stage: str
    ok: bool
    detail: Optional[str] = None
    recorded_at: Optional[str] = None
