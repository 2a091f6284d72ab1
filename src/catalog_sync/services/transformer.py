"""Normalization of raw catalog records into typed product values.

The catalog API is loose about shapes: keys arrive in any case, some
fields have several synonyms, text is either a plain string or a
per-language mapping, and variant containers sometimes carry no data of
their own. Everything past this module works on ``NormalizedProduct``.
"""

import re
from dataclasses import dataclass, field
from typing import Any

import structlog

from catalog_sync.infrastructure.database.models import ProductStatus
from catalog_sync.services.pricing import PricingConverter

logger = structlog.get_logger()

PARENT_SUFFIX = "-parent"

COLOR_SUFFIXES = frozenset(
    {
        "black", "white", "red", "blue", "green", "yellow", "orange", "purple", "pink",
        "grey", "gray", "negro", "blanco", "rojo", "azul", "verde", "amarillo",
    }
)
SIZE_SUFFIXES = frozenset({"xs", "s", "m", "l", "xl", "xxl", "xxxl", "2xl", "3xl"})

_PARENT_RE = re.compile(r"^(.+)-parent$", re.IGNORECASE)
_NUMERIC_SUFFIX_RE = re.compile(r"^\d{1,3}$")

REFERENCE_KEYS = ("reference", "sku", "ref")
NAME_KEYS = ("name", "title")
DESCRIPTION_KEYS = ("description", "shortdescription")
PARENT_PRICE_KEYS = ("rrp", "price", "net")
VARIANT_PRICE_KEYS = ("net", "price", "rrp")
STOCK_KEYS = ("stock", "quantity", "stockquantity")

FALLBACK_LANGUAGES = ("en", "es")


def extract_reference_base(reference: str) -> str:
    """Derive the grouping key shared by a container and its variants.

    ``MP-010-parent`` -> ``MP-010``, ``MP-010-RED`` -> ``MP-010``,
    ``MP-010-XL`` -> ``MP-010``, ``MP-010-02`` -> ``MP-010``.
    """
    if not reference:
        return ""

    match = _PARENT_RE.match(reference)
    if match:
        return match.group(1)

    parts = reference.split("-")
    if len(parts) <= 1:
        return reference

    last = parts[-1].lower()
    if last in COLOR_SUFFIXES or last in SIZE_SUFFIXES or _NUMERIC_SUFFIX_RE.match(last):
        return "-".join(parts[:-1])
    return reference


def _lower_keys(record: Any) -> dict[str, Any]:
    if not isinstance(record, dict):
        return {}
    return {str(key).lower(): value for key, value in record.items()}


def _first(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


@dataclass
class NormalizedProduct:
    """One product row as the local store sees it."""

    sku: str
    reference: str
    reference_base: str
    name: str = ""
    description: str = ""
    regular_price: float | None = None
    stock_quantity: int | None = None
    product_type: str = "simple"
    status: str = ProductStatus.PUBLISH.value
    categories: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)
    # SKU of the container record for variants
    parent_sku: str = ""
    # Container had no reference of its own
    synthetic_sku: bool = False

    @property
    def is_variant(self) -> bool:
        return bool(self.parent_sku)


class ProductTransformer:
    """Maps raw catalog records to ``NormalizedProduct`` values."""

    def __init__(self, pricing: PricingConverter, target_language: str = "en"):
        self.pricing = pricing
        self.target_language = target_language.lower()

    # -------------------------------------------------------------------------
    # Field helpers
    # -------------------------------------------------------------------------

    def text(self, value: Any) -> str:
        """Pick a string out of a plain or multilingual text value."""
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        if isinstance(value, (int, float)):
            return str(value)

        translations: dict[str, str] = {}
        if isinstance(value, dict):
            translations = {str(lang).lower(): text for lang, text in value.items() if isinstance(text, str)}
        elif isinstance(value, list):
            for entry in value:
                entry = _lower_keys(entry)
                lang = entry.get("language") or entry.get("lang") or entry.get("languagecode")
                text = entry.get("value") or entry.get("text") or entry.get("translation")
                if lang and isinstance(text, str):
                    translations[str(lang).lower()] = text

        for lang in (self.target_language, *FALLBACK_LANGUAGES):
            if translations.get(lang):
                return translations[lang].strip()
        for text in translations.values():
            if text:
                return text.strip()
        return ""

    def price(self, value: Any) -> float:
        try:
            amount = float(value)
        except (TypeError, ValueError):
            return 0.0
        if amount <= 0:
            return 0.0
        return self.pricing.convert(amount)

    @staticmethod
    def images(value: Any) -> list[str]:
        urls = []
        for item in value if isinstance(value, list) else []:
            url = _lower_keys(item).get("url") if isinstance(item, dict) else item
            if isinstance(url, str) and url:
                urls.append(url)
        return urls

    @staticmethod
    def categories(value: Any) -> list[str]:
        references = []
        for item in value if isinstance(value, list) else []:
            ref = _lower_keys(item).get("reference") if isinstance(item, dict) else item
            if ref not in (None, ""):
                references.append(str(ref))
        return references

    def attributes(self, value: Any) -> dict[str, str]:
        """Flatten ``{name: value}`` maps and ``[{alias, value}]`` lists."""
        if isinstance(value, dict):
            pairs = list(value.items())
        elif isinstance(value, list):
            pairs = []
            for item in value:
                item = _lower_keys(item)
                pairs.append((item.get("alias") or item.get("name"), item.get("value")))
        else:
            return {}

        result = {}
        for name, raw in pairs:
            if not name:
                continue
            if isinstance(raw, dict) and "value" in _lower_keys(raw):
                raw = _lower_keys(raw)["value"]
            if isinstance(raw, list) and all(isinstance(v, (str, int, float)) for v in raw):
                text = " | ".join(str(v) for v in raw)
            else:
                text = self.text(raw)
            if text:
                result[str(name)] = text
        return result

    @staticmethod
    def stock(value: Any) -> int | None:
        if value is None:
            return None
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return None

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def transform(self, raw: dict[str, Any]) -> list[NormalizedProduct]:
        """One record in, the container first and then one product per variant."""
        record = _lower_keys(raw)
        variants = [_lower_keys(v) for v in record.get("variants") or [] if isinstance(v, dict)]

        synthetic = False
        if variants and not _first(record, REFERENCE_KEYS) and not _first(record, NAME_KEYS):
            first_variant = variants[0]
            for key in ("name", "description", "images", "attributes", "categories"):
                if not record.get(key) and first_variant.get(key):
                    record[key] = first_variant[key]
            base = extract_reference_base(str(_first(first_variant, REFERENCE_KEYS) or ""))
            if base:
                record["reference"] = f"{base}{PARENT_SUFFIX}"
                synthetic = True

        reference = str(_first(record, REFERENCE_KEYS) or "").strip()
        if not reference:
            raise ValueError("Catalog record has no reference")

        status = (
            ProductStatus.PUBLISH.value
            if record.get("active", True) not in (False, 0, "0", "false")
            else ProductStatus.DRAFT.value
        )
        name = self.text(_first(record, NAME_KEYS))
        categories = self.categories(record.get("categories"))

        parent = NormalizedProduct(
            sku=reference,
            reference=reference,
            reference_base=extract_reference_base(reference),
            name=name,
            description=self.text(_first(record, DESCRIPTION_KEYS)) or name,
            regular_price=self.price(_first(record, PARENT_PRICE_KEYS)),
            stock_quantity=self.stock(_first(record, STOCK_KEYS)),
            product_type="variable" if variants else "simple",
            status=status,
            categories=categories,
            images=self.images(record.get("images")),
            attributes=self.attributes(record.get("attributes")),
            synthetic_sku=synthetic,
        )
        products = [parent]

        for variant in variants:
            variant_ref = str(_first(variant, REFERENCE_KEYS) or "").strip()
            if not variant_ref or variant_ref == reference:
                logger.debug("Skipping variant without own reference", parent=reference)
                continue

            attributes = self.attributes(variant.get("attributes"))
            suffix = ", ".join(attributes.values())
            products.append(
                NormalizedProduct(
                    sku=variant_ref,
                    reference=variant_ref,
                    reference_base=extract_reference_base(variant_ref),
                    name=f"{name} - {suffix}" if suffix else name,
                    description=parent.description,
                    regular_price=self.price(_first(variant, VARIANT_PRICE_KEYS)),
                    stock_quantity=self.stock(_first(variant, STOCK_KEYS)),
                    product_type="variation",
                    status=status,
                    categories=categories,
                    images=self.images(variant.get("images")) or parent.images,
                    attributes=attributes,
                    parent_sku=reference,
                )
            )

        return products
