"""Turns a raw product payload into a canonical ProductRecord using ordered extraction strategies."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Optional

from restock_monitor.misc.errors import ExtractionError
from restock_monitor.misc.logger import get_logger
from restock_monitor.misc.stock_state import Availability, coerce_availability
from restock_monitor.parsers.common import (
    ColorVariant,
    ProductRecord,
    find_script_json,
    payload_text,
    try_parse_json,
)

COLOR_OPTION_KEYS = ("colourOptions", "colorOptions")
DEEP_SEARCH_KEYS = COLOR_OPTION_KEYS + ("colorways", "swatches", "colours", "colors")
DEEP_SEARCH_MAX_DEPTH = 10

VARIANT_ID_KEYS = ("value", "id", "colourCode", "code")
VARIANT_LABEL_KEYS = ("label", "displayValue", "name", "colourName")
SWATCH_KEYS = ("primaryColour", "color", "colourCode", "hexCode", "hex", "image", "swatchImage")
AVAILABILITY_KEYS = (
    "available",
    "inStock",
    "isAvailable",
    "ATC",
    "orderable",
    "stockStatus",
    "availability",
)
PRODUCT_NAME_KEYS = ("analyticsName", "name", "productName", "title")
PRODUCT_ID_KEYS = ("id", "productId", "sku", "masterId")

DEFAULT_VARIANT_LABEL = "Unknown"

logger = get_logger("product_parser")


class PreparedPayload:
    """Raw payload plus lazily parsed JSON / embedded-script views shared by all strategies."""

    _UNSET = object()

    def __init__(self, raw: str | bytes | Mapping[str, Any] | list[Any]) -> None:
        if isinstance(raw, (Mapping, list)):
            self.text = ""
            self._json: Any = raw
        else:
            self.text = payload_text(raw)
            self._json = self._UNSET
        self._script: Any = self._UNSET

    @property
    def json_doc(self) -> Any | None:
        if self._json is self._UNSET:
            self._json = try_parse_json(self.text)
        return self._json

    @property
    def script_doc(self) -> dict[str, Any] | None:
        if self._script is self._UNSET:
            self._script = None
            if self.json_doc is None and "<script" in self.text.lower():
                self._script = find_script_json(self.text)
        return self._script


def _first_present(obj: Mapping[str, Any], keys: tuple[str, ...]) -> Any | None:
    for key in keys:
        value = obj.get(key)
        if value is not None and value != "":
            return value
    return None


def _option_list(value: Any) -> list[dict[str, Any]]:
    """Accept a list of option dicts, or a wrapper carrying one under options/values."""
    if isinstance(value, dict):
        for key in ("options", "values"):
            nested = value.get(key)
            if isinstance(nested, list):
                value = nested
                break
        else:
            return []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _availability_flag(option: Mapping[str, Any]) -> Availability:
    for key in AVAILABILITY_KEYS:
        if key not in option:
            continue
        state = coerce_availability(option.get(key))
        if state is not Availability.UNKNOWN:
            return state
    return Availability.UNKNOWN


def variant_from_option(option: Mapping[str, Any]) -> ColorVariant | None:
    """Normalize one color-option entry; entries without an identifier are dropped."""
    raw_id = _first_present(option, VARIANT_ID_KEYS)
    if raw_id is None or isinstance(raw_id, (dict, list)):
        return None
    label = _first_present(option, VARIANT_LABEL_KEYS)
    swatch = {key: option[key] for key in SWATCH_KEYS if option.get(key) is not None}
    return ColorVariant(
        variant_id=str(raw_id).strip(),
        label=str(label).strip() if label is not None else DEFAULT_VARIANT_LABEL,
        swatch=swatch,
        availability=_availability_flag(option),
    )


def _variants_from_options(options: list[dict[str, Any]]) -> tuple[ColorVariant, ...]:
    variants: list[ColorVariant] = []
    seen: set[str] = set()
    for option in options:
        variant = variant_from_option(option)
        if variant is None or not variant.variant_id or variant.variant_id in seen:
            continue
        seen.add(variant.variant_id)
        variants.append(variant)
    return tuple(variants)


def _direct_color_options(product: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Look for color options at the known product-level paths, without recursing."""
    for key in COLOR_OPTION_KEYS:
        options = _option_list(product.get(key))
        if options:
            return options

    variations = product.get("variations")
    if isinstance(variations, dict):
        options = _option_list(variations.get("color"))
        if options:
            return options

    attributes = product.get("variationAttributes")
    if isinstance(attributes, list):
        for attribute in attributes:
            if isinstance(attribute, dict) and str(attribute.get("id", "")).lower() in {"color", "colour"}:
                options = _option_list(attribute.get("values"))
                if options:
                    return options
    return []


def deep_find_options(
    node: Any,
    keys: tuple[str, ...] = DEEP_SEARCH_KEYS,
    max_depth: int = DEEP_SEARCH_MAX_DEPTH,
    depth: int = 0,
) -> tuple[dict[str, Any], list[dict[str, Any]]] | None:
    """Depth-first search for the first non-empty option list under any of ``keys``.

    Returns the owning object together with the options so callers can read
    the product name next to them.
    """
    if depth > max_depth:
        return None
    if isinstance(node, dict):
        for key in keys:
            if key in node:
                options = _option_list(node[key])
                if options and any(_first_present(opt, VARIANT_ID_KEYS) is not None for opt in options):
                    return node, options
        children = list(node.values())
    elif isinstance(node, list):
        children = node
    else:
        return None

    for child in children:
        found = deep_find_options(child, keys, max_depth, depth + 1)
        if found is not None:
            return found
    return None


def _record(
    product: Mapping[str, Any],
    options: list[dict[str, Any]],
    source: str,
    fallback_product_id: str,
    fallback_name: str,
) -> ProductRecord | None:
    variants = _variants_from_options(options)
    if not variants:
        return None
    product_id = _first_present(product, PRODUCT_ID_KEYS)
    name = _first_present(product, PRODUCT_NAME_KEYS)
    return ProductRecord(
        product_id=str(product_id) if isinstance(product_id, (str, int)) else fallback_product_id,
        product_name=str(name) if isinstance(name, str) else fallback_name,
        variants=variants,
        source=source,
    )


def _structured_api(payload: PreparedPayload, product_id: str, name: str) -> ProductRecord | None:
    doc = payload.json_doc
    if not isinstance(doc, dict):
        return None

    candidates: list[Any] = [doc, doc.get("product")]
    data = doc.get("data")
    if isinstance(data, dict):
        candidates.extend([data.get("product"), data])

    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        options = _direct_color_options(candidate)
        if options:
            record = _record(candidate, options, "structured-api", product_id, name)
            if record is not None:
                return record
    return None


def _products_in_page_props(page_props: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Candidate product objects in the order the hydration payload is searched."""
    found: list[dict[str, Any]] = []
    direct = page_props.get("product")
    if isinstance(direct, dict):
        found.append(direct)

    dehydrated = page_props.get("dehydratedState")
    queries = dehydrated.get("queries") if isinstance(dehydrated, dict) else None
    for query in queries if isinstance(queries, list) else []:
        state = query.get("state") if isinstance(query, dict) else None
        data = state.get("data") if isinstance(state, dict) else None
        if not isinstance(data, dict):
            continue
        if isinstance(data.get("product"), dict):
            found.append(data["product"])
        elif any(key in data for key in COLOR_OPTION_KEYS):
            found.append(data)

    initial = page_props.get("initialData")
    if isinstance(initial, dict) and isinstance(initial.get("product"), dict):
        found.append(initial["product"])
    return found


def _embedded_script(payload: PreparedPayload, product_id: str, name: str) -> ProductRecord | None:
    doc = payload.script_doc
    if doc is None:
        return None
    props = doc.get("props")
    page_props = props.get("pageProps") if isinstance(props, dict) else None
    if not isinstance(page_props, dict):
        logger.debug("embedded script found but pageProps missing keys=%s", sorted(doc)[:10])
        return None

    for product in _products_in_page_props(page_props):
        options = _direct_color_options(product)
        if not options:
            nested = deep_find_options(product, keys=COLOR_OPTION_KEYS)
            options = nested[1] if nested else []
        if options:
            record = _record(product, options, "embedded-script", product_id, name)
            if record is not None:
                return record
    return None


def _deep_search(payload: PreparedPayload, product_id: str, name: str) -> ProductRecord | None:
    doc = payload.json_doc if payload.json_doc is not None else payload.script_doc
    if doc is None:
        return None
    found = deep_find_options(doc)
    if found is None:
        return None
    owner, options = found
    return _record(owner, options, "deep-search", product_id, name)


ExtractionStrategy = Callable[[PreparedPayload, str, str], Optional[ProductRecord]]

# Order matters: new upstream shapes are appended, never branched into an earlier strategy.
EXTRACTION_STRATEGIES: tuple[tuple[str, ExtractionStrategy], ...] = (
    ("structured-api", _structured_api),
    ("embedded-script", _embedded_script),
    ("deep-search", _deep_search),
)


def extract_product(
    raw_payload: str | bytes | Mapping[str, Any] | list[Any],
    fallback_product_id: str = "",
    fallback_name: str = "",
    strategies: tuple[tuple[str, ExtractionStrategy], ...] = EXTRACTION_STRATEGIES,
) -> ProductRecord:
    """Run strategies in priority order until one yields a non-empty variant list."""
    payload = PreparedPayload(raw_payload)
    attempted: list[str] = []
    for strategy_name, strategy in strategies:
        attempted.append(strategy_name)
        record = strategy(payload, fallback_product_id, fallback_name)
        if record is not None and record.variants:
            logger.debug(
                "strategy matched name=%s variants=%s attempted=%s",
                strategy_name,
                len(record.variants),
                attempted,
            )
            return ProductRecord(
                product_id=record.product_id,
                product_name=record.product_name,
                variants=record.variants,
                source=record.source,
                evidence=tuple(f"tried:{item}" for item in attempted),
            )
        logger.debug("strategy did not match name=%s", strategy_name)

    raise ExtractionError(stage="no-strategy-matched", detail=",".join(attempted))
