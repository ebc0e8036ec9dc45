"""Ranked classifier that turns a variant probe response into an availability verdict."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from restock_monitor.misc.stock_state import Availability, coerce_availability
from restock_monitor.parsers.common import find_script_json, try_parse_json

NOTIFY_ME_MARKERS = ("notify me", "notify-me", "notify when available", "join the waitlist", "join waitlist")
ADD_TO_CART_MARKERS = ("add to cart", "add to bag", "add-to-cart", "add-to-bag")
DISABLED_MARKERS = ("disabled", "out of stock", "sold out")
OUT_OF_STOCK_MARKERS = ("out of stock", "sold out", "currently unavailable")

STRUCTURED_FLAG_KEYS = ("ATC", "available", "inStock", "isAvailable")
VARIANT_ID_KEYS = ("value", "id", "colourCode", "code")


@dataclass(slots=True)
class ProbeClassification:
    """Represents the verdict for one probe response."""

    availability: Availability
    evidence: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ProbePage:
    """Lowercased text plus the structured product object, parsed once per probe."""

    lowered: str
    product: Mapping[str, Any] | None
    variant_id: str

    @classmethod
    def parse(cls, text: str, variant_id: str = "") -> ProbePage:
        doc = try_parse_json(text)
        product: Mapping[str, Any] | None = None
        if doc is None and "<script" in text.lower():
            doc = find_script_json(text)
        if isinstance(doc, dict):
            props = doc.get("props")
            page_props = props.get("pageProps") if isinstance(props, dict) else None
            candidate = None
            if isinstance(page_props, dict):
                candidate = page_props.get("product")
            elif isinstance(doc.get("product"), dict):
                candidate = doc["product"]
            elif isinstance(doc.get("data"), dict):
                candidate = doc["data"].get("product")
            if isinstance(candidate, dict):
                product = candidate
        return cls(lowered=text.lower(), product=product, variant_id=variant_id)


def _flag(obj: Mapping[str, Any] | None, key: str) -> Availability:
    if not isinstance(obj, Mapping) or not isinstance(obj.get(key), bool):
        return Availability.UNKNOWN
    return coerce_availability(obj[key])


def _matching_option(product: Mapping[str, Any], variant_id: str) -> Mapping[str, Any] | None:
    for key in ("colourOptions", "colorOptions"):
        options = product.get(key)
        if isinstance(options, dict):
            options = options.get("options")
        if not isinstance(options, list):
            continue
        for option in options:
            if not isinstance(option, dict):
                continue
            if any(str(option.get(id_key, "")) == variant_id for id_key in VARIANT_ID_KEYS):
                return option
    return None


def structured_flag_rule(page: ProbePage) -> Availability:
    product = page.product
    if product is None:
        return Availability.UNKNOWN

    selected = product.get("selectedColour") or product.get("selectedColor")
    option = _matching_option(product, page.variant_id) if page.variant_id else None
    # Product-level flags first, then the selected colour, then the probed option itself.
    for source in (product, selected, option):
        for key in STRUCTURED_FLAG_KEYS:
            state = _flag(source, key)
            if state is not Availability.UNKNOWN:
                return state
    return Availability.UNKNOWN


def notify_me_rule(page: ProbePage) -> Availability:
    if any(marker in page.lowered for marker in NOTIFY_ME_MARKERS):
        return Availability.UNAVAILABLE
    return Availability.UNKNOWN


def add_to_cart_rule(page: ProbePage) -> Availability:
    if not any(marker in page.lowered for marker in ADD_TO_CART_MARKERS):
        return Availability.UNKNOWN
    if any(marker in page.lowered for marker in DISABLED_MARKERS):
        return Availability.UNKNOWN
    return Availability.AVAILABLE


def out_of_stock_text_rule(page: ProbePage) -> Availability:
    if any(marker in page.lowered for marker in OUT_OF_STOCK_MARKERS):
        return Availability.UNAVAILABLE
    return Availability.UNKNOWN


ClassifierRule = Callable[[ProbePage], Availability]

# Highest trust first; the first rule returning a known state wins.
PROBE_RULES: tuple[tuple[str, ClassifierRule], ...] = (
    ("structured-flag", structured_flag_rule),
    ("notify-me", notify_me_rule),
    ("add-to-cart", add_to_cart_rule),
    ("out-of-stock-text", out_of_stock_text_rule),
)


def classify_probe(
    text: str,
    variant_id: str = "",
    rules: tuple[tuple[str, ClassifierRule], ...] = PROBE_RULES,
) -> ProbeClassification:
    """Classify a probe body with the ranked rules; unknown when none matches."""
    page = ProbePage.parse(text, variant_id)
    for name, rule in rules:
        state = rule(page)
        if state is not Availability.UNKNOWN:
            return ProbeClassification(availability=state, evidence=[f"rule:{name}"])
    return ProbeClassification(availability=Availability.UNKNOWN, evidence=["rule:none"])
