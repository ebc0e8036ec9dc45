"""Defines the canonical product/variant records produced by the parsers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from bs4 import BeautifulSoup

from restock_monitor.misc.stock_state import Availability

NEXT_DATA_SCRIPT_ID = "__NEXT_DATA__"


@dataclass(frozen=True, slots=True)
class ColorVariant:
    """One purchasable color option of the product."""
    variant_id: str
    label: str
    swatch: dict[str, Any] = field(default_factory=dict)
    availability: Availability = Availability.UNKNOWN

    def with_availability(self, availability: Availability) -> ColorVariant:
        return replace(self, availability=availability)


@dataclass(frozen=True, slots=True)
class ProductRecord:
    """Variants of one product as returned by the first extraction strategy that matched."""
    product_id: str
    product_name: str
    variants: tuple[ColorVariant, ...]
    source: str
    evidence: tuple[str, ...] = ()

    def with_variants(self, variants: list[ColorVariant] | tuple[ColorVariant, ...]) -> ProductRecord:
        return replace(self, variants=tuple(variants))

    def unknown_variants(self) -> list[ColorVariant]:
        return [item for item in self.variants if item.availability is Availability.UNKNOWN]


def payload_text(raw: str | bytes) -> str:
    """Decode raw fetch bytes; upstream pages are UTF-8."""
    if isinstance(raw, bytes):
        return raw.decode("utf-8-sig", errors="replace")
    return raw


def try_parse_json(text: str) -> Any | None:
    """Parse JSON text, returning None for anything that is not a JSON document."""
    stripped = text.lstrip("\ufeff").strip()
    if not stripped or stripped[0] not in "{[":
        return None
    try:
        return json.loads(stripped)
    except ValueError:
        return None


def find_script_json(html: str) -> dict[str, Any] | None:
    """Locate the framework hydration blob embedded in an HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    node = soup.find("script", id=NEXT_DATA_SCRIPT_ID)
    candidates = [node] if node is not None else []
    candidates.extend(soup.find_all("script", attrs={"type": "application/json"}))
    for script in candidates:
        parsed = try_parse_json(script.string or script.get_text() or "")
        if isinstance(parsed, dict):
            if script is node or isinstance(parsed.get("props"), dict):
                return parsed
    return None
