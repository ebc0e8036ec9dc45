from __future__ import annotations

import json

import pytest

from restock_monitor.misc.errors import ExtractionError
from restock_monitor.misc.stock_state import Availability
from restock_monitor.parsers import product_parser
from restock_monitor.parsers.product_parser import deep_find_options, extract_product


def _next_data_page(page_props: dict) -> str:
    blob = json.dumps({"props": {"pageProps": page_props}, "page": "/shop/[slug]"})
    return (
        "<html><head><title>Bird Head Toque</title></head><body>"
        f'<script id="__NEXT_DATA__" type="application/json">{blob}</script>'
        "</body></html>"
    )


def test_structured_api_response_with_british_spelling() -> None:
    payload = json.dumps(
        {
            "data": {
                "product": {
                    "id": "X000006756",
                    "analyticsName": "Bird Head Toque",
                    "colourOptions": {
                        "options": [
                            {"value": "24", "label": "Black", "hexCode": "#000", "available": True},
                            {"value": "25", "label": "Forage", "available": False},
                            {"value": "26", "label": "Tatsu"},
                        ]
                    },
                }
            }
        }
    )

    record = extract_product(payload, fallback_product_id="fallback", fallback_name="fallback")

    assert record.source == "structured-api"
    assert record.product_id == "X000006756"
    assert record.product_name == "Bird Head Toque"
    assert [item.variant_id for item in record.variants] == ["24", "25", "26"]
    assert [item.availability for item in record.variants] == [
        Availability.AVAILABLE,
        Availability.UNAVAILABLE,
        Availability.UNKNOWN,
    ]
    assert record.variants[0].swatch == {"hexCode": "#000"}
    assert record.evidence == ("tried:structured-api",)


def test_structured_api_accepts_american_spelling_and_field_synonyms() -> None:
    payload = {
        "name": "Toque",
        "colorOptions": [
            {"id": "A1", "displayValue": "Graphite", "inStock": "InStock"},
            {"code": "B2", "name": "Orca", "ATC": False},
            {"label": "no id, dropped"},
        ],
    }

    record = extract_product(payload, "P-fallback", "Name fallback")

    assert record.product_id == "P-fallback"
    assert record.product_name == "Toque"
    assert [(item.variant_id, item.label) for item in record.variants] == [("A1", "Graphite"), ("B2", "Orca")]
    assert record.variants[0].availability is Availability.AVAILABLE
    assert record.variants[1].availability is Availability.UNAVAILABLE


def test_embedded_script_direct_product() -> None:
    html = _next_data_page(
        {"product": {"name": "Toque", "colourOptions": [{"value": "1", "label": "Black"}]}}
    )
    record = extract_product(html, "P", "N")
    assert record.source == "embedded-script"
    assert record.variants[0].availability is Availability.UNKNOWN


def test_embedded_script_falls_back_to_cached_query_wrapper() -> None:
    html = _next_data_page(
        {
            "dehydratedState": {
                "queries": [
                    {"state": {"data": {"unrelated": True}}},
                    {
                        "state": {
                            "data": {
                                "product": {
                                    "analyticsName": "Bird Head Toque",
                                    "colorOptions": {"options": [{"value": "7", "label": "Canvas"}]},
                                }
                            }
                        }
                    },
                ]
            }
        }
    )

    record = extract_product(html, "P", "N")

    assert record.source == "embedded-script"
    assert record.product_name == "Bird Head Toque"
    assert [item.label for item in record.variants] == ["Canvas"]
    # Strategies are tried strictly in order.
    assert record.evidence == ("tried:structured-api", "tried:embedded-script")


def test_embedded_script_reads_query_data_with_options_and_initial_data() -> None:
    html = _next_data_page(
        {"dehydratedState": {"queries": [{"state": {"data": {"colourOptions": [{"value": "q1", "label": "Q"}]}}}]}}
    )
    assert extract_product(html, "P", "N").variants[0].variant_id == "q1"

    html = _next_data_page(
        {"initialData": {"product": {"variations": {"color": {"values": [{"id": "i1", "label": "I"}]}}}}}
    )
    assert extract_product(html, "P", "N").variants[0].variant_id == "i1"


def test_deep_search_used_as_last_resort() -> None:
    payload = json.dumps(
        {"page": {"modules": [{"type": "hero"}, {"type": "pdp", "swatches": [{"code": "S1", "colourName": "Sage"}]}]}}
    )
    record = extract_product(payload, "P", "Fallback Name")
    assert record.source == "deep-search"
    assert record.product_name == "Fallback Name"
    assert record.variants[0].label == "Sage"
    assert record.evidence == ("tried:structured-api", "tried:embedded-script", "tried:deep-search")


def test_deep_search_is_depth_bounded() -> None:
    node: dict = {"colorOptions": [{"value": "deep", "label": "Deep"}]}
    for _ in range(12):
        node = {"nested": node}
    assert deep_find_options(node, max_depth=10) is None
    assert deep_find_options(node, max_depth=20) is not None


def test_no_strategy_matched_raises_extraction_error() -> None:
    with pytest.raises(ExtractionError) as excinfo:
        extract_product("<html><body>Nothing here</body></html>", "P", "N")
    assert excinfo.value.stage == "no-strategy-matched"

    with pytest.raises(ExtractionError):
        extract_product(json.dumps({"colourOptions": []}), "P", "N")


def test_strategy_order_is_respected(monkeypatch) -> None:
    calls: list[str] = []

    def make(name: str, matches: bool):
        def strategy(payload, product_id, fallback_name):  # noqa: ANN001, ARG001
            calls.append(name)
            if not matches:
                return None
            return product_parser.ProductRecord(
                product_id=product_id,
                product_name=fallback_name,
                variants=(product_parser.ColorVariant("v", "V"),),
                source=name,
            )

        return strategy

    strategies = (("one", make("one", False)), ("two", make("two", True)), ("three", make("three", True)))
    record = extract_product("{}", "P", "N", strategies=strategies)

    assert calls == ["one", "two"]
    assert record.source == "two"


def test_byte_order_mark_before_json_is_ignored() -> None:
    payload = "\ufeff" + json.dumps({"colourOptions": [{"value": "24", "label": "Black", "available": True}]})
    record = extract_product(payload, "P", "N")
    assert record.source == "structured-api"
    assert record.variants[0].availability is Availability.AVAILABLE

    raw = payload.encode("utf-8")
    assert extract_product(raw, "P", "N").variants[0].variant_id == "24"
