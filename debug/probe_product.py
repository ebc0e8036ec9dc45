from __future__ import annotations

import argparse

from restock_monitor.misc.config_loader import load_settings
from restock_monitor.misc.errors import ExtractionError
from restock_monitor.misc.http_client import HttpClient
from restock_monitor.others.stock_checker import VariantResolver
from restock_monitor.parsers.product_parser import extract_product


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("url", nargs="?", help="Product URL to probe (defaults to the configured one)")
    parser.add_argument("--resolve", action="store_true", help="Also probe variants left unknown")
    args = parser.parse_args()

    settings = load_settings("config/config.json")
    url = args.url or settings.product_url
    client = HttpClient(settings)
    result = client.get(url, allow_browser_fallback=settings.browser_fallback)
    print("tier=", result.tier, "status=", result.status_code, "final=", result.final_url)
    if not result.ok:
        print("error=", result.error)
        return

    try:
        record = extract_product(result.text, settings.product_id, settings.product_name)
    except ExtractionError as exc:
        print("extraction failed:", exc)
        return
    print("product=", record.product_name, "id=", record.product_id, "source=", record.source)
    print("evidence=", record.evidence)

    if args.resolve:
        record = VariantResolver(
            client,
            url,
            probe_timeout=settings.probe_timeout_seconds,
            max_workers=settings.probe_workers,
            variant_param=settings.variant_param,
        ).resolve(record)
    for variant in record.variants:
        print(f"  {variant.variant_id:<12} {variant.label:<30} {variant.availability.label}")


if __name__ == "__main__":
    main()
