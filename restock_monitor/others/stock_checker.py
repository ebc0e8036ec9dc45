"""Settles unknown variant availability with paced, variant-scoped probes."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Protocol

from restock_monitor.misc.config_loader import coerce_positive_int
from restock_monitor.misc.errors import ProbeError
from restock_monitor.misc.http_client import FetchResult
from restock_monitor.misc.logger import get_logger
from restock_monitor.misc.stock_state import Availability
from restock_monitor.misc.url_normalizer import DEFAULT_VARIANT_PARAM, variant_url
from restock_monitor.parsers.availability_classifier import classify_probe
from restock_monitor.parsers.common import ColorVariant, ProductRecord

MAX_PROBE_WORKERS = 4


class ProbeClient(Protocol):
    def get(
        self,
        url: str,
        timeout: float | None = None,
        max_attempts: int | None = None,
        allow_browser_fallback: bool = False,
    ) -> FetchResult: ...


@dataclass(slots=True)
class ProbeOutcome:
    """Result of probing one variant."""

    variant_id: str
    availability: Availability
    evidence: list[str] = field(default_factory=list)


class VariantResolver:
    """Resolves variants left unknown by extraction; known variants never cost a request."""

    def __init__(
        self,
        http_client: ProbeClient,
        product_url: str,
        probe_timeout: float = 15.0,
        max_workers: int = 2,
        variant_param: str = DEFAULT_VARIANT_PARAM,
    ) -> None:
        self.http_client = http_client
        self.product_url = product_url
        self.probe_timeout = probe_timeout
        self.max_workers = coerce_positive_int(max_workers, default=2, maximum=MAX_PROBE_WORKERS)
        self.variant_param = variant_param
        self.logger = get_logger("stock_checker")

    def _fetch_probe(self, variant: ColorVariant) -> str:
        url = variant_url(self.product_url, variant.variant_id, self.variant_param)
        # Pacing between probes is enforced by the client's shared per-host limiter.
        response = self.http_client.get(url, timeout=self.probe_timeout, max_attempts=1)
        if not response.ok:
            raise ProbeError(variant.variant_id, response.error or f"status={response.status_code}")
        if not response.text.strip():
            raise ProbeError(variant.variant_id, "empty-body")
        return response.text

    def probe(self, variant: ColorVariant) -> ProbeOutcome:
        """Probe one variant; any failure degrades to unknown instead of propagating."""
        try:
            body = self._fetch_probe(variant)
            verdict = classify_probe(body, variant.variant_id)
        except ProbeError as exc:
            self.logger.warning("probe failed variant=%s reason=%s", exc.variant_id, exc.reason)
            return ProbeOutcome(variant.variant_id, Availability.UNKNOWN, [f"probe-error:{exc.reason}"])
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("probe crashed variant=%s error=%s", variant.variant_id, exc)
            return ProbeOutcome(variant.variant_id, Availability.UNKNOWN, [f"probe-error:{exc}"])

        self.logger.debug(
            "probe classified variant=%s label=%s availability=%s evidence=%s",
            variant.variant_id,
            variant.label,
            verdict.availability.name,
            verdict.evidence,
        )
        return ProbeOutcome(variant.variant_id, verdict.availability, verdict.evidence)

    def resolve(self, record: ProductRecord) -> ProductRecord:
        """Return a copy of ``record`` with unknown variants probed, in the original order."""
        targets = record.unknown_variants()
        if not targets:
            self.logger.info("all variants resolved from product data, no probes needed")
            return record

        self.logger.info(
            "probing unknown variants count=%s of=%s workers=%s",
            len(targets),
            len(record.variants),
            self.max_workers,
        )
        outcomes: dict[str, ProbeOutcome] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(targets))) as pool:
            future_map = {pool.submit(self.probe, variant): variant for variant in targets}
            for future in as_completed(future_map):
                variant = future_map[future]
                outcomes[variant.variant_id] = future.result()

        resolved = [
            variant.with_availability(outcomes[variant.variant_id].availability)
            if variant.variant_id in outcomes
            else variant
            for variant in record.variants
        ]
        still_unknown = sum(1 for item in resolved if item.availability is Availability.UNKNOWN)
        if still_unknown:
            self.logger.info("variants left unknown after probing count=%s", still_unknown)
        return record.with_variants(resolved)
