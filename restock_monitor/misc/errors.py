"""Error taxonomy shared by the fetch, extraction, probe and notification layers."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all monitor errors."""


class ConfigError(MonitorError):
    """Startup configuration is unusable."""


class FetchError(MonitorError):
    """Upstream could not be reached; aborts the current cycle."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"fetch failed url={url} reason={reason}")
        self.url = url
        self.reason = reason


class ExtractionError(MonitorError):
    """No extraction strategy produced a variant list; aborts the current cycle."""

    def __init__(self, stage: str, detail: str = "") -> None:
        message = f"extraction failed stage={stage}"
        if detail:
            message = f"{message} detail={detail}"
        super().__init__(message)
        self.stage = stage
        self.detail = detail


class ProbeError(MonitorError):
    """A single variant probe failed; the variant degrades to unknown."""

    def __init__(self, variant_id: str, reason: str) -> None:
        super().__init__(f"probe failed variant={variant_id} reason={reason}")
        self.variant_id = variant_id
        self.reason = reason


class NotificationError(MonitorError):
    """Chat dispatch failed; logged only."""
