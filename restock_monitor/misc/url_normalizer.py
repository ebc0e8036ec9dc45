"""Builds the product and variant-scoped URLs the monitor fetches."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

DEFAULT_VARIANT_PARAM = "color"


def extract_domain(url: str) -> str:
    """Return the lowercased host, without port, used as the rate-limit key."""
    return (urlparse(url).hostname or "").lower()


def variant_url(product_url: str, variant_id: str, param: str = DEFAULT_VARIANT_PARAM) -> str:
    """Return ``product_url`` with the variant-selection query parameter set to ``variant_id``.

    An existing value for the same parameter is replaced; other query
    parameters and the fragment-free path are kept as they are.
    """
    parsed = urlparse(product_url)
    pairs = [(key, value) for key, value in parse_qsl(parsed.query, keep_blank_values=True) if key != param]
    pairs.append((param, variant_id))
    return urlunparse(parsed._replace(query=urlencode(pairs), fragment=""))
