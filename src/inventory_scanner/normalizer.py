"""
Asset record normalization.

Final pass before a record leaves the pipeline. Pure and idempotent:
normalize_asset(normalize_asset(a)) == normalize_asset(a).
"""

from __future__ import annotations

import dataclasses
import re

from ._types import AssetRecord, AssetType

# A letter at string start or after a space, hyphen or underscore
_WORD_START = re.compile(r"(^|[ \-_])([a-z])")


def title_case(value: str) -> str:
    """Lowercase, then capitalize the first letter of each word."""
    return _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), value.lower())


def _reclassify(asset: AssetRecord, attributes: dict[str, str]) -> AssetType:
    model = asset.model.lower()
    category = attributes.get("category", "").lower()
    if "switch" in model or "network" in model or "switch" in category or "network" in category:
        return AssetType.NETWORK_EQUIPMENT
    if "printer" in model or "printer" in category:
        return AssetType.PRINTER
    return AssetType.COMPUTER


def normalize_asset(asset: AssetRecord) -> AssetRecord:
    """
    Canonicalize free-text fields and guarantee the record invariants.

    Returns a new record; the input is not modified.
    """
    attributes = dict(asset.attributes or {})
    asset_type = asset.type
    if not asset_type or asset_type == AssetType.UNKNOWN:
        asset_type = _reclassify(asset, attributes)

    return dataclasses.replace(
        asset,
        type=asset_type,
        vendor=title_case(asset.vendor.strip()),
        hostname=asset.hostname.strip().lower(),
        model=asset.model.strip(),
        attributes=attributes,
    )
