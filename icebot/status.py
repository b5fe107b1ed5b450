"""Invoice status extraction for the Sell.app invoice document."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Callable, Optional

ACCEPTED_STATUSES = frozenset({"PAID", "COMPLETED", "FULFILLED", "SUCCESS"})

FALLBACK_KEYS = ("state", "payment_status", "status_text")

# A probe returns the status it found, or None to hand over to the next probe.
Probe = Callable[[Mapping], Optional[str]]


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _status_of(entry: Any) -> Optional[str]:
    if isinstance(entry, Mapping):
        return _text(entry.get("status"))
    return None


def _latest_status(history: Any) -> Optional[str]:
    if not _is_sequence(history):
        return None
    for entry in reversed(history):
        found = _status_of(entry)
        if found:
            return found
    return None


# -- Probes --

def _flat_status(doc: Mapping) -> Optional[str]:
    return _text(doc.get("status"))


def _nested_status(doc: Mapping) -> Optional[str]:
    outer = doc.get("status")
    if not isinstance(outer, Mapping):
        return None
    inner = outer.get("status")
    found = _text(inner)
    if found:
        return found
    if isinstance(inner, Mapping):
        found = _text(inner.get("status"))
        if found:
            return found
    return _latest_status(outer.get("history"))


def _history_status(doc: Mapping) -> Optional[str]:
    return _latest_status(doc.get("history"))


def _fallback_status(doc: Mapping) -> Optional[str]:
    for key in FALLBACK_KEYS:
        value = doc.get(key)
        found = _text(value) or _status_of(value)
        if found:
            return found
    return None


def _item_status(doc: Mapping) -> Optional[str]:
    items = doc.get("items")
    if not _is_sequence(items):
        return None
    for item in items:
        found = _status_of(item)
        if found:
            return found
    return None


PROBES: tuple[Probe, ...] = (
    _flat_status,
    _nested_status,
    _history_status,
    _fallback_status,
    _item_status,
)


def extract_status(document: Any) -> Optional[str]:
    """Return the invoice status from any of the known document shapes, or None."""
    if not isinstance(document, Mapping):
        return None
    for probe in PROBES:
        found = probe(document)
        if found:
            return found
    return None


def normalize_status(document: Any) -> Optional[str]:
    """Extracted status, uppercased."""
    found = extract_status(document)
    return found.upper() if found else None


def is_eligible(status: Optional[str]) -> bool:
    return bool(status) and status.upper() in ACCEPTED_STATUSES


def resolve_product_id(document: Any) -> Optional[str]:
    """Product id of the invoice, falling back to the first line item."""
    if not isinstance(document, Mapping):
        return None
    if document.get("product_id"):
        return str(document["product_id"])
    items = document.get("items")
    if _is_sequence(items) and items and isinstance(items[0], Mapping):
        first = items[0]
        for key in ("product_id", "id", "sku"):
            if first.get(key):
                return str(first[key])
    return None
