"""Stable identifiers for discovered type symbols."""

from __future__ import annotations

from typing import Sequence, Tuple
from urllib.parse import quote, unquote

ID_SEPARATOR = "#"
CHAIN_SEPARATOR = "/"


def type_id(unit: str, chain: Sequence[str]) -> str:
    """Return the id of the symbol reached through *chain* inside *unit*.

    The whole containment chain is encoded, so ``a::Config`` and
    ``b::Config`` in the same file get different ids. Segments are
    percent-encoded so that neither separator can appear inside one.
    """
    if not chain:
        raise ValueError("symbol chain must not be empty")
    segments = CHAIN_SEPARATOR.join(quote(name, safe="") for name in chain)
    return f"{unit}{ID_SEPARATOR}{segments}"


def split_type_id(node_id: str) -> Tuple[str, Tuple[str, ...]]:
    """Inverse of :func:`type_id`."""
    unit, sep, segments = node_id.rpartition(ID_SEPARATOR)
    if not sep or not segments:
        raise ValueError(f"not a type id: {node_id!r}")
    return unit, tuple(unquote(s) for s in segments.split(CHAIN_SEPARATOR))
