"""
ranker.py — Collision-safe keys and top-N selection.

Keys are compared as plain strings, not numbers: "10" sorts before "2".
Published reports depend on this order, so it is kept as is.
"""
import logging
from typing import Callable, Iterable, TypeVar

from fetcher import Record

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lexical_sort(keys: Iterable[str]) -> list[str]:
    return sorted(keys)


def disambiguate(items: Iterable[T], key_fn: Callable[[T], str]) -> dict[str, T]:
    """Map each item to a unique key, appending "2", "3", ... on collision."""
    keyed: dict[str, T] = {}
    for item in items:
        base = key_fn(item)
        key = base
        n = 1
        while key in keyed:
            n += 1
            key = f"{base}{n}"
        keyed[key] = item
    return keyed


def payout_key(record: Record) -> str:
    return record.payout


def rank_top_n(
    records: list[Record],
    key_fn: Callable[[Record], str],
    n: int,
) -> list[Record]:
    """Return the n highest-keyed records, highest first."""
    if n <= 0 or not records:
        return []
    keyed = disambiguate(records, key_fn)
    ordered = lexical_sort(keyed)
    top = ordered[-n:]
    logger.debug("rank_top_n: %d keys, kept %d", len(ordered), len(top))
    return [keyed[k] for k in reversed(top)]
