"""
stats.py — Per-category counts and payouts, plus the three category rankings.
"""
import logging
from dataclasses import dataclass

import numpy as np

from fetcher import Record
from ranker import lexical_sort

logger = logging.getLogger(__name__)

# Averages enter the composite key multiplied by this factor.
AVG_SCALE = 10000


@dataclass
class CategoryStats:
    count: int = 0
    total: float = 0.0

    @property
    def average(self) -> float:
        return self.total / self.count


@dataclass(frozen=True)
class RankedEntry:
    value: str
    label: str


RankedList = tuple[RankedEntry, ...]

PLACEHOLDER = RankedEntry(value="", label="")


@dataclass(frozen=True)
class CategoryRankings:
    frequency: RankedList
    pay_total: RankedList
    pay_avg: RankedList


def format_number(value: float) -> str:
    """Shortest round-trip text: 2.0 -> '2', 1e-05 -> '0.00001', 1e21 -> '1e+21'.

    Positional between 1e-6 and 1e21, exponent form outside it.
    """
    x = float(value)
    if x == 0:
        return "0"
    if 1e-6 <= abs(x) < 1e21:
        return np.format_float_positional(x, trim="-")
    return np.format_float_scientific(x, trim="-", exp_digits=1)


def aggregate(records: list[Record]) -> dict[str, CategoryStats]:
    stats: dict[str, CategoryStats] = {}
    for rec in records:
        entry = stats.setdefault(rec.category, CategoryStats())
        entry.count += 1
        entry.total += rec.payout_amount
    logger.info("Aggregated %d records into %d categories", len(records), len(stats))
    return stats


def _ranked(pairs: list[tuple[str, str]]) -> RankedList:
    # composite key "<metric>/<label>"; the metric never contains "/"
    composite = lexical_sort(f"{metric}/{label}" for metric, label in pairs)
    entries = []
    for key in composite:
        value, _, label = key.partition("/")
        entries.append(RankedEntry(value=value, label=label))
    return tuple(entries)


def rank_categories(stats: dict[str, CategoryStats]) -> CategoryRankings:
    """Three independent ascending rankings over the category map."""
    return CategoryRankings(
        frequency=_ranked([(str(s.count), k) for k, s in stats.items()]),
        pay_total=_ranked([(format_number(s.total), k) for k, s in stats.items()]),
        pay_avg=_ranked([(format_number(AVG_SCALE * s.total / s.count), k) for k, s in stats.items()]),
    )
