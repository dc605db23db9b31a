"""
report.py — Fixed-width table rendering and body template assembly. Pure sync.
"""
import logging
import math
import os
from datetime import datetime
from string import Template

from fetcher import Record, Window
from settings import FieldWidths, JobSettings
from stats import PLACEHOLDER, AVG_SCALE, CategoryRankings, RankedEntry, RankedList, format_number

logger = logging.getLogger(__name__)

BAR_ESCAPE = "&#124;"
ROW_LEAD = "   |"


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def center(text: str, width: int) -> str:
    """Pad both sides a space at a time; a one-char overshoot loses its first char."""
    while len(text) < width:
        text = " " + text + " "
    if len(text) == width + 1:
        text = text[1:]
    return text


def left(text: str, width: int) -> str:
    return text.ljust(width)


def precision_for(decimal: float) -> int:
    return int(math.floor(1.0 / decimal + 0.5))


def format_money(value: float, decimal: float, currency: str = "$") -> str:
    """Round half up to the configured resolution: 1.23456 @ 0.001 -> '$1.235'."""
    precision = precision_for(decimal)
    rounded = math.floor(value * precision + 0.5) / precision
    return currency + format_number(rounded)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def _cells(
    entry: RankedEntry,
    rank: int,
    widths: FieldWidths,
    money: bool,
    scale: float,
    decimal: float,
    currency: str,
) -> str:
    value = entry.value
    if money and value != "":
        value = format_money(float(value) / scale, decimal, currency)
    idx = center(str(rank), widths.idx)
    return f"{idx}|{center(value, widths.cnt)}|{left(' ' + entry.label, widths.name)}|"


def format_table(
    ranked: RankedList,
    widths: FieldWidths,
    money: bool = False,
    scale: float = 1.0,
    decimal: float = 0.001,
    currency: str = "$",
) -> list[str]:
    """Render an ascending ranked list as two rank/value/label triples per row.

    Rank 1 is the last (largest) entry. An odd-length list gets a blank entry
    prepended so it splits evenly and ends up as the last rank. Row j holds
    ranks j and j + half.
    """
    entries = list(ranked)
    if len(entries) % 2:
        entries.insert(0, PLACEHOLDER)
    entries.reverse()

    half = len(entries) // 2
    cells = [
        _cells(e, i + 1, widths, money, scale, decimal, currency)
        for i, e in enumerate(entries)
    ]
    return [ROW_LEAD + a + b for a, b in zip(cells[:half], cells[half:])]


def format_record_rows(
    records: list[Record],
    widths: FieldWidths,
    decimal: float = 0.001,
    currency: str = "$",
) -> list[str]:
    """One row per record, best first. Titles link to the matching URL line."""
    rows = []
    for i, rec in enumerate(records, 1):
        idx = center(str(i), widths.idx)
        pay = center(format_money(rec.payout_amount, decimal, currency), widths.cnt)
        title = left(rec.title.replace("|", BAR_ESCAPE), widths.title)
        rows.append(
            f"{ROW_LEAD}{idx}|{pay}|{left(rec.category, widths.type)}|"
            f"{left(rec.author, widths.author)}|[{title}][{i}]|"
        )
    return rows


def format_url_rows(records: list[Record], url_base: str = "") -> list[str]:
    return [f"[{i}]: {url_base}{rec.url}" for i, rec in enumerate(records, 1)]


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def build_substitutions(
    window: Window,
    now_iso: str,
    count: int,
    rankings: CategoryRankings,
    top: list[Record],
    settings: JobSettings,
) -> dict[str, str]:
    w = settings.widths
    money = {"decimal": settings.decimal, "currency": settings.currency}
    return {
        "YESTERDAY": window.start_iso,
        "TODAY": window.end_iso,
        "NOW": now_iso,
        "COUNT": str(count),
        "LIMIT": str(settings.count),
        "type_freq": "\n".join(format_table(rankings.frequency, w)),
        "type_pay_total": "\n".join(format_table(rankings.pay_total, w, money=True, **money)),
        "type_pay_avg": "\n".join(
            format_table(rankings.pay_avg, w, money=True, scale=AVG_SCALE, **money)
        ),
        "type_pay_blog": "\n".join(format_record_rows(top, w, **money)),
        "type_url_blog": "\n".join(format_url_rows(top, settings.publish.url_base)),
    }


def assemble(template: str, substitutions: dict[str, str]) -> str:
    """Single-pass $marker substitution; unknown markers are left as written."""
    return Template(template).safe_substitute(substitutions)


def make_title(prefix: str, now: datetime) -> str:
    return prefix + now.strftime("%Y-%m-%d")


def save_report(report_md: str, reports_dir: str, day: str) -> str:
    """Write report to disk; returns the file path."""
    os.makedirs(reports_dir, exist_ok=True)
    path = os.path.join(reports_dir, f"{day}.md")
    with open(path, "w", encoding="utf-8") as f:
        f.write(report_md)
    logger.info("Report saved to %s", path)
    return path
