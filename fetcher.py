"""
fetcher.py — Async paginated feed retrieval for one UTC day window.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from dateutil import parser as dateutil_parser

from errors import UpstreamError
from settings import FeedSettings

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "DailyTypeReport/1.0 (+scheduled report job)",
    "Accept-Encoding": "gzip",
}


@dataclass(frozen=True)
class Record:
    author: str
    permlink: str
    created: datetime
    category: str
    payout: str
    title: str
    url: str

    @property
    def identity(self) -> tuple[str, str]:
        return (self.author, self.permlink)

    @property
    def payout_amount(self) -> float:
        return parse_amount(self.payout)

    @classmethod
    def from_post(cls, post: dict) -> "Record":
        """Build a Record from one feed item. Naive `created` values are UTC."""
        try:
            created = dateutil_parser.isoparse(post["created"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamError(f"post has no usable 'created' field: {exc}") from exc
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        else:
            created = created.astimezone(timezone.utc)

        meta = post.get("json_metadata") or {}
        if isinstance(meta, str):
            try:
                meta = json.loads(meta)
            except json.JSONDecodeError:
                meta = {}
        category = meta.get("type", "") if isinstance(meta, dict) else ""

        payout = str(post.get("total_payout_value", "0"))
        try:
            parse_amount(payout)
        except ValueError as exc:
            raise UpstreamError(f"post has unparseable payout {payout!r}") from exc

        return cls(
            author=str(post.get("author", "")),
            permlink=str(post.get("permlink", "")),
            created=created,
            category=str(category or ""),
            payout=payout,
            title=str(post.get("title", "")),
            url=str(post.get("url", "")),
        )


def parse_amount(value: str) -> float:
    """'1.500 SBD' -> 1.5"""
    parts = value.split()
    return float(parts[0]) if parts else 0.0


@dataclass(frozen=True)
class Window:
    """Half-open UTC interval [start, end)."""
    start: datetime
    end: datetime

    @classmethod
    def for_days_before(cls, days_before: int, now: Optional[datetime] = None) -> "Window":
        now = now or datetime.now(timezone.utc)
        anchor = now.astimezone(timezone.utc) - timedelta(days=days_before)
        end = anchor.replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(start=end - timedelta(days=1), end=end)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    @property
    def start_iso(self) -> str:
        return iso_z(self.start)

    @property
    def end_iso(self) -> str:
        return iso_z(self.end)


def iso_z(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def fetch_page(
    client: httpx.AsyncClient,
    feed: FeedSettings,
    offset: int,
) -> list[dict]:
    """GET one page of posts, newest first. No retries: any failure aborts the run."""
    params = {"sortBy": "created", "limit": feed.page_size, "skip": offset}
    try:
        resp = await client.get(feed.url, params=params, headers=HEADERS, timeout=feed.timeout_s)
    except httpx.HTTPError as exc:
        raise UpstreamError(f"feed request failed at skip={offset}: {exc}") from exc

    if resp.status_code // 100 != 2:
        raise UpstreamError(f"Unsupported status code: {resp.status_code} (skip={offset})")

    try:
        data = resp.json()
    except ValueError as exc:
        raise UpstreamError(f"feed returned invalid JSON at skip={offset}") from exc

    if isinstance(data, dict):
        data = data.get("results")
    if not isinstance(data, list):
        raise UpstreamError(f"feed returned no post list at skip={offset}")
    return data


async def fetch_window(
    client: httpx.AsyncClient,
    feed: FeedSettings,
    window: Window,
) -> list[Record]:
    """Collect every post created inside `window`.

    Pages are requested one after another because the stop test needs the
    oldest timestamp of the page just received. Paging ends on an empty page
    or once a page reaches back past window.start.
    """
    records: list[Record] = []
    seen: set[tuple[str, str]] = set()
    offset = 0
    pages = 0

    while True:
        posts = await fetch_page(client, feed, offset)
        pages += 1
        if not posts:
            logger.info("Feed exhausted at skip=%d", offset)
            break

        oldest: Optional[datetime] = None
        kept = 0
        for post in posts:
            rec = Record.from_post(post)
            if oldest is None or rec.created < oldest:
                oldest = rec.created
            if window.contains(rec.created) and rec.identity not in seen:
                seen.add(rec.identity)
                records.append(rec)
                kept += 1
        logger.debug("Page skip=%d: %d posts, %d in window, oldest=%s", offset, len(posts), kept, oldest)

        if oldest < window.start:
            break
        offset += feed.page_size

    logger.info(
        "Fetched %d records in [%s, %s) over %d pages",
        len(records), window.start_iso, window.end_iso, pages,
    )
    return records
