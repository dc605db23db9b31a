"""
delivery.py — Async publish of the assembled report.
"""
import logging
import os
import re
from dataclasses import asdict, dataclass, field

import httpx

from errors import PublishError
from fetcher import Window
from settings import PublishSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Post:
    author: str
    permlink: str
    parent_permlink: str
    title: str
    body: str
    json_metadata: dict = field(default_factory=dict)
    parent_author: str = ""


def make_permlink(prefix: str, window: Window) -> str:
    """Stable per report day: ('Daily Types!', 2026-10-17 window) -> 'daily-types-2026-10-17'."""
    slug = re.sub(r"[^a-z0-9]+", "-", prefix.lower()).strip("-")
    day = window.start.strftime("%Y-%m-%d")
    return f"{slug}-{day}" if slug else day


async def publish(client: httpx.AsyncClient, post: Post, cfg: PublishSettings) -> dict:
    """POST the post to the publish endpoint. Any failure raises PublishError."""
    key = os.environ.get(cfg.posting_key_env)
    if not key:
        raise PublishError(f"publish: env var {cfg.posting_key_env} not set")

    payload = asdict(post)
    headers = {"Authorization": f"Bearer {key}"}
    try:
        resp = await client.post(cfg.url, json=payload, headers=headers, timeout=cfg.timeout_s)
    except httpx.HTTPError as exc:
        raise PublishError(f"publish request failed: {exc}") from exc

    if resp.status_code // 100 != 2:
        raise PublishError(f"publish returned status {resp.status_code}: {resp.text[:200]}")

    logger.info("Published %s/%s", post.author, post.permlink)
    try:
        return resp.json()
    except ValueError:
        return {}
