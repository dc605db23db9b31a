"""
Shared pytest fixtures for the report job test suite.

Provides:
  - ``raw_settings`` / ``settings``: a complete settings mapping whose file
    paths all live under the test's tmp_path.
  - ``make_post``: factory for feed items in the upstream JSON shape.
  - ``FakeFeed``: an httpx.MockTransport handler that serves a fixed,
    newest-first post list honouring ``skip``/``limit`` and counts requests.
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from settings import parse_settings

NOW = datetime(2026, 10, 18, 22, 0, tzinfo=timezone.utc)


@pytest.fixture
def raw_settings(tmp_path) -> dict:
    template = tmp_path / "body.md"
    template.write_text("$COUNT posts\n$type_freq\n$type_pay_blog\n$type_url_blog\n", encoding="utf-8")
    return {
        "days_before": 0,
        "count": 2,
        "decimal": 0.001,
        "title": "Daily Types - ",
        "body_template": str(template),
        "reports_dir": str(tmp_path / "reports"),
        "widths": {"idx": 3, "cnt": 5, "name": 8, "type": 6, "author": 6, "title": 10},
        "feed": {"url": "https://feed.test/api/posts/", "page_size": 4},
        "publish": {
            "url": "https://publish.test/comment",
            "author": "reporter",
            "parent_permlink": "cn",
            "permlink_prefix": "daily-types",
            "posting_key_env": "TEST_POSTING_KEY",
            "url_base": "https://steemit.com",
            "json_metadata": {"tags": ["cn"]},
        },
        "audit": {"db_path": str(tmp_path / "audit.sqlite"), "collection": "types"},
    }


@pytest.fixture
def settings(raw_settings, tmp_path):
    return parse_settings(raw_settings, base_dir=str(tmp_path))


@pytest.fixture
def make_post():
    counter = {"n": 0}

    def _make(
        created: str,
        author: str = "alice",
        category: str = "blog",
        payout: str = "1.000 XYZ",
        title: str = "A post",
        permlink: str = "",
    ) -> dict:
        counter["n"] += 1
        permlink = permlink or f"post-{counter['n']}"
        return {
            "created": created,
            "author": author,
            "permlink": permlink,
            "url": f"/@{author}/{permlink}",
            "title": title,
            "total_payout_value": payout,
            "json_metadata": {"type": category},
        }

    return _make


class FakeFeed:
    def __init__(self, posts: list[dict], wrap: bool = False, fail_at_skip: int = -1) -> None:
        self.posts = posts
        self.wrap = wrap
        self.fail_at_skip = fail_at_skip
        self.requests: list[httpx.Request] = []

    @property
    def skips(self) -> list[int]:
        return [int(r.url.params["skip"]) for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        skip = int(request.url.params["skip"])
        limit = int(request.url.params["limit"])
        if skip == self.fail_at_skip:
            return httpx.Response(503, text="unavailable")
        page = self.posts[skip:skip + limit]
        body = {"results": page} if self.wrap else page
        return httpx.Response(200, content=json.dumps(body).encode("utf-8"))
