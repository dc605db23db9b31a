"""End-to-end tests for the report pipeline with a mocked feed and publisher."""
import asyncio
import json

import httpx
import pytest

import main
from conftest import NOW, FakeFeed
from errors import PublishError, UpstreamError
from settings import AuditSettings, load_template
from storage import read_audit


class Upstream:
    """Routes feed GETs to a FakeFeed and records publish POSTs."""

    def __init__(self, feed: FakeFeed, publish_status: int = 200) -> None:
        self.feed = feed
        self.publish_status = publish_status
        self.published: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.published.append(json.loads(request.content))
            return httpx.Response(self.publish_status, json={"ok": self.publish_status == 200})
        return self.feed(request)


def _run(settings, template, upstream, dry_run=False):
    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
            return await main.run_job(settings, template, client, now=NOW, dry_run=dry_run)
    return asyncio.run(_go())


def _audit(settings) -> list[dict]:
    return asyncio.run(read_audit(settings.audit.db_path, settings.audit.collection))


@pytest.fixture
def scenario_posts(make_post) -> list[dict]:
    return [
        make_post("2026-10-18T03:00:00", author="late"),
        make_post("2026-10-17T20:00:00", author="ann", category="blog", payout="1.000 XYZ", title="First"),
        make_post("2026-10-17T12:00:00", author="ben", category="blog", payout="1.000 XYZ", title="Second"),
        make_post("2026-10-17T06:00:00", author="cat", category="tutorial", payout="2.000 XYZ", title="Third"),
        make_post("2026-10-16T23:00:00", author="early"),
    ]


@pytest.fixture(autouse=True)
def posting_key(monkeypatch):
    monkeypatch.setenv("TEST_POSTING_KEY", "secret")


class TestRunJob:
    def test_end_to_end(self, settings, scenario_posts) -> None:
        template = load_template(settings)
        upstream = Upstream(FakeFeed(scenario_posts))
        result = _run(settings, template, upstream)

        assert result.count == 3
        assert result.published
        assert result.permlink == "daily-types-2026-10-17"

        (post,) = upstream.published
        assert post["title"] == "Daily Types - 2026-10-18"
        assert post["author"] == "reporter"
        body_lines = post["body"].splitlines()
        assert body_lines[0] == "3 posts"
        # frequency table: blog (2) ranks first, tutorial (1) beside it
        assert body_lines[1] == "   | 1 |  2  | blog   | 2 |  1  | tutorial|"
        # top 2 by payout: the 2.000 record first
        assert body_lines[2] == "   | 1 | $2  |tutorial|cat   |[Third     ][1]|"
        assert body_lines[3].startswith("   | 2 | $1  |blog  |")
        assert body_lines[4] == "[1]: https://steemit.com/@cat/" + scenario_posts[3]["permlink"]

        (doc,) = _audit(settings)
        assert doc["count"] == 3
        assert doc["permlink"] == "daily-types-2026-10-17"
        assert doc["published"] is True
        assert doc["YESTERDAY"] == "2026-10-17T00:00:00.000Z"
        assert doc["LIMIT"] == "2"

        with open(result.report_path, encoding="utf-8") as f:
            assert f.read() == post["body"]

    def test_empty_window_skips_publish_but_audits(self, settings, make_post) -> None:
        upstream = Upstream(FakeFeed([make_post("2026-10-16T10:00:00")]))
        result = _run(settings, "$COUNT", upstream)

        assert result == main.JobResult(count=0, published=False)
        assert upstream.published == []
        (doc,) = _audit(settings)
        assert doc["count"] == 0
        assert doc["today"] == "2026-10-18T00:00:00.000Z"

    def test_upstream_failure_aborts_without_publish_or_audit(self, settings, scenario_posts) -> None:
        upstream = Upstream(FakeFeed(scenario_posts, fail_at_skip=0))
        with pytest.raises(UpstreamError):
            _run(settings, "$COUNT", upstream)
        assert upstream.published == []
        assert _audit(settings) == []

    def test_publish_failure_is_fatal(self, settings, scenario_posts) -> None:
        upstream = Upstream(FakeFeed(scenario_posts), publish_status=500)
        with pytest.raises(PublishError):
            _run(settings, "$COUNT", upstream)
        assert _audit(settings) == []

    def test_audit_failure_does_not_fail_run(self, settings, scenario_posts, tmp_path) -> None:
        broken = settings.model_copy(update={"audit": AuditSettings(db_path=str(tmp_path), collection="types")})
        upstream = Upstream(FakeFeed(scenario_posts))
        result = _run(broken, "$COUNT", upstream)
        assert result.published
        assert len(upstream.published) == 1

    def test_dry_run_saves_but_does_not_publish(self, settings, scenario_posts) -> None:
        upstream = Upstream(FakeFeed(scenario_posts))
        result = _run(settings, "$COUNT", upstream, dry_run=True)
        assert not result.published
        assert upstream.published == []
        with open(result.report_path, encoding="utf-8") as f:
            assert f.read() == "3"
        (doc,) = _audit(settings)
        assert doc["published"] is False


class TestMain:
    def test_missing_config_exits_nonzero(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(main, "setup_logging", lambda *a, **kw: None)
        assert main.main(["--config", str(tmp_path / "absent.yaml")]) == 1

    def test_parse_args_overrides(self) -> None:
        args = main.parse_args(["--days-before", "2", "--count", "5", "--dry-run"])
        assert (args.days_before, args.count, args.dry_run) == (2, 5, True)
