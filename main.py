"""
main.py — Async orchestration entry point for the daily category report job.
"""
import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import httpx

import delivery
import fetcher
import ranker
import report
import stats
import storage
from errors import AuditWriteError, ReportJobError
from settings import JobSettings, load_settings, load_template

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

HERE = os.path.dirname(os.path.abspath(__file__))
LOGS_DIR = os.path.join(HERE, "logs")

CORRELATION_ID = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ") + "-" + uuid.uuid4().hex[:6]


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": CORRELATION_ID,
        }
        if record.exc_info:
            obj["exc"] = self.formatException(record.exc_info)
        return json.dumps(obj)


def setup_logging(log_level: str = "INFO", logs_dir: str = LOGS_DIR) -> None:
    os.makedirs(logs_dir, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(log_level)

    # JSON file handler
    log_path = os.path.join(logs_dir, f"{CORRELATION_ID}.jsonl")
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setFormatter(JSONFormatter())
    root.addHandler(fh)

    # Human-readable stream handler (terminal / cron mail)
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(name)s - %(message)s"))
    root.addHandler(sh)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Main pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JobResult:
    count: int
    published: bool
    permlink: Optional[str] = None
    report_path: Optional[str] = None


async def write_audit_logged(settings: JobSettings, document: dict) -> None:
    """Audit failures are reported and swallowed; they never decide the run's outcome."""
    try:
        doc_id = await storage.write_audit(settings.audit.db_path, settings.audit.collection, document)
        logger.info("Audit record %s written to '%s'", doc_id, settings.audit.collection)
    except AuditWriteError as exc:
        logger.error("Audit write failed: %s", exc)


async def run_job(
    settings: JobSettings,
    template: str,
    client: httpx.AsyncClient,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> JobResult:
    now = now or datetime.now(timezone.utc)
    now_iso = fetcher.iso_z(now)

    # Stage 1: Window
    window = fetcher.Window.for_days_before(settings.days_before, now)
    logger.info("Stage 1: retrieving from %s to %s", window.start_iso, window.end_iso)

    # Stage 2: Paginate
    records = await fetcher.fetch_window(client, settings.feed, window)
    logger.info("Stage 2 complete: %d records", len(records))

    if not records:
        logger.info("No records in window; skipping report and publish")
        await write_audit_logged(settings, {
            "count": 0,
            "yesterday": window.start_iso,
            "today": window.end_iso,
            "now": now_iso,
        })
        return JobResult(count=0, published=False)

    # Stage 3: Rank + aggregate
    top = ranker.rank_top_n(records, ranker.payout_key, settings.count)
    category_stats = stats.aggregate(records)
    rankings = stats.rank_categories(category_stats)
    logger.info("Stage 3: %d categories, top %d records", len(category_stats), len(top))

    # Stage 4: Format + assemble
    substitutions = report.build_substitutions(window, now_iso, len(records), rankings, top, settings)
    body = report.assemble(template, substitutions)
    title = report.make_title(settings.title, now)
    permlink = delivery.make_permlink(settings.publish.permlink_prefix, window)
    report_path = report.save_report(body, settings.reports_dir, window.start.strftime("%Y-%m-%d"))
    logger.info("Stage 4: report '%s' assembled (%d chars)", title, len(body))

    # Stage 5: Publish
    published = False
    if dry_run:
        logger.info("Stage 5: dry run, not publishing %s", permlink)
    else:
        post = delivery.Post(
            author=settings.publish.author,
            permlink=permlink,
            parent_permlink=settings.publish.parent_permlink,
            title=title,
            body=body,
            json_metadata=dict(settings.publish.json_metadata),
        )
        await delivery.publish(client, post, settings.publish)
        published = True
        logger.info("Stage 5: published at %s", datetime.now(timezone.utc).isoformat())

    # Stage 6: Audit
    await write_audit_logged(settings, {
        **substitutions,
        "count": len(records),
        "title": title,
        "author": settings.publish.author,
        "permlink": permlink,
        "json_metadata": dict(settings.publish.json_metadata),
        "published": published,
    })

    return JobResult(count=len(records), published=published, permlink=permlink, report_path=report_path)


async def run(settings: JobSettings, template: str, dry_run: bool = False) -> JobResult:
    async with httpx.AsyncClient() as client:
        return await run_job(settings, template, client, dry_run=dry_run)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Daily category report job")
    parser.add_argument("--config", default=os.path.join(HERE, "config.yaml"),
                        help="Path to settings YAML (default: config.yaml beside main.py)")
    parser.add_argument("--days-before", type=int, dest="days_before",
                        help="Window offset in days (overrides settings)")
    parser.add_argument("--count", type=int, help="Top-N record count (overrides settings)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Assemble and save the report locally without publishing")
    parser.add_argument("--log-level", dest="log_level", help="Logging level (overrides settings)")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    overrides = {"days_before": args.days_before, "count": args.count, "log_level": args.log_level}

    try:
        settings = load_settings(args.config, overrides)
        template = load_template(settings)
    except ReportJobError as exc:
        setup_logging()
        logger.error("Startup failed: %s", exc)
        return 1

    setup_logging(settings.log_level)
    logger.info("Starting run. correlation_id=%s", CORRELATION_ID)

    try:
        result = asyncio.run(run(settings, template, dry_run=args.dry_run))
    except ReportJobError as exc:
        logger.error("Run aborted: %s: %s", type(exc).__name__, exc)
        return 1

    logger.info(
        "Run complete. records=%d, published=%s, permlink=%s",
        result.count, result.published, result.permlink,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
