"""
storage.py — Async SQLite audit log via aiosqlite.
Each run appends one opaque JSON document under a named collection.
"""
import json
import os
import uuid
from datetime import datetime, timezone

import aiosqlite

from errors import AuditWriteError


async def get_db(db_path: str) -> aiosqlite.Connection:
    db = await aiosqlite.connect(db_path)
    await db.execute("PRAGMA journal_mode=WAL")
    return db


async def init_db(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            id          TEXT PRIMARY KEY,
            collection  TEXT NOT NULL,
            ts_utc      TEXT NOT NULL,
            document    TEXT NOT NULL
        )
    """)
    await db.execute(
        "CREATE INDEX IF NOT EXISTS audit_log_collection ON audit_log(collection, ts_utc)"
    )
    await db.commit()


async def write_audit(db_path: str, collection: str, document: dict) -> str:
    """Append one document; returns its id. Every failure surfaces as AuditWriteError."""
    doc_id = uuid.uuid4().hex
    ts = datetime.now(timezone.utc).isoformat()
    try:
        payload = json.dumps(document, ensure_ascii=False, default=str)
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        db = await get_db(db_path)
        try:
            await init_db(db)
            await db.execute(
                "INSERT INTO audit_log(id, collection, ts_utc, document) VALUES (?, ?, ?, ?)",
                (doc_id, collection, ts, payload),
            )
            await db.commit()
        finally:
            await db.close()
    except (aiosqlite.Error, OSError, TypeError, ValueError) as exc:
        raise AuditWriteError(f"audit write to '{collection}' failed: {exc}") from exc
    return doc_id


async def read_audit(db_path: str, collection: str) -> list[dict]:
    db = await get_db(db_path)
    try:
        await init_db(db)
        async with db.execute(
            "SELECT document FROM audit_log WHERE collection = ? ORDER BY ts_utc, rowid",
            (collection,),
        ) as cur:
            rows = await cur.fetchall()
    finally:
        await db.close()
    return [json.loads(r[0]) for r in rows]
