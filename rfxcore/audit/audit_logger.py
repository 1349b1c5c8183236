#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Audit Logger: append-only audit trail writer for the RFX engine.

Logs actions and pipeline progress events to the audit_trail table.
No UPDATE/DELETE operations.

Usage:
    python -m rfxcore.audit.audit_logger \
        --event-type "proposal.generated" \
        --actor "proposal_pipeline" \
        --action "Generated proposal for RFP-2024-001" \
        --rfp-id "RFP-2024-001" \
        --json

A pipeline run is recorded by subscribing an AuditSink to its channel:

    AuditSink(db_path, run_id="RUN-1").attach(channel)
"""

import argparse
import json
import logging
import os
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from rfxcore.rfx.events import ProgressEvent

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DB_PATH = Path(os.environ.get(
    "RFX_AUDIT_DB_PATH", str(BASE_DIR / "data" / "rfx_audit.db")
))

_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_trail (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    event_type TEXT NOT NULL,
    actor TEXT NOT NULL,
    action TEXT NOT NULL,
    rfp_id TEXT DEFAULT '',
    run_id TEXT DEFAULT '',
    metadata TEXT DEFAULT '{}'
)
"""


def init_audit_db(db_path=None) -> Path:
    """Create the audit_trail table (and parent directory) if missing."""
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


_INSERT = """INSERT INTO audit_trail
   (id, timestamp, event_type, actor, action, rfp_id, run_id, metadata)
   VALUES (?, ?, ?, ?, ?, ?, ?, ?)"""


def _make_entry(event_type: str, actor: str, action: str, rfp_id: str = "",
                metadata: dict = None, run_id: str = "") -> dict:
    return {
        "id": str(uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "actor": actor,
        "action": action,
        "rfp_id": rfp_id,
        "run_id": run_id,
        "metadata": json.dumps(metadata or {}),
    }


def write_entries(entries: list, db_path=None) -> int:
    """Insert prepared entries in a single transaction. Returns the row count."""
    if not entries:
        return 0
    path = init_audit_db(db_path)
    conn = sqlite3.connect(str(path))
    try:
        conn.executemany(_INSERT, [
            (e["id"], e["timestamp"], e["event_type"], e["actor"], e["action"],
             e["rfp_id"], e["run_id"], e["metadata"])
            for e in entries
        ])
        conn.commit()
    finally:
        conn.close()
    return len(entries)


def log_event(event_type: str, actor: str, action: str,
              rfp_id: str = "", metadata: dict = None,
              run_id: str = "", db_path=None) -> dict:
    """Append an event to the audit trail. Returns the entry."""
    entry = _make_entry(event_type, actor, action, rfp_id, metadata, run_id)
    write_entries([entry], db_path)
    return entry


def read_events(db_path=None, run_id: str = "") -> list:
    """Return audit rows in insertion order, optionally for one run."""
    path = Path(db_path or DB_PATH)
    if not path.exists():
        return []
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    try:
        if run_id:
            rows = conn.execute(
                "SELECT * FROM audit_trail WHERE run_id = ? ORDER BY rowid", (run_id,)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM audit_trail ORDER BY rowid").fetchall()
    finally:
        conn.close()
    return [dict(r) for r in rows]


class AuditSink:
    """Progress channel subscriber that persists every event.

    Events are buffered in memory and written in one transaction by flush(),
    so no database I/O happens on the event loop while a run is in flight.
    attach() subscribes the sink and flushes it when the channel closes.
    """

    def __init__(self, db_path=None, run_id: str = "", rfp_id: str = ""):
        self.db_path = init_audit_db(db_path)
        self.run_id = run_id or f"RUN-{uuid4().hex[:12]}"
        self.rfp_id = rfp_id
        self._pending = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def attach(self, channel):
        channel.subscribe(self)
        channel.on_close(self.flush)
        return self

    def __call__(self, event: ProgressEvent):
        self._pending.append(_make_entry(
            event_type=f"pipeline.{event.level.value}",
            actor=event.component.value,
            action=event.message,
            rfp_id=self.rfp_id,
            metadata={"event_id": event.event_id, "event_timestamp": event.timestamp},
            run_id=self.run_id,
        ))

    def flush(self) -> int:
        """Write buffered events. Returns the number of rows written."""
        entries, self._pending = self._pending, []
        written = write_entries(entries, self.db_path)
        logger.debug("Audit sink %s wrote %d events", self.run_id, written)
        return written


def main():
    parser = argparse.ArgumentParser(description="Audit Logger")
    parser.add_argument("--event-type", required=True)
    parser.add_argument("--actor", required=True)
    parser.add_argument("--action", required=True)
    parser.add_argument("--rfp-id", default="")
    parser.add_argument("--db-path", default=None)
    parser.add_argument("--json", action="store_true")
    args = parser.parse_args()

    try:
        result = log_event(args.event_type, args.actor, args.action, args.rfp_id,
                           db_path=args.db_path)
    except (sqlite3.Error, OSError) as exc:
        if args.json:
            print(json.dumps({"error": str(exc)}))
        else:
            print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(f"Logged: [{result['event_type']}] {result['action']}")


if __name__ == "__main__":
    main()
