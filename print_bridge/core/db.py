from __future__ import annotations

"""
SQLite persistence for Print Bridge orders, print jobs and the webhook audit log.

Features:
- DB path resolution with env/XDG defaults
- One shared connection per Store, serialized by a re-entrant lock so the
  Flask request threads, the scheduler worker and the poller can share it
- PRAGMAs for reliability: foreign_keys=ON, WAL, synchronous=NORMAL
- Schema bootstrap (schema_version = 1)
- Dedup via UNIQUE(orders.external_id); a duplicate insert returns None
- Print job state transitions as single-row conditional UPDATEs, so a
  transition only happens from the state it expects
"""

import json
import logging
import os
import sqlite3
import threading
import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from print_bridge.core.errors import NotFoundError
from print_bridge.core.models import DocumentKind, JobStatus, LineItem, Order, PrintJob

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

JOB_STATUSES = tuple(s.value for s in JobStatus)


# ----- Path resolution -------------------------------------------------------


def get_db_path() -> str:
    """
    Resolve the database path using:
    1) PRINTBRIDGE_DB_PATH (env)
    2) $XDG_DATA_HOME/printbridge/data.db
    3) ~/.local/share/printbridge/data.db
    """
    if "PRINTBRIDGE_DB_PATH" in os.environ:
        return os.environ["PRINTBRIDGE_DB_PATH"]
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return str(Path(xdg) / "printbridge" / "data.db")
    return str(Path.home() / ".local" / "share" / "printbridge" / "data.db")


def _ensure_parent_dir(p: str) -> None:
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)


# ----- Utilities -------------------------------------------------------------


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _iso_ago(seconds: float) -> str:
    return (datetime.now(timezone.utc) - timedelta(seconds=seconds)).isoformat(timespec="microseconds")


def _row_to_order(row: sqlite3.Row) -> Order:
    items = tuple(LineItem.from_dict(d) for d in json.loads(row["line_items"] or "[]"))
    return Order(
        id=int(row["id"]),
        external_id=row["external_id"],
        order_number=row["order_number"],
        status=row["status"],
        customer_name=row["customer_name"],
        customer_email=row["customer_email"],
        line_items=items,
        subtotal=Decimal(row["subtotal"]),
        shipping_total=Decimal(row["shipping_total"]),
        tax_total=Decimal(row["tax_total"]),
        order_total=Decimal(row["order_total"]),
        notes=row["notes"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_job(row: sqlite3.Row) -> PrintJob:
    keys = row.keys()
    return PrintJob(
        id=row["id"],
        order_id=int(row["order_id"]),
        kind=DocumentKind(row["kind"]),
        status=JobStatus(row["status"]),
        priority=int(row["priority"]),
        attempts=int(row["attempts"]),
        retry_base=int(row["retry_base"]),
        last_error=row["last_error"],
        dispatch_id=row["dispatch_id"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        order_number=row["order_number"] if "order_number" in keys else None,
        customer_name=row["customer_name"] if "customer_name" in keys else None,
    )


_JOB_SELECT = """
    SELECT j.*, o.order_number AS order_number, o.customer_name AS customer_name
    FROM print_jobs j
    JOIN orders o ON o.id = j.order_id
"""


class Store:
    """
    Durable record of orders and print jobs.

    Every public method is one transaction. Callers never see a half-written
    order: the order row and its print jobs are inserted together.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or get_db_path()
        self._lock = threading.RLock()
        self.conn = self._connect(self.path)
        self._ensure_schema()

    # ----- Connection management ---------------------------------------------

    @staticmethod
    def _apply_pragmas(db: sqlite3.Connection) -> None:
        db.execute("PRAGMA foreign_keys = ON")
        try:
            db.execute("PRAGMA journal_mode = WAL")
        except sqlite3.DatabaseError:
            pass
        db.execute("PRAGMA synchronous = NORMAL")

    def _connect(self, path: str) -> sqlite3.Connection:
        _ensure_parent_dir(path)
        conn = sqlite3.connect(path, check_same_thread=False, timeout=10)
        conn.row_factory = sqlite3.Row
        self._apply_pragmas(conn)
        return conn

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def ping(self) -> bool:
        try:
            with self._lock:
                self.conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error:
            return False

    # ----- Schema ------------------------------------------------------------

    def _ensure_schema(self) -> None:
        with self._lock, self.conn as db:
            db.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                  id              INTEGER PRIMARY KEY AUTOINCREMENT,
                  external_id     INTEGER UNIQUE,
                  order_number    TEXT NOT NULL,
                  status          TEXT NOT NULL,
                  customer_name   TEXT NOT NULL,
                  customer_email  TEXT,
                  line_items      TEXT NOT NULL,
                  subtotal        TEXT NOT NULL,
                  shipping_total  TEXT NOT NULL,
                  tax_total       TEXT NOT NULL,
                  order_total     TEXT NOT NULL,
                  notes           TEXT,
                  created_at      TEXT NOT NULL
                )
                """,
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS print_jobs (
                  id            TEXT PRIMARY KEY,
                  order_id      INTEGER NOT NULL,
                  kind          TEXT NOT NULL CHECK (kind IN ('receipt', 'kitchen')),
                  status        TEXT NOT NULL DEFAULT 'pending'
                                CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
                  priority      INTEGER NOT NULL DEFAULT 0,
                  attempts      INTEGER NOT NULL DEFAULT 0,
                  retry_base    INTEGER NOT NULL DEFAULT 0,
                  last_error    TEXT,
                  dispatch_id   TEXT,
                  completed_at  TEXT,
                  created_at    TEXT NOT NULL,
                  updated_at    TEXT NOT NULL,
                  FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE
                )
                """,
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_print_jobs_order ON print_jobs(order_id)")
            db.execute("CREATE INDEX IF NOT EXISTS idx_print_jobs_status ON print_jobs(status, priority)")
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS webhook_logs (
                  id          INTEGER PRIMARY KEY AUTOINCREMENT,
                  payload     TEXT NOT NULL,
                  signature   TEXT,
                  verified    INTEGER NOT NULL DEFAULT 0,
                  processed   INTEGER NOT NULL DEFAULT 0,
                  error       TEXT,
                  created_at  TEXT NOT NULL
                )
                """,
            )
            row = db.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
            if row is None:
                db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    # ----- Orders ------------------------------------------------------------

    def create_order(self, order: Order, kinds: Iterable[DocumentKind]) -> Optional[Tuple[Order, List[PrintJob]]]:
        """
        Insert an order and one pending job per kind.

        Returns None when an order with the same external_id already exists;
        the UNIQUE constraint is the dedup check, so two racing imports of one
        order cannot both succeed.
        """
        created_at = order.created_at.astimezone(timezone.utc).isoformat(timespec="microseconds")
        try:
            with self._lock, self.conn as db:
                cur = db.execute(
                    """
                    INSERT INTO orders (external_id, order_number, status, customer_name, customer_email,
                                        line_items, subtotal, shipping_total, tax_total, order_total,
                                        notes, created_at)
                    VALUES (?,?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        order.external_id,
                        order.order_number,
                        order.status,
                        order.customer_name,
                        order.customer_email,
                        json.dumps([item.to_dict() for item in order.line_items]),
                        str(order.subtotal),
                        str(order.shipping_total),
                        str(order.tax_total),
                        str(order.order_total),
                        order.notes,
                        created_at,
                    ),
                )
                order_id = int(cur.lastrowid)
                job_ids = [self._insert_job(db, order_id, kind) for kind in kinds]
        except sqlite3.IntegrityError as e:
            if "external_id" in str(e):
                logger.info("Order external_id=%s already stored (%s)", order.external_id, e)
                return None
            raise
        stored = self.get_order(order_id)
        if stored is None:
            raise NotFoundError("Order", order_id)
        return stored, [j for j in (self.get_job(jid) for jid in job_ids) if j is not None]

    def get_order(self, order_id: int) -> Optional[Order]:
        with self._lock:
            row = self.conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        return _row_to_order(row) if row else None

    def get_order_by_external_id(self, external_id: int) -> Optional[Order]:
        with self._lock:
            row = self.conn.execute("SELECT * FROM orders WHERE external_id = ?", (external_id,)).fetchone()
        return _row_to_order(row) if row else None

    def count_orders(self) -> int:
        with self._lock:
            return int(self.conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0])

    # ----- Print jobs --------------------------------------------------------

    @staticmethod
    def _insert_job(db: sqlite3.Connection, order_id: int, kind: DocumentKind) -> str:
        job_id = uuid.uuid4().hex
        now = _iso_now()
        db.execute(
            """
            INSERT INTO print_jobs (id, order_id, kind, status, priority, attempts, retry_base, created_at, updated_at)
            VALUES (?,?,?,?,?,0,0,?,?)
            """,
            (job_id, order_id, kind.value, JobStatus.PENDING.value, kind.priority, now, now),
        )
        return job_id

    def create_jobs(self, order_id: int, kinds: Iterable[DocumentKind]) -> List[PrintJob]:
        with self._lock, self.conn as db:
            job_ids = [self._insert_job(db, order_id, kind) for kind in kinds]
        return [j for j in (self.get_job(jid) for jid in job_ids) if j is not None]

    def get_job(self, job_id: str) -> Optional[PrintJob]:
        with self._lock:
            row = self.conn.execute(f"{_JOB_SELECT} WHERE j.id = ?", (job_id,)).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, status: Optional[str] = None, limit: int = 100) -> List[PrintJob]:
        """
        Return jobs newest first, optionally filtered by status.
        """
        sql = _JOB_SELECT
        params: List[Any] = []
        if status:
            sql += " WHERE j.status = ?"
            params.append(status)
        sql += " ORDER BY j.created_at DESC LIMIT ?"
        params.append(int(limit))
        with self._lock:
            rows = self.conn.execute(sql, params).fetchall()
        return [_row_to_job(r) for r in rows]

    def list_jobs_for_order(self, order_id: int) -> List[PrintJob]:
        with self._lock:
            rows = self.conn.execute(
                f"{_JOB_SELECT} WHERE j.order_id = ? ORDER BY j.priority DESC, j.created_at ASC",
                (order_id,),
            ).fetchall()
        return [_row_to_job(r) for r in rows]

    def pending_job_ids(self) -> List[str]:
        """Pending jobs in dispatch order (priority desc, oldest first)."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT id FROM print_jobs WHERE status = 'pending' ORDER BY priority DESC, created_at ASC",
            ).fetchall()
        return [r["id"] for r in rows]

    def count_jobs_by_status(self) -> Dict[str, int]:
        counts = {s: 0 for s in JOB_STATUSES}
        with self._lock:
            rows = self.conn.execute("SELECT status, COUNT(*) AS n FROM print_jobs GROUP BY status").fetchall()
        for r in rows:
            counts[r["status"]] = int(r["n"])
        return counts

    def _transition(self, job_id: str, expected: JobStatus, sql_set: str, params: Tuple[Any, ...]) -> bool:
        with self._lock, self.conn as db:
            cur = db.execute(
                f"UPDATE print_jobs SET {sql_set}, updated_at = ? WHERE id = ? AND status = ?",
                (*params, _iso_now(), job_id, expected.value),
            )
            return cur.rowcount == 1

    def claim_job(self, job_id: str, dispatch_id: str) -> Optional[PrintJob]:
        """
        pending -> processing, bumping attempts and recording the dispatch id.
        Returns the claimed job, or None when the job is gone or not pending.
        """
        ok = self._transition(
            job_id,
            JobStatus.PENDING,
            "status = 'processing', attempts = attempts + 1, dispatch_id = ?",
            (dispatch_id,),
        )
        return self.get_job(job_id) if ok else None

    def complete_job(self, job_id: str) -> bool:
        return self._transition(
            job_id,
            JobStatus.PROCESSING,
            "status = 'completed', completed_at = ?, last_error = NULL",
            (_iso_now(),),
        )

    def release_job(self, job_id: str, error: str) -> bool:
        """processing -> pending after a failed attempt that will be retried."""
        return self._transition(job_id, JobStatus.PROCESSING, "status = 'pending', last_error = ?", (error,))

    def fail_job(self, job_id: str, error: str) -> bool:
        return self._transition(job_id, JobStatus.PROCESSING, "status = 'failed', last_error = ?", (error,))

    def reset_failed_job(self, job_id: str) -> bool:
        """
        failed -> pending for a manual retry. attempts is left alone; retry_base
        moves up to it so the job gets a fresh automatic-retry budget.
        """
        return self._transition(
            job_id,
            JobStatus.FAILED,
            "status = 'pending', last_error = NULL, retry_base = attempts",
            (),
        )

    def delete_job(self, job_id: str) -> bool:
        with self._lock, self.conn as db:
            cur = db.execute("DELETE FROM print_jobs WHERE id = ?", (job_id,))
            return cur.rowcount > 0

    def requeue_stale_jobs(self, older_than_seconds: float, exclude: Iterable[str] = ()) -> List[str]:
        """
        Put jobs stuck in processing (not touched for `older_than_seconds`) back to pending.
        Returns the ids that were moved.
        """
        cutoff = _iso_ago(older_than_seconds)
        skip = set(exclude)
        moved: List[str] = []
        with self._lock, self.conn as db:
            rows = db.execute(
                "SELECT id FROM print_jobs WHERE status = 'processing' AND updated_at <= ?",
                (cutoff,),
            ).fetchall()
            for r in rows:
                if r["id"] in skip:
                    continue
                cur = db.execute(
                    """
                    UPDATE print_jobs SET status = 'pending', last_error = ?, updated_at = ?
                    WHERE id = ? AND status = 'processing'
                    """,
                    ("requeued after stale processing state", _iso_now(), r["id"]),
                )
                if cur.rowcount == 1:
                    moved.append(r["id"])
        return moved

    # ----- Webhook audit log -------------------------------------------------

    def create_webhook_log(self, payload: str, signature: Optional[str]) -> int:
        with self._lock, self.conn as db:
            cur = db.execute(
                "INSERT INTO webhook_logs (payload, signature, verified, processed, created_at) VALUES (?,?,0,0,?)",
                (payload, signature, _iso_now()),
            )
            return int(cur.lastrowid)

    def update_webhook_log(
        self,
        log_id: int,
        *,
        verified: Optional[bool] = None,
        processed: Optional[bool] = None,
        error: Optional[str] = None,
    ) -> None:
        sets: List[str] = []
        params: List[Any] = []
        if verified is not None:
            sets.append("verified = ?")
            params.append(int(verified))
        if processed is not None:
            sets.append("processed = ?")
            params.append(int(processed))
        if error is not None:
            sets.append("error = ?")
            params.append(error)
        if not sets:
            return
        with self._lock, self.conn as db:
            db.execute(f"UPDATE webhook_logs SET {', '.join(sets)} WHERE id = ?", (*params, log_id))

    def get_webhook_log(self, log_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self.conn.execute("SELECT * FROM webhook_logs WHERE id = ?", (log_id,)).fetchone()
        if row is None:
            return None
        return {
            "id": int(row["id"]),
            "payload": row["payload"],
            "signature": row["signature"],
            "verified": bool(row["verified"]),
            "processed": bool(row["processed"]),
            "error": row["error"],
            "created_at": row["created_at"],
        }


__all__ = ["JOB_STATUSES", "SCHEMA_VERSION", "Store", "get_db_path"]
