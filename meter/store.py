"""SQLite-backed store shared by the CLI, the TUI and the watch companion.

Every public method is one transaction. Nothing here coordinates between
processes beyond SQLite's own locking: callers re-read state instead.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from meter.models import (
    CLIENT_FIELDS,
    DEFAULT_CURRENCY,
    DEFAULT_DESCRIPTION,
    SETTINGS_TEXT_FIELDS,
    Client,
    Entry,
    InvoiceRecord,
    InvoiceSettings,
    PomodoroConfig,
    Project,
    to_iso,
    utcnow,
)

logger = logging.getLogger(__name__)

BUSY_TIMEOUT = 5.0

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project TEXT NOT NULL,
    description TEXT NOT NULL,
    start TEXT NOT NULL,
    end TEXT,
    billed INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    rate REAL,
    currency TEXT DEFAULT '$'
);
CREATE TABLE IF NOT EXISTS clients (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    contact_person TEXT NOT NULL DEFAULT '',
    address_street TEXT NOT NULL DEFAULT '',
    address_city TEXT NOT NULL DEFAULT '',
    address_state TEXT NOT NULL DEFAULT '',
    address_postal TEXT NOT NULL DEFAULT '',
    address_country TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS invoice_settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    business_name TEXT NOT NULL DEFAULT '',
    address_street TEXT NOT NULL DEFAULT '',
    address_city TEXT NOT NULL DEFAULT '',
    address_state TEXT NOT NULL DEFAULT '',
    address_postal TEXT NOT NULL DEFAULT '',
    address_country TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT '',
    phone TEXT NOT NULL DEFAULT '',
    tax_id TEXT NOT NULL DEFAULT '',
    default_payment_terms TEXT NOT NULL DEFAULT 'Net 30',
    default_tax_rate REAL NOT NULL DEFAULT 0,
    payment_instructions TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS pomodoro_config (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    enabled INTEGER NOT NULL DEFAULT 0,
    work_duration INTEGER NOT NULL DEFAULT 45,
    short_break INTEGER NOT NULL DEFAULT 15,
    long_break INTEGER NOT NULL DEFAULT 60,
    cycles_before_long INTEGER NOT NULL DEFAULT 4
);
CREATE TABLE IF NOT EXISTS invoices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_number INTEGER NOT NULL,
    client_id INTEGER REFERENCES clients(id) ON DELETE SET NULL,
    date_issued TEXT NOT NULL,
    due_date TEXT NOT NULL,
    subtotal REAL NOT NULL,
    tax_rate REAL NOT NULL,
    tax_amount REAL NOT NULL,
    total REAL NOT NULL,
    file_path TEXT NOT NULL
);
INSERT OR IGNORE INTO invoice_settings (id) VALUES (1);
INSERT OR IGNORE INTO pomodoro_config (id) VALUES (1);
"""

ENTRY_COLUMNS = "id, project, description, start, end, billed"


class StoreError(Exception):
    """Raised for any database failure. Callers recover; nothing retries."""


class Store:
    """Durable CRUD for entries, projects, clients, settings and invoices."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.path), timeout=BUSY_TIMEOUT)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open database {self.path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        with self._tx() as conn:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.executescript(SCHEMA)
        self.sync_projects_from_entries()

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as e:
            logger.error("Store operation failed: %s", e)
            raise StoreError(str(e)) from e

    # ── Entries ───────────────────────────────────────────────

    def _insert_entry(self, conn: sqlite3.Connection, entry: Entry) -> int:
        self._ensure_project(conn, entry.project)
        cur = conn.execute(
            "INSERT INTO entries (project, description, start, end, billed) VALUES (?, ?, ?, ?, ?)",
            (
                entry.project,
                entry.description,
                to_iso(entry.start or utcnow()),
                to_iso(entry.end) if entry.end else None,
                1 if entry.billed else 0,
            ),
        )
        return int(cur.lastrowid)

    def start_timer(
        self, project: str, description: str = DEFAULT_DESCRIPTION, at: datetime | None = None
    ) -> Entry:
        """Insert a running entry. Does not check for an existing active entry."""
        entry = Entry(project=project, description=description, start=at or utcnow())
        with self._tx() as conn:
            entry.id = self._insert_entry(conn, entry)
        logger.info("Started timer %d for project %r", entry.id, project)
        return entry

    def add_entry(
        self, project: str, description: str, start: datetime, end: datetime, billed: bool = False
    ) -> Entry:
        """Insert a finished (manual, backdated) entry."""
        entry = Entry(project=project, description=description, start=start, end=end, billed=billed)
        with self._tx() as conn:
            entry.id = self._insert_entry(conn, entry)
        return entry

    def get_active_entry(self) -> Entry | None:
        with self._tx() as conn:
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM entries WHERE end IS NULL ORDER BY start DESC LIMIT 1"
            ).fetchone()
        return Entry.from_row(row) if row else None

    def stop_active_timer(self, at: datetime | None = None) -> Entry | None:
        """Set end on the active entry. Returns None if nothing was running."""
        with self._tx() as conn:
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM entries WHERE end IS NULL ORDER BY start DESC LIMIT 1"
            ).fetchone()
            if row is None:
                return None
            entry = Entry.from_row(row)
            end = at or utcnow()
            if entry.start and end < entry.start:
                end = entry.start
            conn.execute("UPDATE entries SET end = ? WHERE id = ?", (to_iso(end), entry.id))
        entry.end = end
        logger.info("Stopped timer %d", entry.id)
        return entry

    def get_entry(self, entry_id: int) -> Entry | None:
        with self._tx() as conn:
            row = conn.execute(
                f"SELECT {ENTRY_COLUMNS} FROM entries WHERE id = ?", (entry_id,)
            ).fetchone()
        return Entry.from_row(row) if row else None

    def list_entries(self, billed: bool | None = None) -> list[Entry]:
        """All entries, newest first, optionally filtered by billed flag."""
        sql = f"SELECT {ENTRY_COLUMNS} FROM entries"
        args: tuple = ()
        if billed is not None:
            sql += " WHERE billed = ?"
            args = (1 if billed else 0,)
        with self._tx() as conn:
            rows = conn.execute(sql + " ORDER BY start DESC", args).fetchall()
        return [Entry.from_row(r) for r in rows]

    def list_entries_in_range(
        self, start: datetime, end: datetime, billed: bool | None = None
    ) -> list[Entry]:
        """Finished entries whose end falls within [start, end]."""
        sql = (
            f"SELECT {ENTRY_COLUMNS} FROM entries "
            "WHERE end IS NOT NULL AND end >= ? AND end <= ?"
        )
        args: list = [to_iso(start), to_iso(end)]
        if billed is not None:
            sql += " AND billed = ?"
            args.append(1 if billed else 0)
        with self._tx() as conn:
            rows = conn.execute(sql + " ORDER BY start DESC", args).fetchall()
        return [Entry.from_row(r) for r in rows]

    def update_entry(self, entry: Entry) -> bool:
        """Persist every field of an existing entry. False if it no longer exists."""
        with self._tx() as conn:
            self._ensure_project(conn, entry.project)
            cur = conn.execute(
                "UPDATE entries SET project = ?, description = ?, start = ?, end = ?, billed = ? "
                "WHERE id = ?",
                (
                    entry.project,
                    entry.description,
                    to_iso(entry.start or utcnow()),
                    to_iso(entry.end) if entry.end else None,
                    1 if entry.billed else 0,
                    entry.id,
                ),
            )
        return cur.rowcount > 0

    def delete_entry(self, entry_id: int) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
        return cur.rowcount > 0

    def mark_billed(self, entry_id: int) -> bool:
        """Mark a finished entry as billed. Running entries are never billed."""
        with self._tx() as conn:
            cur = conn.execute(
                "UPDATE entries SET billed = 1 WHERE id = ? AND end IS NOT NULL", (entry_id,)
            )
        return cur.rowcount > 0

    def unmark_billed(self, entry_id: int) -> bool:
        with self._tx() as conn:
            cur = conn.execute("UPDATE entries SET billed = 0 WHERE id = ?", (entry_id,))
        return cur.rowcount > 0

    def mark_all_billed(self) -> int:
        with self._tx() as conn:
            cur = conn.execute("UPDATE entries SET billed = 1 WHERE billed = 0 AND end IS NOT NULL")
        return cur.rowcount

    def unmark_all_billed(self) -> int:
        with self._tx() as conn:
            cur = conn.execute("UPDATE entries SET billed = 0 WHERE billed = 1")
        return cur.rowcount

    # ── Projects ──────────────────────────────────────────────

    def _ensure_project(self, conn: sqlite3.Connection, name: str) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO projects (name, currency) VALUES (?, ?)", (name, DEFAULT_CURRENCY)
        )

    def get_or_create_project(self, name: str) -> Project:
        with self._tx() as conn:
            self._ensure_project(conn, name)
            row = conn.execute(
                "SELECT id, name, rate, currency FROM projects WHERE name = ?", (name,)
            ).fetchone()
        return Project.from_row(row)

    def get_project(self, name: str) -> Project | None:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT id, name, rate, currency FROM projects WHERE name = ?", (name,)
            ).fetchone()
        return Project.from_row(row) if row else None

    def set_project_rate(self, name: str, rate: float | None, currency: str | None = None) -> Project:
        """Set (or clear, with rate=None) a project's hourly rate, creating the project if needed."""
        with self._tx() as conn:
            self._ensure_project(conn, name)
            conn.execute(
                "UPDATE projects SET rate = ?, currency = ? WHERE name = ?",
                (rate, currency or DEFAULT_CURRENCY, name),
            )
            row = conn.execute(
                "SELECT id, name, rate, currency FROM projects WHERE name = ?", (name,)
            ).fetchone()
        return Project.from_row(row)

    def list_projects(self) -> list[Project]:
        with self._tx() as conn:
            rows = conn.execute(
                "SELECT id, name, rate, currency FROM projects ORDER BY name COLLATE NOCASE"
            ).fetchall()
        return [Project.from_row(r) for r in rows]

    def sync_projects_from_entries(self) -> int:
        """Create project rows for entry project names that have none."""
        with self._tx() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO projects (name, currency) "
                "SELECT DISTINCT project, ? FROM entries",
                (DEFAULT_CURRENCY,),
            )
        return cur.rowcount

    # ── Pomodoro config ───────────────────────────────────────

    def get_pomodoro_config(self) -> PomodoroConfig:
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM pomodoro_config WHERE id = 1").fetchone()
        return PomodoroConfig.from_row(row) if row else PomodoroConfig()

    def set_pomodoro_config(self, config: PomodoroConfig) -> None:
        with self._tx() as conn:
            conn.execute(
                "UPDATE pomodoro_config SET enabled = ?, work_duration = ?, short_break = ?, "
                "long_break = ?, cycles_before_long = ? WHERE id = 1",
                (
                    1 if config.enabled else 0,
                    config.work_duration,
                    config.short_break,
                    config.long_break,
                    config.cycles_before_long,
                ),
            )

    def set_pomodoro_enabled(self, enabled: bool) -> None:
        with self._tx() as conn:
            conn.execute("UPDATE pomodoro_config SET enabled = ? WHERE id = 1", (1 if enabled else 0,))

    # ── Invoice settings & history ────────────────────────────

    def get_invoice_settings(self) -> InvoiceSettings:
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM invoice_settings WHERE id = 1").fetchone()
        return InvoiceSettings.from_row(row) if row else InvoiceSettings()

    def set_invoice_settings(self, settings: InvoiceSettings) -> None:
        columns = list(SETTINGS_TEXT_FIELDS) + ["default_tax_rate"]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        with self._tx() as conn:
            conn.execute(
                f"UPDATE invoice_settings SET {assignments} WHERE id = 1",
                [getattr(settings, c) for c in columns],
            )

    def get_next_invoice_number(self) -> int:
        """max(existing) + 1. Two processes racing here can collide."""
        with self._tx() as conn:
            row = conn.execute("SELECT COALESCE(MAX(invoice_number), 0) FROM invoices").fetchone()
        return int(row[0]) + 1

    def record_invoice(self, record: InvoiceRecord) -> InvoiceRecord:
        with self._tx() as conn:
            cur = conn.execute(
                "INSERT INTO invoices (invoice_number, client_id, date_issued, due_date, subtotal, "
                "tax_rate, tax_amount, total, file_path) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.invoice_number,
                    record.client_id,
                    record.date_issued,
                    record.due_date,
                    record.subtotal,
                    record.tax_rate,
                    record.tax_amount,
                    record.total,
                    record.file_path,
                ),
            )
            row = conn.execute("SELECT * FROM invoices WHERE id = ?", (cur.lastrowid,)).fetchone()
        return InvoiceRecord.from_row(row)

    def list_invoices(self) -> list[InvoiceRecord]:
        with self._tx() as conn:
            rows = conn.execute("SELECT * FROM invoices ORDER BY invoice_number").fetchall()
        return [InvoiceRecord.from_row(r) for r in rows]

    # ── Clients ───────────────────────────────────────────────

    def list_clients(self) -> list[Client]:
        with self._tx() as conn:
            rows = conn.execute("SELECT * FROM clients ORDER BY name COLLATE NOCASE, id").fetchall()
        return [Client.from_row(r) for r in rows]

    def get_client(self, client_id: int) -> Client | None:
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM clients WHERE id = ?", (client_id,)).fetchone()
        return Client.from_row(row) if row else None

    def add_client(self, client: Client) -> Client:
        with self._tx() as conn:
            cur = conn.execute(
                f"INSERT INTO clients ({', '.join(CLIENT_FIELDS)}) "
                f"VALUES ({', '.join('?' for _ in CLIENT_FIELDS)})",
                [getattr(client, f) for f in CLIENT_FIELDS],
            )
        client.id = int(cur.lastrowid)
        return client

    def update_client(self, client: Client) -> bool:
        assignments = ", ".join(f"{f} = ?" for f in CLIENT_FIELDS)
        with self._tx() as conn:
            cur = conn.execute(
                f"UPDATE clients SET {assignments} WHERE id = ?",
                [getattr(client, f) for f in CLIENT_FIELDS] + [client.id],
            )
        return cur.rowcount > 0

    def delete_client(self, client_id: int) -> bool:
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM clients WHERE id = ?", (client_id,))
        return cur.rowcount > 0
