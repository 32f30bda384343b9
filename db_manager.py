import logging
import math
import os
import re
import sqlite3
import uuid
from datetime import datetime

import pandas as pd

import config
from models import Item, Response, RESPONSE_STATUSES

log = logging.getLogger("venuecheck.db")

# Default CSV headers for checklist / inventory imports
CSV_COLUMNS = {
    "item_id": "item_id",
    "text": "text",
    "critical": "critical",
    "size_ml": "size_ml",
    "par_level": "par_level",
    "category": "category",
}


def get_db_connection():
    conn = sqlite3.connect(config.DB_PATH)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db():
    """
    Creates the tables if they are missing.
    """
    db_dir = os.path.dirname(config.DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    conn = get_db_connection()
    cursor = conn.cursor()

    # Checklist tasks, audit questions and inventory lines
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS items (
            list_id TEXT NOT NULL,
            item_id TEXT NOT NULL,
            text TEXT NOT NULL,
            critical INTEGER DEFAULT 0,
            size_ml REAL,
            par_level REAL,
            category TEXT,
            sort_order INTEGER,
            PRIMARY KEY (list_id, item_id)
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS sessions (
            session_id TEXT PRIMARY KEY,
            list_id TEXT NOT NULL,
            kind TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT
        )
    ''')

    # One row per (session, item); re-answering overwrites
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS responses (
            session_id TEXT NOT NULL,
            item_id TEXT NOT NULL,
            status TEXT NOT NULL,
            notes TEXT,
            transcript TEXT,
            timestamp TEXT,
            PRIMARY KEY (session_id, item_id)
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS inventory_counts (
            session_id TEXT NOT NULL,
            item_id TEXT NOT NULL,
            quantity REAL NOT NULL,
            transcript TEXT,
            timestamp TEXT,
            PRIMARY KEY (session_id, item_id)
        )
    ''')

    conn.commit()
    conn.close()


def execute_query(sql_query, params=()):
    """
    Executes a SQL query.
    Returns rows for SELECT, the row count otherwise.
    Errors are logged and re-raised; callers decide whether they are fatal.
    """
    conn = get_db_connection()
    cursor = conn.cursor()

    try:
        cursor.execute(sql_query, params)

        if sql_query.strip().upper().startswith("SELECT"):
            return cursor.fetchall()
        conn.commit()
        return cursor.rowcount

    except sqlite3.Error as e:
        log.error("Database error: %s", e)
        raise
    finally:
        conn.close()


def _as_bool(value):
    if pd.isna(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "critical")
    return bool(value)


def _as_number(value):
    if pd.isna(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        match = re.search(r'\d+(?:\.\d+)?', str(value))
        return float(match.group(0)) if match else None


def import_items_csv(csv_path, list_id, csv_columns=None):
    """
    Loads checklist/inventory lines from a CSV into the items table.
    csv_columns maps our field names to the CSV headers.
    A "list_id" column in the CSV, when present, filters rows to this list.
    Returns the number of rows imported.
    """
    columns = dict(CSV_COLUMNS)
    if csv_columns:
        columns.update(csv_columns)

    log.info("Loading items for '%s' from %s...", list_id, csv_path)
    df = pd.read_csv(csv_path)

    if "list_id" in df.columns:
        df = df[df["list_id"].astype(str) == str(list_id)]

    conn = get_db_connection()
    cursor = conn.cursor()
    imported = 0
    try:
        for order, (_, row) in enumerate(df.iterrows()):
            item_id = row.get(columns["item_id"])
            text = row.get(columns["text"])
            if pd.isna(item_id) or pd.isna(text):
                continue

            category = row.get(columns["category"])
            cursor.execute('''
                INSERT OR REPLACE INTO items
                    (list_id, item_id, text, critical, size_ml, par_level, category, sort_order)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                str(list_id),
                str(item_id),
                str(text),
                int(_as_bool(row.get(columns["critical"]))),
                _as_number(row.get(columns["size_ml"])),
                _as_number(row.get(columns["par_level"])),
                None if pd.isna(category) else str(category),
                order,
            ))
            imported += 1
        conn.commit()
    finally:
        conn.close()

    log.info("Imported %d items.", imported)
    return imported


def load_items(list_id):
    rows = execute_query(
        "SELECT item_id, text, critical, size_ml, par_level, category FROM items "
        "WHERE list_id = ? ORDER BY sort_order",
        (list_id,))
    return [
        Item(id=r[0], text=r[1], critical=bool(r[2]), size_ml=r[3], par_level=r[4], category=r[5])
        for r in rows
    ]


def list_ids():
    return [r[0] for r in execute_query("SELECT DISTINCT list_id FROM items ORDER BY list_id")]


def create_session(list_id, kind, session_id=None):
    session_id = session_id or uuid.uuid4().hex[:12]
    execute_query(
        "INSERT OR IGNORE INTO sessions (session_id, list_id, kind, started_at) VALUES (?, ?, ?, ?)",
        (session_id, list_id, kind, datetime.now().isoformat()))
    return session_id


def complete_session(session_id):
    execute_query("UPDATE sessions SET completed_at = ? WHERE session_id = ?",
                  (datetime.now().isoformat(), session_id))


def get_session(session_id):
    rows = execute_query(
        "SELECT session_id, list_id, kind, started_at, completed_at FROM sessions WHERE session_id = ?",
        (session_id,))
    if not rows:
        return None
    keys = ("session_id", "list_id", "kind", "started_at", "completed_at")
    return dict(zip(keys, rows[0]))


def save_response(session_id, item_id, status, transcript=None, note=None):
    """
    Writes or overwrites the response for (session, item).
    """
    if status not in RESPONSE_STATUSES:
        raise ValueError(f"Unknown response status: {status!r}")

    execute_query('''
        INSERT INTO responses (session_id, item_id, status, notes, transcript, timestamp)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(session_id, item_id) DO UPDATE SET
        status=excluded.status,
        notes=excluded.notes,
        transcript=excluded.transcript,
        timestamp=excluded.timestamp
    ''', (session_id, item_id, status, note, transcript, datetime.now().isoformat()))


def save_count(session_id, item_id, quantity, transcript=None):
    if quantity is None or quantity < 0:
        raise ValueError(f"Invalid quantity: {quantity!r}")

    execute_query('''
        INSERT INTO inventory_counts (session_id, item_id, quantity, transcript, timestamp)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(session_id, item_id) DO UPDATE SET
        quantity=excluded.quantity,
        transcript=excluded.transcript,
        timestamp=excluded.timestamp
    ''', (session_id, item_id, float(quantity), transcript, datetime.now().isoformat()))


def get_responses(session_id):
    rows = execute_query(
        "SELECT session_id, item_id, status, notes, transcript, timestamp FROM responses "
        "WHERE session_id = ? ORDER BY timestamp",
        (session_id,))
    return [Response(*r) for r in rows]


def get_counts(session_id):
    """
    Returns {item_id: quantity} for the session.
    """
    rows = execute_query("SELECT item_id, quantity FROM inventory_counts WHERE session_id = ?", (session_id,))
    return {r[0]: r[1] for r in rows}


def get_reorder_report(session_id, list_id):
    """
    Counted items below par, with the whole bottles to order (par - count, rounded up).
    Items without a par level or not counted in this session are left out.
    """
    rows = execute_query('''
        SELECT i.item_id, i.text, i.par_level, c.quantity
        FROM items i
        JOIN inventory_counts c ON c.item_id = i.item_id AND c.session_id = ?
        WHERE i.list_id = ? AND i.par_level IS NOT NULL AND c.quantity < i.par_level
        ORDER BY i.sort_order
    ''', (session_id, list_id))
    return [
        {"item_id": r[0], "text": r[1], "par_level": r[2], "quantity": r[3],
         "order": math.ceil(max(0, r[2] - r[3]))}
        for r in rows
    ]


def get_unique_vocabulary():
    """
    Extracts significant phrases from item texts for ASR priming.
    Prefers runs like "Grey Goose" over single words.
    """
    rows = execute_query("SELECT text FROM items")

    spec_pattern = r'\b\w*\d+\w*\b'
    stopwords = {"for", "with", "and", "in", "at", "on", "to", "by", "from", "of", "the", "all",
                 "check", "verify", "ml", "oz", "bottle", "bottles"}

    vocab_phrases = set()
    for (text,) in rows:
        clean_text = re.sub(spec_pattern, ' ', text)
        clean_text = re.sub(r'[^a-zA-Z\s]', ' ', clean_text)

        current_chunk = []
        for t in clean_text.split() + [""]:
            if not t or t.lower() in stopwords or len(t) < 2:
                # Break phrase
                if current_chunk:
                    phrase = " ".join(current_chunk)
                    if len(phrase) > 2:
                        vocab_phrases.add(phrase)
                    current_chunk = []
            else:
                current_chunk.append(t)

    return sorted(vocab_phrases)


class SessionStore:
    """
    Persistence bound to one session. This is what the guided loop writes through.
    """

    def __init__(self, session_id):
        self.session_id = session_id

    def save_response(self, item_id, status, transcript=None, note=None):
        save_response(self.session_id, item_id, status, transcript, note)

    def save_count(self, item_id, quantity, transcript=None):
        save_count(self.session_id, item_id, quantity, transcript)


if __name__ == "__main__":
    init_db()
    print("Database initialized.")
