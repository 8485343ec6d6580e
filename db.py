import sqlite3
from contextlib import contextmanager


def init_db(db_path: str):
    with sqlite3.connect(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                username      TEXT    NOT NULL UNIQUE,
                password_hash TEXT    NOT NULL,
                created_at    TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
                last_login    TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS symptom_types (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                name       TEXT    NOT NULL,
                created_at TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS symptom_logs (
                id        INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id   INTEGER REFERENCES users(id) ON DELETE CASCADE,
                type_id   INTEGER NOT NULL REFERENCES symptom_types(id) ON DELETE CASCADE,
                notes     TEXT,
                date      TEXT    NOT NULL,
                timestamp TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        # Migrate: add medication_taken if not present
        log_cols = [row[1] for row in conn.execute("PRAGMA table_info(symptom_logs)")]
        if "medication_taken" not in log_cols:
            conn.execute(
                "ALTER TABLE symptom_logs ADD COLUMN medication_taken INTEGER NOT NULL DEFAULT 0"
            )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_symptom_logs_user ON symptom_logs(user_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_symptom_logs_type ON symptom_logs(type_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_symptom_logs_date ON symptom_logs(date)")
        conn.commit()


@contextmanager
def get_db(db_path: str):
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()
