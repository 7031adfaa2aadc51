import sqlite3
from pathlib import Path


class Database:
    """
    Thin wrapper over sqlite3 for Formloom persistence.
    Keeps schema creation in one place; each call opens its own connection so
    progress polling and cancellation can run beside a long import.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self):
        return sqlite3.connect(self.db_path, timeout=30)

    def _ensure_schema(self):
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data_json TEXT NOT NULL,
                    permissions_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                );
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_collection_created ON records (collection, created_at);"
            )
            conn.commit()
