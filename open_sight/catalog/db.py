"""
Catalog database connection management.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from ..exceptions import CatalogError
from .schema import init_schema


class CatalogManager:
    def __init__(self, db_path: Path, read_only: bool = False):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Connects to the SQLite catalog. Writable connections get pragmas
        and the schema; read-only ones require an existing database.
        """
        if self._conn:
            return self._conn

        logging.info(f"Connecting to database: {self.db_path}")
        try:
            if self.read_only:
                if not self.db_path.exists():
                    raise CatalogError(f"Database not found: {self.db_path}")
                self._conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
            else:
                self._conn = sqlite3.connect(self.db_path)
                self._conn.execute("PRAGMA synchronous=NORMAL;")
                init_schema(self._conn)
        except sqlite3.Error as e:
            raise CatalogError(f"Error connecting to database {self.db_path}: {e}") from e

        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
