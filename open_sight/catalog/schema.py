"""
Catalog schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1
TABLE_NAME = "open_sight"


def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Ledger rows, one per indexed file
        # dob/scan_date are ISO (YYYY-MM-DD) so they sort; NULL when unknown
        conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
            patient_id          TEXT NOT NULL DEFAULT '',
            patient_name        TEXT NOT NULL DEFAULT '',
            laterality          TEXT NOT NULL DEFAULT '',
            sex                 TEXT NOT NULL DEFAULT '',
            dob                 TEXT,
            scan_date           TEXT,
            modality            TEXT NOT NULL DEFAULT '',
            manufacturer        TEXT NOT NULL DEFAULT '',
            series_description  TEXT NOT NULL DEFAULT '',
            modified            TEXT NOT NULL DEFAULT '',
            file_size           INTEGER NOT NULL DEFAULT 0,
            file_path           TEXT PRIMARY KEY
        );
        """)

        # 3. Indices for Lookup
        conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{TABLE_NAME}_patient_id ON {TABLE_NAME}(patient_id);")

    logging.debug("Catalog schema initialized.")
