import sqlite3
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..exceptions import CatalogError
from ..ledger.resume import iter_ledger_rows
from ..metadata.dates import ledger_date_to_iso
from .schema import TABLE_NAME

# (laterality, scan_date ISO or None, modality, file_path)
PatientFileRow = Tuple[str, Optional[str], str, str]


class CatalogOperations:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def import_ledger(self, csv_path: Path) -> int:
        """
        Loads ledger rows into the catalog. Rows whose file_path is already
        present are left untouched. Returns the number of new rows.
        """
        logging.info(f"Importing ledger {csv_path} into catalog...")
        before = self.count_rows()
        try:
            with self.conn:
                self.conn.executemany(f"""
                    INSERT OR IGNORE INTO {TABLE_NAME} (
                        patient_id, patient_name, laterality, sex, dob, scan_date,
                        modality, manufacturer, series_description, modified,
                        file_size, file_path
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, self._catalog_rows(csv_path))
        except sqlite3.Error as e:
            raise CatalogError(f"Failed to import {csv_path}: {e}") from e

        inserted = self.count_rows() - before
        logging.info(f"Imported {inserted} new rows.")
        return inserted

    def _catalog_rows(self, csv_path: Path):
        for row in iter_ledger_rows(csv_path):
            try:
                "".join(row.values()).encode("utf-8")
            except UnicodeEncodeError:
                logging.warning(f"Skipping ledger row with undecodable text: {row['file_path']!r}")
                continue
            yield (
                row["patient_id"], row["patient_name"], row["laterality"], row["sex"],
                ledger_date_to_iso(row["dob"]), ledger_date_to_iso(row["scan_date"]),
                row["modality"], row["manufacturer"], row["series_description"],
                row["modified"], int(row["file_size"]), row["file_path"],
            )

    def count_rows(self) -> int:
        cur = self.conn.cursor()
        cur.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}")
        return cur.fetchone()[0]

    def fetch_patient_files(self,
                            patient_id: str,
                            modalities: Optional[Iterable[str]] = None,
                            manufacturer: Optional[str] = None) -> List[PatientFileRow]:
        """Returns the files indexed for one patient, optionally filtered."""
        query = f"SELECT laterality, scan_date, modality, file_path FROM {TABLE_NAME} WHERE patient_id = ?"
        params: list = [patient_id]

        modalities = list(modalities or [])
        if modalities:
            query += f" AND modality IN ({', '.join('?' for _ in modalities)})"
            params.extend(modalities)
        if manufacturer:
            query += " AND manufacturer = ?"
            params.append(manufacturer)
        query += " ORDER BY scan_date, laterality, modality, file_path"

        try:
            cur = self.conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()
        except sqlite3.Error as e:
            raise CatalogError(f"Lookup failed for patient {patient_id}: {e}") from e
