"""
Resume support: the ledger CSV doubles as the record of finished work.

Loading is best-effort. A crash can leave a truncated last row and users may
hand-edit the file, so bad rows are skipped with a warning instead of
aborting the run.
"""
import csv
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Set

from .. import config
from ..exceptions import LedgerError
from ..models import CandidatePath


def iter_ledger_rows(csv_path: Path) -> Iterator[Dict[str, str]]:
    """
    Yields each well-formed ledger row as a dict keyed by column name.

    Raises LedgerError if the header is not the ledger header.
    """
    if not csv_path.exists():
        return

    try:
        f = csv_path.open('r', newline='', encoding=config.LEDGER_ENCODING, errors=config.LEDGER_ERRORS)
    except OSError as e:
        raise LedgerError(f"Cannot read existing ledger {csv_path}: {e}") from e

    with f:
        reader = csv.reader(f)
        try:
            header = next(reader, None)
        except csv.Error as e:
            raise LedgerError(f"Unreadable header in {csv_path}: {e}") from e

        if header is None:
            return
        if [h.strip() for h in header] != config.LEDGER_COLUMNS:
            raise LedgerError(
                f"{csv_path} is not an OpenSight ledger (unexpected header: {header}). "
                "Use --overwrite or choose another --csv-out."
            )

        width = len(config.LEDGER_COLUMNS)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                break
            except csv.Error as e:
                logging.warning(f"Ledger {csv_path} line {reader.line_num}: skipped malformed row ({e})")
                continue

            if not row:
                continue
            if len(row) != width:
                logging.warning(
                    f"Ledger {csv_path} line {reader.line_num}: skipped row with "
                    f"{len(row)} fields (expected {width})"
                )
                continue

            record = dict(zip(config.LEDGER_COLUMNS, row))
            if not record["file_path"]:
                logging.warning(f"Ledger {csv_path} line {reader.line_num}: skipped row without file_path")
                continue
            try:
                int(record["file_size"])
            except ValueError:
                logging.warning(
                    f"Ledger {csv_path} line {reader.line_num}: skipped row with "
                    f"invalid file_size {record['file_size']!r}"
                )
                continue

            yield record


class ResumeLedger:
    """The set of file_path keys already recorded in an existing ledger."""

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: Set[str] = set(keys)

    @classmethod
    def load(cls, csv_path: Path) -> "ResumeLedger":
        keys = {row["file_path"] for row in iter_ledger_rows(csv_path)}
        if keys:
            logging.info(f"Resuming: {len(keys)} files already recorded in {csv_path}")
        return cls(keys)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def filter(self, candidates: Iterable[CandidatePath]) -> List[CandidatePath]:
        """Drops candidates that already have a ledger row."""
        return [c for c in candidates if c.key not in self._keys]
