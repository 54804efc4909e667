import csv
import os
import logging
import threading
from pathlib import Path
from typing import Sequence

from .. import config
from ..exceptions import StartupError
from ..models import MetadataRecord
from .paths import handle_output_path

MODE_APPEND = "append"
MODE_OVERWRITE = "overwrite"

_TAIL_CHUNK = 64 * 1024


class LedgerWriter:
    """
    Appends MetadataRecords to the ledger CSV.

    Each write() is one checkpoint: rows are flushed and fsync'd before it
    returns, so the file is a valid resume input after any crash between
    batches. Only one thread should own the writer; the lock guards misuse.
    """

    def __init__(self, path: Path, mode: str = MODE_APPEND):
        if mode not in (MODE_APPEND, MODE_OVERWRITE):
            raise ValueError(f"Unknown ledger mode: {mode}")
        self.path = Path(path)
        self.mode = mode
        self._write_lock = threading.Lock()

    def check(self):
        """Validates the target without modifying anything."""
        parent = self.path.parent
        if not parent.is_dir():
            raise StartupError(f"Output directory does not exist: {parent}")
        if not os.access(parent, os.W_OK):
            raise StartupError(f"Output directory is not writable: {parent}")
        if self.path.exists() and not os.access(self.path, os.W_OK):
            raise StartupError(f"Output file is not writable: {self.path}")

    def reset(self):
        """In overwrite mode, discards the old ledger. Call only once startup has succeeded."""
        if self.mode != MODE_OVERWRITE:
            return
        try:
            handle_output_path(self.path, overwrite=True)
        except OSError as e:
            raise StartupError(f"Cannot remove existing ledger {self.path}: {e}") from e

    def write(self, records: Sequence[MetadataRecord]) -> int:
        """Appends `records` and flushes them to disk. Returns rows written."""
        if not records:
            return 0

        with self._write_lock:
            if self.path.exists() and self.path.stat().st_size > 0:
                self._drop_partial_tail()
            needs_header = not self.path.exists() or self.path.stat().st_size == 0

            with self.path.open('a', newline='', encoding=config.LEDGER_ENCODING, errors=config.LEDGER_ERRORS) as f:
                writer = csv.writer(f, lineterminator="\n")
                if needs_header:
                    writer.writerow(config.LEDGER_COLUMNS)
                for record in records:
                    writer.writerow(record.to_row())

                f.flush()
                os.fsync(f.fileno())

        logging.debug(f"Flushed {len(records)} rows to {self.path}")
        return len(records)

    def _drop_partial_tail(self):
        """
        Truncates the file back to its last newline if a previous run died
        mid-row, so an unterminated quoted field cannot absorb later rows.
        """
        with self.path.open('rb+') as f:
            end = f.seek(0, os.SEEK_END)
            f.seek(end - 1)
            if f.read(1) == b"\n":
                return

            pos = end
            keep = 0
            while pos > 0:
                start = max(0, pos - _TAIL_CHUNK)
                f.seek(start)
                chunk = f.read(pos - start)
                idx = chunk.rfind(b"\n")
                if idx != -1:
                    keep = start + idx + 1
                    break
                pos = start

            logging.warning(
                f"Ledger {self.path} ended with a partial row; dropping its last {end - keep} bytes"
            )
            f.truncate(keep)
            f.flush()
            os.fsync(f.fileno())
