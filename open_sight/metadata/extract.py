import logging
from pathlib import Path
from typing import Optional, Sequence

from ..exceptions import MetadataExtractionError, TransientExtractionError
from ..models import ExtractionOutcome, MetadataRecord
from .crystal_eye import CrystalEyeParser
from .dates import format_modified
from .dicom import DicomParser


class MetadataExtractor:
    """
    Classifies a file and extracts its ledger fields.

    Strategies (tried in this order, first structural success wins):
      - DICOM: 'pydicom' (the common case, checked first).
      - Proprietary E2E/FDA/SDB: the external 'crystal-eye' tool.

    A parser only runs if it claims the file (magic bytes or extension).
    """

    def __init__(self, crystal_eye_path: Optional[str] = None, parsers: Optional[Sequence] = None):
        if parsers is None:
            parsers = (DicomParser(), CrystalEyeParser(crystal_eye_path))
        self.parsers = tuple(parsers)

    def extract(self, path: Path) -> ExtractionOutcome:
        claiming = [p for p in self.parsers if p.claims(path)]
        if not claiming:
            return ExtractionOutcome.unsupported(path, f"No parser for '{path.suffix or path.name}'")

        failures = []
        transient = False
        for parser in claiming:
            try:
                fields = parser.parse(path)
            except TransientExtractionError as e:
                transient = True
                failures.append(f"{parser.name}: {e}")
                continue
            except MetadataExtractionError as e:
                failures.append(f"{parser.name}: {e}")
                continue

            try:
                record = self._build_record(path, fields)
            except OSError as e:
                failures.append(f"{parser.name}: cannot stat file: {e}")
                continue
            if failures:
                logging.debug(f"{path} parsed by {parser.name} after: {'; '.join(failures)}")
            return ExtractionOutcome.success(path, record)

        reason = "; ".join(failures)
        if transient:
            return ExtractionOutcome.transient_failure(path, reason)
        return ExtractionOutcome.parse_failure(path, reason)

    def _build_record(self, path: Path, fields: dict) -> MetadataRecord:
        """Adds the filesystem columns (modified, size, canonical path)."""
        resolved = path.resolve()
        stat_result = resolved.stat()
        return MetadataRecord(
            modified=format_modified(stat_result.st_mtime),
            file_size=stat_result.st_size,
            file_path=str(resolved),
            **fields,
        )
