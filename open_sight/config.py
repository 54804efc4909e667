"""
Configuration constants and run settings for OpenSight.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from .exceptions import StartupError

# --- File Type Definitions ---
DICOM_EXTS = {'.dcm'}
# Proprietary containers handled by crystal-eye (Heidelberg, Topcon, Zeiss).
# crystal-eye also reads DICOM, so '.dcm' doubles as a fallback target.
CRYSTAL_EYE_EXTS = {'.e2e', '.fda', '.sdb', '.dcm'}
CE_EXT = DICOM_EXTS | CRYSTAL_EYE_EXTS

# DICOM Part 10 files carry a 128-byte preamble followed by this magic
DICOM_PREAMBLE_SIZE = 128
DICOM_MAGIC = b'DICM'

# --- crystal-eye ---
CRYSTAL_EYE_ENV = "CRYSTAL_EYE_PATH"
CRYSTAL_EYE_DEFAULT = "crystal-eye"
CRYSTAL_EYE_METADATA = "metadata.json"
CRYSTAL_EYE_MODALITY = "CE"

# --- Ledger Format ---
LEDGER_COLUMNS = [
    "patient_id",
    "patient_name",
    "laterality",
    "sex",
    "dob",
    "scan_date",
    "modality",
    "manufacturer",
    "series_description",
    "modified",
    "file_size",
    "file_path",
]

# Undecodable bytes in file names round-trip through the ledger unchanged
LEDGER_ENCODING = "utf-8"
LEDGER_ERRORS = "surrogateescape"

# --- Date Parsing ---
OUTPUT_DATE_FORMAT = "%d-%m-%Y"
MODIFIED_FORMAT = "%d-%m-%Y %H:%M:%S"
DICOM_DATE_FORMAT = "%Y%m%d"
DICOM_SHORT_DATE_FORMAT = "%y%m%d"
CE_DOB_FORMAT = "%Y-%m-%d"
CE_SCAN_FORMATS = ["%Y-%m-%d %H:%M:%S.%f", "%Y-%m-%d %H:%M:%S"]

# --- Defaults ---
DEFAULT_CSV_OUT = "open_sight_results.csv"
DEFAULT_LOG_FILE = "open_sight.log"
DEFAULT_DATABASE = "open_sight.db"
DEFAULT_NUM_JOBS = 1
DEFAULT_BATCH_SIZE = 50

# Transient failures (file locked or still being written) are retried this many times
TRANSIENT_RETRIES = 2
RETRY_DELAY_SEC = 0.0

# --- Copy Utility ---
NOT_FOUND_FILE = "patient_ids_not_found.csv"
COPY_FOLDER_PATTERN = "{date}_{laterality}"
COPY_NAME_PATTERN = "{modality}_{name}"


@dataclass(frozen=True)
class RunConfig:
    """
    Immutable settings for one crawl, passed explicitly through the pipeline.
    """
    roots: Tuple[str, ...]
    csv_out: Path = Path(DEFAULT_CSV_OUT)
    num_jobs: int = DEFAULT_NUM_JOBS
    overwrite: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    extensions: frozenset = field(default_factory=lambda: frozenset(CE_EXT))
    max_retries: int = TRANSIENT_RETRIES

    def validate(self):
        if not self.roots:
            raise StartupError("At least one input root is required.")
        if self.num_jobs < 1:
            raise StartupError(f"num_jobs must be >= 1 (got {self.num_jobs})")
        if self.batch_size < 1:
            raise StartupError(f"batch_size must be >= 1 (got {self.batch_size})")
        if self.max_retries < 0:
            raise StartupError(f"max_retries must be >= 0 (got {self.max_retries})")
