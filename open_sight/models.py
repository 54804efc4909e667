from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import List, Optional


@dataclass(frozen=True)
class CandidatePath:
    """
    A file found during enumeration, not yet classified.
    """
    path: Path              # absolute, symlinks resolved
    size_bytes: int
    mtime: float

    @property
    def key(self) -> str:
        """The string stored in the ledger's file_path column."""
        return str(self.path)


@dataclass(frozen=True)
class MetadataRecord:
    """
    One ledger row. Field order is the ledger column order.
    """
    patient_id: str = ""
    patient_name: str = ""
    laterality: str = ""
    sex: str = ""
    dob: str = ""
    scan_date: str = ""
    modality: str = ""
    manufacturer: str = ""
    series_description: str = ""
    modified: str = ""
    file_size: int = 0
    file_path: str = ""

    def to_row(self) -> List[str]:
        return [str(getattr(self, f.name)) for f in fields(self)]


class OutcomeStatus(Enum):
    SUCCESS = "success"
    UNSUPPORTED = "unsupported"
    PARSE_FAILURE = "parse_failure"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class ExtractionOutcome:
    """Result of extracting one candidate path."""
    path: Path
    status: OutcomeStatus
    record: Optional[MetadataRecord] = None
    reason: str = ""
    attempts: int = 1

    @classmethod
    def success(cls, path: Path, record: MetadataRecord) -> "ExtractionOutcome":
        return cls(path, OutcomeStatus.SUCCESS, record=record)

    @classmethod
    def unsupported(cls, path: Path, reason: str) -> "ExtractionOutcome":
        return cls(path, OutcomeStatus.UNSUPPORTED, reason=reason)

    @classmethod
    def parse_failure(cls, path: Path, reason: str) -> "ExtractionOutcome":
        return cls(path, OutcomeStatus.PARSE_FAILURE, reason=reason)

    @classmethod
    def transient_failure(cls, path: Path, reason: str) -> "ExtractionOutcome":
        return cls(path, OutcomeStatus.TRANSIENT_FAILURE, reason=reason)

    @property
    def is_retryable(self) -> bool:
        return self.status is OutcomeStatus.TRANSIENT_FAILURE


@dataclass
class RunStats:
    """Counters reported at the end of a crawl."""
    discovered: int = 0
    resumed: int = 0        # already in the ledger, never attempted
    processed: int = 0      # records written
    unsupported: int = 0
    failed: int = 0
    retries: int = 0
    batches_written: int = 0
    elapsed_sec: float = 0.0

    @property
    def attempted(self) -> int:
        return self.processed + self.unsupported + self.failed

    @property
    def speed(self) -> float:
        if self.elapsed_sec <= 0:
            return 0.0
        return self.attempted / self.elapsed_sec
