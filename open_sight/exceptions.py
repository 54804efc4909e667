"""
Custom exception hierarchy for OpenSight.

Only startup problems escape the pipeline; per-file extraction errors are
converted into ExtractionOutcome values by the extractor and scheduler.
"""


class OpenSightError(Exception):
    """Base exception for all OpenSight errors."""
    pass


class StartupError(OpenSightError):
    """Raised when the crawl cannot start (bad roots, unwritable output)."""
    pass


class LedgerError(StartupError):
    """Raised when an existing ledger cannot be used for resuming or appending."""
    pass


class MetadataExtractionError(OpenSightError):
    """Raised by a parser when a file's content cannot be parsed."""
    pass


class TransientExtractionError(MetadataExtractionError):
    """Raised when a parse failed for a condition that may clear on retry."""
    pass


class CatalogError(OpenSightError):
    """Raised when catalog database operations fail."""
    pass


class FileOperationError(OpenSightError):
    """Raised when file copy operations fail."""
    pass


# OS errors that usually mean another process holds or is writing the file
TRANSIENT_OS_ERRORS = (PermissionError, BlockingIOError, TimeoutError, InterruptedError)


def extraction_error_from_os_error(path, exc: OSError) -> MetadataExtractionError:
    """Maps an OSError raised while reading `path` to the matching extraction error."""
    if isinstance(exc, TRANSIENT_OS_ERRORS):
        return TransientExtractionError(f"{path} is not readable right now: {exc}")
    return MetadataExtractionError(f"Cannot read {path}: {exc}")
