"""
Date normalization shared by all parsers.

Ledger dates are written as DD-MM-YYYY; anything unparseable becomes "".
"""
from datetime import datetime
from typing import Iterable, Optional

from .. import config


def format_date(date_str: Optional[str], formats: Optional[Iterable[str]] = None) -> str:
    """
    Parses `date_str` with the first matching format and renders it in the
    ledger format. Without explicit formats the DICOM DA format is used,
    with a two-digit-year fallback for legacy writers.
    """
    if not date_str:
        return ""
    text = date_str.strip()

    if formats is None:
        candidates = [config.DICOM_DATE_FORMAT, config.DICOM_SHORT_DATE_FORMAT]
    else:
        candidates = list(formats)

    for fmt in candidates:
        try:
            return datetime.strptime(text, fmt).strftime(config.OUTPUT_DATE_FORMAT)
        except ValueError:
            continue
    return ""


def format_modified(mtime: Optional[float]) -> str:
    """Local timestamp for the 'modified' column."""
    if mtime is None:
        return ""
    try:
        return datetime.fromtimestamp(mtime).strftime(config.MODIFIED_FORMAT)
    except (OverflowError, OSError, ValueError):
        return ""


def ledger_date_to_iso(value: Optional[str]) -> Optional[str]:
    """Converts a ledger DD-MM-YYYY date to ISO YYYY-MM-DD (None if empty/invalid)."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), config.OUTPUT_DATE_FORMAT).date().isoformat()
    except ValueError:
        return None
