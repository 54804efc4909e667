import logging
from pathlib import Path
from typing import Dict

import pydicom
from pydicom.errors import InvalidDicomError
from pydicom.multival import MultiValue

from .. import config
from ..exceptions import (
    MetadataExtractionError,
    TransientExtractionError,
    extraction_error_from_os_error,
)
from .dates import format_date


def has_dicom_magic(path: Path) -> bool:
    """True if the file carries the Part 10 'DICM' marker after the preamble."""
    try:
        with path.open('rb') as f:
            f.seek(config.DICOM_PREAMBLE_SIZE)
            return f.read(len(config.DICOM_MAGIC)) == config.DICOM_MAGIC
    except OSError:
        return False


class DicomParser:
    """
    Primary format. Reads the header with pydicom, stopping before pixel data.
    """
    name = "dicom"

    def claims(self, path: Path) -> bool:
        return path.suffix.lower() in config.DICOM_EXTS or has_dicom_magic(path)

    def parse(self, path: Path) -> Dict[str, str]:
        try:
            before = path.stat()
            ds = pydicom.dcmread(str(path), stop_before_pixels=True, force=False)
            after = path.stat()
        except InvalidDicomError as e:
            raise MetadataExtractionError(f"Not a DICOM file: {e}") from e
        except OSError as e:
            raise extraction_error_from_os_error(path, e) from e
        except Exception as e:
            # pydicom surfaces truncated/corrupt headers as assorted errors
            raise MetadataExtractionError(f"Corrupt DICOM header: {e}") from e

        if (before.st_size, before.st_mtime) != (after.st_size, after.st_mtime):
            raise TransientExtractionError(f"{path} changed while being read")

        laterality = self._get(ds, "ImageLaterality") or self._get(ds, "Laterality")

        return {
            "patient_id": self._get(ds, "PatientID"),
            "patient_name": self._get(ds, "PatientName"),
            "laterality": laterality,
            "sex": self._get(ds, "PatientSex"),
            "dob": format_date(self._get(ds, "PatientBirthDate")),
            "scan_date": format_date(self._get(ds, "ContentDate")),
            "modality": self._get(ds, "Modality"),
            "manufacturer": self._get(ds, "Manufacturer"),
            "series_description": self._get(ds, "SeriesDescription"),
        }

    def _get(self, ds, keyword: str) -> str:
        """Missing tags are empty strings; multi-valued elements are backslash-joined."""
        try:
            value = ds.get(keyword)
        except Exception as e:
            logging.debug(f"Unreadable tag {keyword}: {e}")
            return ""
        if value is None:
            return ""
        if isinstance(value, MultiValue):
            return "\\".join(str(v) for v in value).strip()
        return str(value).strip()
