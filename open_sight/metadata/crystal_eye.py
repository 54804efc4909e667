import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .. import config
from ..exceptions import MetadataExtractionError, extraction_error_from_os_error
from .dates import format_date


def locate_crystal_eye(candidate: Optional[str] = None) -> Optional[str]:
    """
    Finds the crystal-eye binary: explicit path, $CRYSTAL_EYE_PATH, then $PATH.
    Returns None (and warns) when it is not installed.
    """
    name = candidate or os.environ.get(config.CRYSTAL_EYE_ENV, config.CRYSTAL_EYE_DEFAULT)

    if Path(name).is_file():
        logging.info(f"crystal-eye found at: {name}")
        return str(Path(name))

    found = shutil.which(name)
    if found:
        logging.info(f"crystal-eye found at: {found}")
        return found

    logging.warning(
        f"crystal-eye not found at: {name}. Only DICOM files will be processed, if any. "
        f"Use 'export {config.CRYSTAL_EYE_ENV}=<path to crystal-eye>'"
    )
    return None


class CrystalEyeParser:
    """
    Fallback for proprietary ophthalmic containers (E2E, FDA, SDB).
    Wraps the 'crystal-eye' command line utility, which dumps a metadata.json.
    """
    name = "crystal-eye"

    def __init__(self, binary: Optional[str]):
        self.binary = binary

    def claims(self, path: Path) -> bool:
        return bool(self.binary) and path.suffix.lower() in config.CRYSTAL_EYE_EXTS

    def parse(self, path: Path) -> Dict[str, str]:
        metadata = self._run(path)

        patient = metadata.get("patient") or {}
        exam = metadata.get("exam") or {}
        series = metadata.get("series") or {}

        first = self._text(patient, "first_name")
        last = self._text(patient, "last_name")

        return {
            "patient_id": self._text(patient, "patient_key"),
            "patient_name": f"{first} {last}".strip(),
            "laterality": self._text(series, "laterality"),
            "sex": self._text(patient, "gender"),
            "dob": format_date(self._text(patient, "date_of_birth"), [config.CE_DOB_FORMAT]),
            "scan_date": format_date(self._text(exam, "scan_datetime"), config.CE_SCAN_FORMATS),
            "modality": config.CRYSTAL_EYE_MODALITY,
            "manufacturer": self._text(exam, "manufacturer"),
            "series_description": self._text(series, "protocol"),
        }

    def _run(self, path: Path) -> Dict[str, Any]:
        # crystal-eye expects forward slashes, even on Windows
        path_str = str(path).replace('\\', '/')

        with tempfile.TemporaryDirectory(prefix="open_sight_") as output_dir:
            cmd = [self.binary, "-i", path_str, "--only-metadata", "-o", output_dir]
            try:
                result = subprocess.run(cmd, capture_output=True, text=True)
            except OSError as e:
                raise extraction_error_from_os_error(path, e) from e

            if result.returncode != 0:
                detail = (result.stderr or "").strip().splitlines()
                tail = f": {detail[-1]}" if detail else ""
                raise MetadataExtractionError(
                    f"crystal-eye command failed with status {result.returncode}{tail}"
                )

            metadata_path = Path(output_dir) / config.CRYSTAL_EYE_METADATA
            try:
                with metadata_path.open('r', encoding='utf-8') as f:
                    data = json.load(f)
            except FileNotFoundError as e:
                raise MetadataExtractionError(f"crystal-eye wrote no {config.CRYSTAL_EYE_METADATA}") from e
            except (ValueError, OSError) as e:
                raise MetadataExtractionError(f"Invalid crystal-eye metadata: {e}") from e

        if not isinstance(data, dict):
            raise MetadataExtractionError("Invalid crystal-eye metadata: expected an object")
        return data

    def _text(self, section: Dict[str, Any], key: str) -> str:
        value = section.get(key)
        if value is None:
            return ""
        return str(value).strip()
