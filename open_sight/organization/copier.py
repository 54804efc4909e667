import shutil
import logging
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Set

from tqdm import tqdm

from .. import config
from ..catalog.ops import CatalogOperations


class PatientFileCopier:
    """
    Copies every catalogued file of the requested patients into
    <dest>/<patient_id>/<YYYYMMDD>_<laterality>/<modality>_<filename>.
    """

    def __init__(self,
                 catalog: CatalogOperations,
                 dest_root: Path,
                 overwrite: bool = False,
                 modalities: Optional[Iterable[str]] = None,
                 manufacturer: Optional[str] = None):
        self.catalog = catalog
        self.dest_root = Path(dest_root)
        self.overwrite = overwrite
        self.modalities = list(modalities or [])
        self.manufacturer = manufacturer

    def run(self, patient_ids: Iterable[str]) -> List[str]:
        """Copies all patients; returns the ids that had no catalogued files."""
        not_found = []
        for patient_id in tqdm(list(patient_ids), desc="Patients"):
            if not self.copy_patient(patient_id):
                not_found.append(patient_id)
        return not_found

    def copy_patient(self, patient_id: str) -> bool:
        """
        Returns False if the patient has no catalogued files. Sources that
        cannot be copied are logged and do not stop the others.
        """
        rows = self.catalog.fetch_patient_files(patient_id, self.modalities, self.manufacturer)
        if not rows:
            return False

        missing: Set[str] = set()
        for laterality, scan_date, modality, file_path in rows:
            dest = self.destination_for(patient_id, laterality, scan_date, modality, file_path)
            if dest.exists() and not self.overwrite:
                logging.debug(f"Already copied: {dest}")
                continue

            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(file_path, dest)
            except OSError as e:
                logging.error(f"Failed to copy {file_path} -> {dest}: {e}")
                missing.add(file_path)

        if missing:
            logging.warning(f"Patient {patient_id}: {len(missing)} files could not be copied")
        return True

    def destination_for(self,
                        patient_id: str,
                        laterality: str,
                        scan_date: Optional[str],
                        modality: str,
                        file_path: str) -> Path:
        date_part = date.fromisoformat(scan_date).strftime("%Y%m%d") if scan_date else "unknown"
        folder = config.COPY_FOLDER_PATTERN.format(date=date_part, laterality=laterality)
        name = config.COPY_NAME_PATTERN.format(modality=modality, name=Path(file_path).name)
        return self.dest_root / patient_id / folder / name


def read_patient_ids(path: Path) -> List[str]:
    """One patient id per line; blank lines are ignored."""
    with Path(path).open('r', encoding='utf-8') as f:
        return [line.strip() for line in f if line.strip()]


def write_not_found(patient_ids: List[str], output_path: Path):
    with output_path.open('w', encoding='utf-8') as f:
        for patient_id in patient_ids:
            f.write(f"{patient_id}\n")
