import argparse
import logging
import sys
from pathlib import Path

from . import config
from .catalog.db import CatalogManager
from .catalog.ops import CatalogOperations
from .exceptions import OpenSightError
from .ledger.paths import handle_output_path
from .main import setup_logging
from .organization.copier import PatientFileCopier, read_patient_ids, write_not_found


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Copy indexed imaging files based on patient IDs")

    p.add_argument("patient_id_file", type=Path, metavar="PATIENT_ID_FILE",
                   help="File containing patient IDs, one per line")
    p.add_argument("output_directory", type=Path, metavar="OUTPUT_DIRECTORY",
                   help="Directory to store copied files")

    p.add_argument("-o", "--overwrite", action="store_true", help="Whether to overwrite existing files")
    p.add_argument("-d", "--database", type=Path, default=Path(config.DEFAULT_DATABASE),
                   help=f"Catalog database to use (default: {config.DEFAULT_DATABASE})")
    p.add_argument("--ledger", type=Path, default=None,
                   help="Import this OpenSight CSV into the catalog before copying")
    p.add_argument("--modality", action="append", default=None,
                   help="Only copy files with this modality (repeatable)")
    p.add_argument("--manufacturer", default=None, help="Only copy files from this manufacturer")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(None, args.verbose)

    try:
        patient_ids = read_patient_ids(args.patient_id_file)
    except OSError as e:
        logging.error(f"Error reading patient ID file: {e}")
        sys.exit(1)

    if args.ledger:
        try:
            with CatalogManager(args.database) as conn:
                CatalogOperations(conn).import_ledger(args.ledger)
        except OpenSightError as e:
            logging.error(str(e))
            sys.exit(1)

    try:
        with CatalogManager(args.database, read_only=True) as conn:
            copier = PatientFileCopier(
                CatalogOperations(conn),
                args.output_directory,
                overwrite=args.overwrite,
                modalities=args.modality,
                manufacturer=args.manufacturer,
            )
            not_found = copier.run(patient_ids)
    except OpenSightError as e:
        logging.error(str(e))
        sys.exit(1)

    if not_found:
        output_path = Path(config.NOT_FOUND_FILE)
        try:
            handle_output_path(output_path, args.overwrite)
            write_not_found(not_found, output_path)
        except OSError as e:
            logging.error(f"Error writing to output file: {e}")
            sys.exit(1)
        logging.info(f"Patient IDs not found in DB, see file: {output_path}")


if __name__ == "__main__":
    main()
