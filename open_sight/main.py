import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from . import config
from .config import RunConfig
from .core import OpenSightApp
from .exceptions import StartupError


def setup_logging(log_file: Optional[Path], verbose: bool):
    """Sets up logging to the console and, if given, a log file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("pydicom").setLevel(logging.ERROR)


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="OpenSight: crawl DICOM and crystal-eye files and extract metadata to a CSV file"
    )

    p.add_argument("roots", nargs="+", help="Directories, files or glob patterns to crawl")

    p.add_argument("-c", "--csv-out", type=Path, default=Path(config.DEFAULT_CSV_OUT),
                   help=f"Output CSV ledger (default: {config.DEFAULT_CSV_OUT})")
    p.add_argument("-n", "--num-jobs", type=int, default=config.DEFAULT_NUM_JOBS,
                   help="Number of parallel workers")
    p.add_argument("-o", "--overwrite", action="store_true",
                   help="Don't append to an existing CSV, overwrite it")
    p.add_argument("-b", "--batch-size", type=int, default=config.DEFAULT_BATCH_SIZE,
                   help="Files per batch; each batch is flushed before the next starts")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    p.add_argument("--log-file", type=Path, default=None,
                   help=f"Log file (default: {config.DEFAULT_LOG_FILE} next to the CSV)")
    p.add_argument("--no-progress", action="store_true", help="Hide the progress bar")

    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    csv_out = args.csv_out
    log_file = args.log_file or csv_out.resolve().parent / config.DEFAULT_LOG_FILE
    try:
        setup_logging(log_file, args.verbose)
    except OSError as e:
        # Output directory problems are reported properly by the pipeline
        setup_logging(None, args.verbose)
        logging.warning(f"Cannot write log file {log_file}: {e}")

    logging.info("=== OpenSight Started ===")
    logging.info(f"Using {args.num_jobs} of {os.cpu_count() or 1} CPUs possible")

    run_config = RunConfig(
        roots=tuple(args.roots),
        csv_out=csv_out,
        num_jobs=args.num_jobs,
        overwrite=args.overwrite,
        batch_size=args.batch_size,
    )

    app = OpenSightApp()
    try:
        app.crawl(run_config, show_progress=not args.no_progress)
    except StartupError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user. Flushed batches are kept; rerun to resume.")
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error during crawl.")
        sys.exit(1)


if __name__ == "__main__":
    main()
