import logging
import time
from typing import Optional

from .config import RunConfig
from .ledger.resume import ResumeLedger
from .ledger.sink import LedgerWriter, MODE_APPEND, MODE_OVERWRITE
from .metadata.crystal_eye import locate_crystal_eye
from .metadata.extract import MetadataExtractor
from .models import RunStats
from .scanning.filesystem import PathEnumerator
from .scanning.scheduler import BatchScheduler


class OpenSightApp:
    def __init__(self, extractor: Optional[MetadataExtractor] = None):
        self.extractor = extractor

    def crawl(self, run_config: RunConfig, show_progress: bool = False) -> RunStats:
        """
        Executes the extraction pipeline.
        1. Check the ledger target
        2. Load resume keys from the existing ledger
        3. Enumerate candidate files and drop already-recorded ones
        4. Discard the old ledger if overwriting, then extract in parallel
           batches, flushing each batch to the ledger

        Raises StartupError (or LedgerError) before any extraction if the
        roots or output cannot be used; the existing ledger is untouched in
        that case. Per-file failures never raise.
        """
        start = time.perf_counter()
        run_config.validate()

        # --- Step 1: Output ---
        mode = MODE_OVERWRITE if run_config.overwrite else MODE_APPEND
        sink = LedgerWriter(run_config.csv_out, mode=mode)
        sink.check()
        logging.info(f"Saving results to CSV file: {run_config.csv_out.resolve()}")

        # --- Step 2: Resume ---
        if run_config.overwrite:
            ledger = ResumeLedger()
        else:
            ledger = ResumeLedger.load(run_config.csv_out)

        # --- Step 3: Enumerate & Filter ---
        enumerator = PathEnumerator(run_config.extensions)
        candidates = enumerator.enumerate(run_config.roots)
        pending = ledger.filter(candidates)

        stats = RunStats(discovered=len(candidates), resumed=len(candidates) - len(pending))
        if stats.resumed:
            logging.info(f"Skipping {stats.resumed} files already in the ledger.")

        # --- Step 4: Extract ---
        sink.reset()
        extractor = self.extractor or MetadataExtractor(crystal_eye_path=locate_crystal_eye())
        scheduler = BatchScheduler(
            extractor,
            sink,
            num_jobs=run_config.num_jobs,
            batch_size=run_config.batch_size,
            max_retries=run_config.max_retries,
            show_progress=show_progress,
        )
        if pending:
            scheduler.run(pending, stats)
        else:
            logging.info("No new files to process.")

        stats.elapsed_sec = time.perf_counter() - start

        if run_config.csv_out.exists():
            logging.info(f"Results saved to {run_config.csv_out.resolve()}")
        else:
            logging.info("No data to save. Skipping CSV file creation.")

        logging.info(
            f"Processed: {stats.processed} | Resumed: {stats.resumed} | "
            f"Unsupported: {stats.unsupported} | Failed: {stats.failed} | "
            f"Time elapsed: {stats.elapsed_sec:.2f}s | Avg. speed: {stats.speed:.2f} it/s"
        )
        return stats
