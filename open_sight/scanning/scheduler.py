import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterator, List, Optional, Sequence

from tqdm import tqdm

from .. import config
from ..ledger.sink import LedgerWriter
from ..metadata.extract import MetadataExtractor
from ..models import CandidatePath, ExtractionOutcome, OutcomeStatus, RunStats


def partition(candidates: Sequence[CandidatePath], batch_size: int) -> Iterator[List[CandidatePath]]:
    """Contiguous batches of `batch_size`; the last one may be shorter."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1 (got {batch_size})")
    for start in range(0, len(candidates), batch_size):
        yield list(candidates[start:start + batch_size])


class BatchScheduler:
    """
    Runs extraction over a bounded thread pool, one batch at a time.

    Workers only extract; the calling thread is the single writer and flushes
    each batch to the ledger before dispatching the next, so batches are the
    checkpoint unit for resuming.
    """

    def __init__(self,
                 extractor: MetadataExtractor,
                 sink: LedgerWriter,
                 num_jobs: int = config.DEFAULT_NUM_JOBS,
                 batch_size: int = config.DEFAULT_BATCH_SIZE,
                 max_retries: int = config.TRANSIENT_RETRIES,
                 retry_delay: float = config.RETRY_DELAY_SEC,
                 show_progress: bool = False):
        if num_jobs < 1:
            raise ValueError(f"num_jobs must be >= 1 (got {num_jobs})")
        self.extractor = extractor
        self.sink = sink
        self.num_jobs = num_jobs
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.show_progress = show_progress

    def run(self, candidates: Sequence[CandidatePath], stats: Optional[RunStats] = None) -> RunStats:
        stats = stats or RunStats()
        batches = list(partition(candidates, self.batch_size))
        logging.info(
            f"Processing {len(candidates)} files in {len(batches)} batches "
            f"(batch size {self.batch_size}, {self.num_jobs} workers)"
        )

        progress = tqdm(total=len(candidates), desc="Extracting", unit="file",
                        disable=not self.show_progress)
        try:
            with ThreadPoolExecutor(max_workers=self.num_jobs) as executor:
                for index, batch in enumerate(batches, start=1):
                    outcomes = self._process_batch(executor, batch, progress)
                    records = [o.record for o in outcomes if o.status is OutcomeStatus.SUCCESS]

                    # Checkpoint: nothing from the next batch starts before this returns
                    self.sink.write(records)
                    stats.batches_written += 1
                    self._tally(outcomes, stats)
                    logging.debug(f"Batch {index}/{len(batches)}: {len(records)} of {len(batch)} recorded")
        finally:
            progress.close()

        return stats

    def _process_batch(self, executor: ThreadPoolExecutor, batch: List[CandidatePath], progress) -> List[ExtractionOutcome]:
        future_to_candidate = {
            executor.submit(self._extract_with_retry, candidate): candidate
            for candidate in batch
        }

        outcomes = []
        for future in as_completed(future_to_candidate):
            candidate = future_to_candidate[future]
            try:
                outcome = future.result()
            except Exception as e:
                # Isolate unexpected worker errors to this one path
                logging.error(f"Unexpected error extracting {candidate.path}: {e}")
                outcome = ExtractionOutcome.parse_failure(candidate.path, f"unexpected error: {e}")

            self._report(outcome)
            outcomes.append(outcome)
            progress.update(1)
        return outcomes

    def _extract_with_retry(self, candidate: CandidatePath) -> ExtractionOutcome:
        """Worker task. Retries transient failures, then demotes them to terminal."""
        attempt = 1
        outcome = self.extractor.extract(candidate.path)
        while outcome.is_retryable and attempt <= self.max_retries:
            logging.warning(f"Error processing {candidate.path}: {outcome.reason}. Retrying...")
            if self.retry_delay:
                time.sleep(self.retry_delay)
            attempt += 1
            outcome = self.extractor.extract(candidate.path)

        if outcome.is_retryable:
            return ExtractionOutcome(
                candidate.path,
                OutcomeStatus.PARSE_FAILURE,
                reason=f"gave up after {attempt} attempts: {outcome.reason}",
                attempts=attempt,
            )
        if attempt > 1:
            return ExtractionOutcome(outcome.path, outcome.status, outcome.record, outcome.reason, attempt)
        return outcome

    def _report(self, outcome: ExtractionOutcome):
        if outcome.status is OutcomeStatus.UNSUPPORTED:
            logging.warning(f"Skipped {outcome.path}: {outcome.reason}")
        elif outcome.status is OutcomeStatus.PARSE_FAILURE:
            logging.error(f"Error processing {outcome.path}: {outcome.reason}")

    def _tally(self, outcomes: List[ExtractionOutcome], stats: RunStats):
        for o in outcomes:
            stats.retries += o.attempts - 1
            if o.status is OutcomeStatus.SUCCESS:
                stats.processed += 1
            elif o.status is OutcomeStatus.UNSUPPORTED:
                stats.unsupported += 1
            else:
                stats.failed += 1
