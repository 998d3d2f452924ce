"""
Transfer module for GridFS S3 Migration Tool.
Copies GridFS files to S3 through a bounded pool of workers.
"""

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from gsmt.core.batch import TransferBatch
from gsmt.core.config import PoolConfig
from gsmt.core.destination import ObjectWriter, content_type_for, destination_key
from gsmt.core.source import FileRecord, ObjectReader, SourceLister
from gsmt.core.transfer_log import TransferLogEntry, TransferLogger


class OutcomeStatus(Enum):
    """Terminal state of a record in a run"""

    SUCCEEDED = auto()
    FAILED = auto()
    SKIPPED = auto()  # never started: fail-fast abort or cancellation


class FailurePolicy(Enum):
    """How a run reacts to a failed record"""

    BEST_EFFORT = auto()
    FAIL_FAST = auto()


@dataclass
class TransferOutcome:
    """Result of copying one file"""

    record: FileRecord
    key: str
    status: OutcomeStatus
    url: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


@dataclass
class TransferResult:
    """Aggregate result of a migration run"""

    outcomes: List[TransferOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: float = 0.0

    def _with_status(self, status: OutcomeStatus) -> List[TransferOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def successful(self) -> List[TransferOutcome]:
        return self._with_status(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> List[TransferOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> List[TransferOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def total_size(self) -> int:
        return sum(o.record.length or 0 for o in self.successful)

    def finish(self):
        self.completed_at = datetime.now()
        self.duration = (self.completed_at - self.started_at).total_seconds()


class TransferAborted(Exception):
    """Raised by a fail-fast run once the first failure has drained"""

    def __init__(self, cause: TransferOutcome, outcomes: List[TransferOutcome]):
        self.cause = cause
        self.outcomes = outcomes
        super().__init__(
            f"Transfer aborted after {cause.record.filename} failed: {cause.error}"
        )


class TransferPool:
    """Runs file transfers with at most `concurrency` in flight"""

    def __init__(
        self,
        reader: ObjectReader,
        writer: ObjectWriter,
        folder: Optional[str] = None,
        concurrency: int = PoolConfig.DEFAULT_CONCURRENCY,
        policy: FailurePolicy = FailurePolicy.BEST_EFFORT,
        cancel_event: Optional[threading.Event] = None,
        console: Optional[Console] = None,
    ):
        """
        Initialize transfer pool

        Args:
            reader: Opens GridFS download streams
            writer: Uploads streams to S3
            folder: Key prefix for every uploaded object
            concurrency: Default number of transfers running at once
            policy: Reaction to a failed transfer
            cancel_event: When set, no further transfers are started
            console: Where progress is printed
        """
        self._reader = reader
        self._writer = writer
        self.folder = folder
        self.concurrency = concurrency
        self.policy = policy
        self.cancel_event = cancel_event or threading.Event()
        self._console = console or Console()

    def _transfer(self, record: FileRecord) -> TransferOutcome:
        key = destination_key(record.filename, self.folder)
        name = escape(record.filename)
        self._console.print(f"Getting file from GridFS: {name}")
        try:
            # The stream is closed even when the upload fails halfway
            with closing(self._reader.open(record)) as stream:
                self._writer.write(key, content_type_for(record.filename), stream)
        except Exception as e:
            self._console.print(f"[red]Failed to copy {name}: {escape(str(e))}[/red]")
            return TransferOutcome(record, key, OutcomeStatus.FAILED, error=e)

        url = self._writer.object_url(key)
        self._console.print(f"[green]Copied to S3 {escape(url)}[/green]")
        return TransferOutcome(record, key, OutcomeStatus.SUCCEEDED, url=url)

    def _skipped(self, record: FileRecord) -> TransferOutcome:
        key = destination_key(record.filename, self.folder)
        return TransferOutcome(record, key, OutcomeStatus.SKIPPED)

    def run(
        self, records: Sequence[FileRecord], concurrency: Optional[int] = None
    ) -> List[TransferOutcome]:
        """
        Transfer every record, each attempted at most once

        Args:
            records: Files to copy
            concurrency: Transfers running at once (default: the pool's)

        Returns:
            One outcome per record, in completion order

        Raises:
            ValueError: If concurrency is not a positive integer
            TransferAborted: On the first failure under FAIL_FAST
        """
        batch = TransferBatch.of(
            records, self.concurrency if concurrency is None else concurrency
        )
        pending = iter(batch.records)
        in_flight: Dict[Future, FileRecord] = {}
        outcomes: List[TransferOutcome] = []
        first_failure: Optional[TransferOutcome] = None

        with ThreadPoolExecutor(
            max_workers=batch.workers, thread_name_prefix="gsmt-transfer"
        ) as executor:

            def schedule():
                while len(in_flight) < batch.concurrency:
                    if first_failure is not None or self.cancel_event.is_set():
                        return
                    record = next(pending, None)
                    if record is None:
                        return
                    in_flight[executor.submit(self._transfer, record)] = record

            schedule()
            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    del in_flight[future]
                    outcome = future.result()
                    outcomes.append(outcome)
                    if (
                        first_failure is None
                        and not outcome.success
                        and self.policy == FailurePolicy.FAIL_FAST
                    ):
                        first_failure = outcome
                schedule()

        outcomes.extend(self._skipped(record) for record in pending)

        if first_failure is not None:
            raise TransferAborted(first_failure, outcomes)
        return outcomes


class TransferManager:
    """Lists GridFS files and copies them all to S3"""

    def __init__(
        self,
        lister: SourceLister,
        pool: TransferPool,
        logger: Optional[TransferLogger] = None,
        source: str = "",
        destination: str = "",
        console: Optional[Console] = None,
    ):
        """
        Initialize transfer manager

        Args:
            lister: Enumerates the files to copy
            pool: Runs the transfers
            logger: Run history log, or None to skip logging
            source: Source description recorded in the log
            destination: Destination description recorded in the log
        """
        self._lister = lister
        self._pool = pool
        self._logger = logger
        self.source = source
        self.destination = destination
        self._console = console or Console()

    def _format_size(self, size: int) -> str:
        """Format size in bytes to human readable string"""
        for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
            if size < 1024:
                return f"{size:.1f}{unit}"
            size /= 1024
        return f"{size:.1f}PB"

    def migrate(self) -> TransferResult:
        """
        Copy every file from the source to the destination

        Returns:
            TransferResult with one outcome per listed file

        Raises:
            ListError: If the source cannot be listed; nothing is transferred
            TransferAborted: Under fail-fast, after the run has been logged
        """
        result = TransferResult()
        files = self._lister.list_files()
        self._console.print(f"Copying {len(files)} files")

        try:
            result.outcomes = self._pool.run(files)
        except TransferAborted as e:
            result.outcomes = e.outcomes
            raise
        finally:
            result.finish()
            self._log(result)
            self._print_summary(result)

        return result

    def _log(self, result: TransferResult):
        if self._logger is None:
            return
        try:
            self._logger.add_entry(TransferLogEntry(
                timestamp=datetime.now().isoformat(),
                source=self.source,
                destination=self.destination,
                successful_files=[o.record.filename for o in result.successful],
                failed_files=[o.record.filename for o in result.failed],
                skipped_files=[o.record.filename for o in result.skipped],
                total_size=result.total_size,
                duration=result.duration,
                policy=self._pool.policy.name.lower(),
            ))
        except OSError as e:
            self._console.print(
                f"[yellow]Warning: Failed to write transfer log: {escape(str(e))}[/yellow]"
            )

    def _print_summary(self, result: TransferResult):
        if result.successful:
            self._console.print(
                f"\n[green]Successfully copied {len(result.successful)} files "
                f"({self._format_size(result.total_size)})[/green]"
            )

        if result.failed:
            self._console.print(f"\n[red]Failed to copy {len(result.failed)} files:[/red]")
            for outcome in result.failed:
                self._console.print(
                    f"  - {escape(outcome.record.filename)}: {escape(str(outcome.error))}"
                )

        if result.skipped:
            self._console.print(
                f"\n[yellow]Skipped {len(result.skipped)} files that were never started[/yellow]"
            )

        if result.duration > 0:
            self._console.print(f"\nTransfer completed in {result.duration:.1f} seconds")
