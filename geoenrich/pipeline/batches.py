"""Direct and batched execution of the worker pool with periodic checkpoints."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Protocol, Sequence

from geoenrich.common.config_loader import BatchSettings
from geoenrich.common.constants import PROGRESS_EVERY_ROWS
from geoenrich.common.errors import CheckpointError
from geoenrich.common.logging import log_event
from geoenrich.common.models import Batch, Resolved, RowJob, RowResult, Skipped, Table
from geoenrich.pipeline.writer import ResultWriter

logger = logging.getLogger(__name__)

MODE_DIRECT = "direct"
MODE_BATCHED = "batched"


class ResultSource(Protocol):
    def stream(self, jobs: Iterable[RowJob]) -> Iterator[RowResult]: ...


@dataclass
class RunStats:
    mode: str = MODE_DIRECT
    total_rows: int = 0
    resolved: int = 0
    skipped: int = 0
    already_filled: int = 0
    batches: int = 0
    checkpoints: int = 0
    checkpoint_failures: int = 0
    cancelled: bool = False
    skip_reasons: Counter = field(default_factory=Counter)


def plan_batches(total_rows: int, batch_size: int) -> list[Batch]:
    """Partition data rows ``1..total_rows`` (row 0 is the header) into contiguous batches."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    end_row = total_rows + 1
    return [Batch(start, min(start + batch_size, end_row)) for start in range(1, end_row, batch_size)]


def save_checkpoint(table: Table, path: Path) -> None:
    try:
        table.save(path)
    except OSError as exc:
        raise CheckpointError(f"could not save progress: {exc}") from exc


def _cell(row: Sequence[str], column: int) -> str:
    return row[column] if 0 <= column < len(row) else ""


def build_jobs(
    rows: Sequence[Sequence[str]],
    coordinate_column: int,
    batch: Batch,
    *,
    skip_filled_column: int | None = None,
) -> list[RowJob]:
    jobs = []
    for row_index in range(batch.start, batch.end):
        row = rows[row_index]
        if skip_filled_column is not None and _cell(row, skip_filled_column).strip():
            continue
        jobs.append(RowJob(row_index=row_index, raw_text=_cell(row, coordinate_column)))
    return jobs


class BatchCoordinator:
    def __init__(
        self,
        pool: ResultSource,
        writer: ResultWriter,
        table: Table,
        *,
        settings: BatchSettings | None = None,
        checkpoint_path: Path | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.pool = pool
        self.writer = writer
        self.table = table
        self.settings = settings or BatchSettings()
        self.checkpoint_path = checkpoint_path
        self.cancel_event = cancel_event or threading.Event()
        self.sleep = sleep

    def mode_for(self, total_rows: int) -> str:
        return MODE_BATCHED if total_rows > self.settings.threshold else MODE_DIRECT

    def run(
        self,
        rows: Sequence[Sequence[str]],
        coordinate_column: int,
        *,
        skip_filled_column: int | None = None,
    ) -> RunStats:
        total_rows = len(rows) - 1
        stats = RunStats(mode=self.mode_for(total_rows), total_rows=total_rows)

        if stats.mode == MODE_DIRECT:
            batch = Batch(1, total_rows + 1)
            jobs = build_jobs(rows, coordinate_column, batch, skip_filled_column=skip_filled_column)
            stats.already_filled += len(batch) - len(jobs)
            self._apply(jobs, stats, verbose=True)
            stats.batches = 1
            stats.cancelled = self.cancel_event.is_set()
            return stats

        batches = plan_batches(total_rows, self.settings.size)
        log_event(
            logger,
            f"large dataset detected, processing {len(batches)} batches of {self.settings.size} rows",
            stage="batch",
            event="BATCHED_MODE",
            status="ok",
            rows_in=total_rows,
        )
        for number, batch in enumerate(batches, start=1):
            if self.cancel_event.is_set():
                stats.cancelled = True
                break
            self._run_batch(number, len(batches), batch, rows, coordinate_column, skip_filled_column, stats)
            if number < len(batches):
                self.sleep(self.settings.pause_seconds)
        stats.cancelled = stats.cancelled or self.cancel_event.is_set()
        return stats

    def _run_batch(
        self,
        number: int,
        batch_count: int,
        batch: Batch,
        rows: Sequence[Sequence[str]],
        coordinate_column: int,
        skip_filled_column: int | None,
        stats: RunStats,
    ) -> None:
        log_event(
            logger,
            f"processing batch {number}/{batch_count} (rows {batch.start + 1}-{batch.end})",
            stage="batch",
            event="BATCH_START",
            status="ok",
            batch=number,
        )
        started = time.monotonic()
        jobs = build_jobs(rows, coordinate_column, batch, skip_filled_column=skip_filled_column)
        stats.already_filled += len(batch) - len(jobs)
        applied = self._apply(jobs, stats, verbose=False)
        stats.batches += 1
        log_event(
            logger,
            f"batch {number}/{batch_count} done",
            stage="batch",
            event="BATCH_END",
            status="ok",
            batch=number,
            rows_in=len(jobs),
            rows_out=applied,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self._checkpoint(number, stats)

    def _checkpoint(self, number: int, stats: RunStats) -> None:
        if self.checkpoint_path is None:
            return
        try:
            save_checkpoint(self.table, self.checkpoint_path)
        except CheckpointError as exc:
            stats.checkpoint_failures += 1
            log_event(
                logger,
                str(exc),
                level=logging.WARNING,
                stage="checkpoint",
                event="CHECKPOINT_FAIL",
                status="error",
                batch=number,
                error_code=exc.error_code,
            )
            return

        stats.checkpoints += 1
        done = stats.resolved + stats.skipped + stats.already_filled
        percent = done / stats.total_rows * 100 if stats.total_rows else 100.0
        log_event(
            logger,
            f"progress saved: {done}/{stats.total_rows} rows processed ({percent:.1f}%)",
            stage="checkpoint",
            event="CHECKPOINT_SAVED",
            status="ok",
            batch=number,
            rows_out=stats.resolved,
        )

    def _apply(self, jobs: list[RowJob], stats: RunStats, *, verbose: bool) -> int:
        applied = 0
        completed = 0
        for result in self.pool.stream(jobs):
            completed += 1
            row_number = result.row_index + 1
            if isinstance(result, Skipped):
                stats.skipped += 1
                stats.skip_reasons[result.error_code] += 1
                loud = verbose or row_number % PROGRESS_EVERY_ROWS == 0 or result.error_code == "RATE_LIMITED"
                log_event(
                    logger,
                    f"Row {row_number}: {result.reason}",
                    level=logging.INFO if loud else logging.DEBUG,
                    stage="resolve",
                    event="ROW_SKIPPED",
                    status="skipped",
                    row=row_number,
                    error_code=result.error_code,
                )
                continue

            self.writer.apply(result)
            applied += 1
            stats.resolved += 1
            self._log_resolved(result, completed, len(jobs), verbose)
            if not verbose and applied % PROGRESS_EVERY_ROWS == 0:
                log_event(logger, f"processed {applied} rows in this batch", stage="resolve", event="BATCH_PROGRESS", status="ok")
        return applied

    def _log_resolved(self, result: Resolved, completed: int, total: int, verbose: bool) -> None:
        coords = result.coordinates
        log_event(
            logger,
            f"Row {result.row_index + 1}: [{completed}/{total}] "
            f"({coords.latitude:.6f}, {coords.longitude:.6f}) -> {result.location.full_address}",
            level=logging.INFO if verbose else logging.DEBUG,
            stage="resolve",
            event="ROW_RESOLVED",
            status="ok",
            row=result.row_index + 1,
        )
