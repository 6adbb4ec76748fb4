"""End-to-end enrichment of one table: columns, worker pool, batches, output."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from geoenrich.common.config_loader import OutputSettings, Settings
from geoenrich.common.errors import SetupError
from geoenrich.common.logging import log_event
from geoenrich.common.models import Geocoder, Table
from geoenrich.pipeline.batches import BatchCoordinator, RunStats
from geoenrich.pipeline.cache import ResolutionCache
from geoenrich.pipeline.columns import ensure_output_columns, find_columns
from geoenrich.pipeline.pool import WorkerPool
from geoenrich.pipeline.writer import ResultWriter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputPaths:
    output: Path
    checkpoint: Path
    report: Path


def output_paths(input_path: Path, data_dir: Path, settings: OutputSettings) -> OutputPaths:
    stem = input_path.stem
    return OutputPaths(
        output=data_dir / f"{stem}{settings.output_suffix}.xlsx",
        checkpoint=data_dir / f"{stem}{settings.checkpoint_suffix}.xlsx",
        report=data_dir / settings.report_dir / f"{stem}_summary.json",
    )


class EnrichmentService:
    def __init__(
        self,
        table: Table,
        settings: Settings,
        *,
        geocoder: Geocoder,
        cache: ResolutionCache | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.table = table
        self.settings = settings
        self.geocoder = geocoder
        self.cache = cache or ResolutionCache()
        self.cancel_event = cancel_event or threading.Event()
        self.sleep = sleep

    def process(self, paths: OutputPaths, *, resume: bool = False) -> RunStats:
        rows = self.table.rows()
        if not rows:
            raise SetupError("table is empty")
        log_event(logger, f"total rows to process: {len(rows) - 1}", stage="setup", event="RUN_START", status="ok", rows_in=len(rows) - 1)

        layout = find_columns(rows)
        layout = ensure_output_columns(self.table, layout, len(rows[0]))

        pool = WorkerPool(
            self.geocoder,
            self.cache,
            concurrency=self.settings.pool.concurrency,
            request_delay=self.settings.pool.request_delay_seconds,
            cancel_event=self.cancel_event,
        )
        coordinator = BatchCoordinator(
            pool,
            ResultWriter(self.table, layout),
            self.table,
            settings=self.settings.batching,
            checkpoint_path=paths.checkpoint,
            cancel_event=self.cancel_event,
            sleep=self.sleep,
        )
        stats = coordinator.run(rows, layout.coordinate, skip_filled_column=layout.address if resume else None)
        log_event(
            logger,
            f"processed {stats.resolved} rows",
            stage="resolve",
            event="RESOLVE_END",
            status="ok",
            rows_in=stats.total_rows,
            rows_out=stats.resolved,
        )

        try:
            self.table.save(paths.output)
        except OSError as exc:
            raise SetupError(f"saving file {paths.output}: {exc}") from exc
        log_event(logger, f"output saved to: {paths.output}", stage="output", event="OUTPUT_SAVED", status="ok")
        return stats
