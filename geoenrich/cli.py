"""CLI entrypoint: add address, district and province columns to a coordinate workbook."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path

from geoenrich.common.config_loader import load_settings
from geoenrich.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from geoenrich.common.errors import CheckpointError, PipelineError, SetupError
from geoenrich.common.fs import ensure_dir
from geoenrich.common.ids import generate_run_id
from geoenrich.common.logging import build_logger, log_event
from geoenrich.pipeline.batches import save_checkpoint
from geoenrich.pipeline.geocode import GeocodeClient
from geoenrich.pipeline.reports import write_run_summary
from geoenrich.pipeline.service import EnrichmentService, output_paths
from geoenrich.pipeline.workbook import WorkbookTable


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input_file", help="workbook name, looked up inside --data-dir")
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--config", default="./config/enrich.yml")
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--run-id", default=None)
    parser.add_argument(
        "--resume",
        action="store_true",
        help="continue from the checkpoint workbook, skipping rows that already have an address",
    )
    return parser.parse_args(argv)


def _setup_failed(logger: logging.Logger, run_id: str, exc: PipelineError) -> int:
    log_event(
        logger,
        str(exc),
        level=logging.ERROR,
        run_id=run_id,
        stage="setup",
        event="SETUP_FAIL",
        status="error",
        error_code=exc.error_code,
    )
    print(f"Error: {exc}", file=sys.stderr)
    return EXIT_HARD_FAIL


def _save_on_interrupt(logger: logging.Logger, table: WorkbookTable, checkpoint: Path) -> None:
    try:
        save_checkpoint(table, checkpoint)
    except CheckpointError as exc:
        log_event(
            logger,
            f"interrupted, {exc}",
            level=logging.ERROR,
            stage="checkpoint",
            event="CHECKPOINT_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return
    log_event(
        logger,
        f"interrupted, applied rows saved to {checkpoint}",
        level=logging.WARNING,
        stage="resolve",
        event="RUN_INTERRUPTED",
        status="cancelled",
    )


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    ensure_dir(data_dir)
    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)

    try:
        settings = load_settings(
            Path(args.config),
            overlay_path=Path(args.overlay_config) if args.overlay_config else None,
        )
        input_path = data_dir / args.input_file
        if not input_path.is_file():
            raise SetupError(
                f"File '{args.input_file}' not found in {data_dir}/ directory. "
                "Please place your workbook in the data directory."
            )
        paths = output_paths(input_path, data_dir, settings.output)
        source_path = input_path
        if args.resume and paths.checkpoint.is_file():
            source_path = paths.checkpoint
            log_event(logger, f"resuming from checkpoint {source_path}", stage="setup", event="RESUME", status="ok")
        table = WorkbookTable.open(source_path)
    except PipelineError as exc:
        return _setup_failed(logger, run_id, exc)

    log_event(logger, f"processing sheet: {table.sheet_name}", stage="setup", event="SHEET_OPEN", status="ok")
    cancel_event = threading.Event()
    try:
        with GeocodeClient(settings.geocoder) as client:
            service = EnrichmentService(table, settings, geocoder=client, cancel_event=cancel_event)
            try:
                stats = service.process(paths, resume=args.resume)
            except KeyboardInterrupt:
                cancel_event.set()
                _save_on_interrupt(logger, table, paths.checkpoint)
                return EXIT_PARTIAL
            write_run_summary(
                paths.report,
                run_id=run_id,
                input_path=input_path,
                output_path=paths.output,
                stats=stats,
                cache_hits=service.cache.hits,
                cache_misses=service.cache.misses,
                upstream_requests=client.request_count,
            )
    except PipelineError as exc:
        return _setup_failed(logger, run_id, exc)
    finally:
        table.close()

    log_event(
        logger,
        f"resolved {stats.resolved}/{stats.total_rows} rows, output saved to: {paths.output}",
        stage="output",
        event="RUN_END",
        status="ok",
        rows_in=stats.total_rows,
        rows_out=stats.resolved,
    )
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
