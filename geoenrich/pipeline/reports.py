"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from geoenrich.common.fs import write_json
from geoenrich.pipeline.batches import RunStats


def run_status(stats: RunStats) -> str:
    if stats.cancelled:
        return "cancelled"
    if stats.skipped or stats.checkpoint_failures:
        return "partial"
    return "success"


def write_run_summary(
    report_path: Path,
    *,
    run_id: str,
    input_path: Path,
    output_path: Path,
    stats: RunStats,
    cache_hits: int = 0,
    cache_misses: int = 0,
    upstream_requests: int = 0,
) -> Path:
    payload = {
        "run_id": run_id,
        "status": run_status(stats),
        "mode": stats.mode,
        "input": str(input_path),
        "output": str(output_path),
        "totals": {
            "rows": stats.total_rows,
            "resolved": stats.resolved,
            "skipped": stats.skipped,
            "already_filled": stats.already_filled,
        },
        "skip_reasons": dict(sorted(stats.skip_reasons.items())),
        "batches": stats.batches,
        "checkpoints": {
            "saved": stats.checkpoints,
            "failed": stats.checkpoint_failures,
        },
        "cache": {
            "hits": cache_hits,
            "misses": cache_misses,
        },
        "upstream_requests": upstream_requests,
    }
    write_json(report_path, payload)
    return report_path
