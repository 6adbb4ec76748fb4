"""Fixed-size worker pool resolving row jobs through the cache and the geocoder."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Iterable, Iterator

from geoenrich.common.models import Geocoder, Resolved, RowJob, RowResult, Skipped
from geoenrich.pipeline.cache import ResolutionCache
from geoenrich.pipeline.coordinates import ParseError, parse_coordinates
from geoenrich.pipeline.geocode import GeocodeError

logger = logging.getLogger(__name__)

_STOP = object()
_DONE = object()


class WorkerPool:
    """Fan jobs out to ``concurrency`` threads and fan their results back in.

    Every job yields exactly one result unless ``cancel_event`` is set, in
    which case workers stop claiming work and drain the queue without output.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        cache: ResolutionCache,
        *,
        concurrency: int = 10,
        request_delay: float = 1.5,
        cancel_event: threading.Event | None = None,
        wait: Callable[[float], bool] | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.geocoder = geocoder
        self.cache = cache
        self.concurrency = concurrency
        self.request_delay = request_delay
        self.cancel_event = cancel_event or threading.Event()
        # Returns True when cancelled during the wait.
        self.wait = wait or self.cancel_event.wait

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def process_job(self, job: RowJob) -> RowResult | None:
        try:
            pair = parse_coordinates(job.raw_text)
        except ParseError as exc:
            return Skipped(row_index=job.row_index, reason=str(exc), error_code=exc.error_code)

        location = self.cache.get(pair)
        if location is None:
            # Pacing delay; doubles as a cancellation point.
            if self.wait(self.request_delay) or self.cancelled:
                return None
            try:
                location = self.geocoder.resolve(pair)
            except GeocodeError as exc:
                return Skipped(
                    row_index=job.row_index,
                    reason=f"geocode error: {exc}",
                    error_code=exc.error_code,
                )
            self.cache.put(pair, location)

        return Resolved(row_index=job.row_index, location=location, coordinates=pair)

    def _worker(self, jobs: "queue.Queue[object]", results: "queue.Queue[object]") -> None:
        while True:
            job = jobs.get()
            if job is _STOP:
                return
            if self.cancelled:
                continue
            try:
                result = self.process_job(job)
            except Exception as exc:
                logger.exception("unexpected failure on row %d", job.row_index + 1)
                result = Skipped(row_index=job.row_index, reason=f"unexpected error: {exc}", error_code="UNEXPECTED_ERROR")
            if result is not None:
                results.put(result)

    def _feed(self, jobs: Iterable[RowJob], job_queue: "queue.Queue[object]") -> None:
        try:
            for job in jobs:
                job_queue.put(job)
        finally:
            for _ in range(self.concurrency):
                job_queue.put(_STOP)

    def stream(self, jobs: Iterable[RowJob]) -> Iterator[RowResult]:
        """Yield results in arrival order; returns once every worker has exited."""
        job_queue: queue.Queue[object] = queue.Queue(maxsize=self.concurrency * 2)
        results: queue.Queue[object] = queue.Queue()

        workers = [
            threading.Thread(target=self._worker, args=(job_queue, results), name=f"geocode-worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        for worker in workers:
            worker.start()

        feeder = threading.Thread(target=self._feed, args=(jobs, job_queue), name="geocode-feeder", daemon=True)
        feeder.start()

        def _close_when_done() -> None:
            feeder.join()
            for worker in workers:
                worker.join()
            results.put(_DONE)

        threading.Thread(target=_close_when_done, name="geocode-closer", daemon=True).start()

        while True:
            item = results.get()
            if item is _DONE:
                return
            yield item

    def run(self, jobs: Iterable[RowJob]) -> list[RowResult]:
        return list(self.stream(jobs))
