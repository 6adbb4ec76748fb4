import threading

import pytest

from geoenrich.common.models import CoordinatePair, Resolved, ResolvedLocation, RowJob, Skipped
from geoenrich.pipeline.cache import ResolutionCache
from geoenrich.pipeline.geocode import RateLimitedError
from geoenrich.pipeline.pool import WorkerPool
from tests.fakes import CountingGeocoder


def _pool(geocoder, **kwargs):
    kwargs.setdefault("concurrency", 4)
    kwargs.setdefault("request_delay", 0)
    return WorkerPool(geocoder, ResolutionCache(), **kwargs)


def test_every_job_yields_exactly_one_result():
    geocoder = CountingGeocoder()
    jobs = [RowJob(i, f"{i}.5,100.25") for i in range(1, 51)]

    results = _pool(geocoder).run(jobs)

    assert sorted(result.row_index for result in results) == list(range(1, 51))
    assert all(isinstance(result, Resolved) for result in results)
    assert len(geocoder.calls) == 50


def test_empty_input_is_skipped_without_upstream_call():
    geocoder = CountingGeocoder()

    results = _pool(geocoder).run([RowJob(1, ""), RowJob(2, "   ")])

    assert {result.row_index for result in results} == {1, 2}
    assert all(isinstance(result, Skipped) for result in results)
    assert all(result.error_code == "PARSE_ERROR" for result in results)
    assert geocoder.calls == []


def test_duplicate_coordinates_call_upstream_once():
    geocoder = CountingGeocoder()
    jobs = [RowJob(1, "13.7563,100.5018"), RowJob(2, "13.756300,100.501800")]

    results = _pool(geocoder, concurrency=1).run(jobs)

    assert len(geocoder.calls) == 1
    assert results[0].location == results[1].location


def test_cache_hit_skips_pacing_and_upstream():
    geocoder = CountingGeocoder()
    cache = ResolutionCache()
    cached = ResolvedLocation("cached", "d", "p")
    cache.put(CoordinatePair(1.0, 2.0), cached)
    pool = WorkerPool(geocoder, cache, concurrency=1, request_delay=60)

    result = pool.process_job(RowJob(3, "1,2"))

    assert result == Resolved(3, cached, CoordinatePair(1.0, 2.0))
    assert geocoder.calls == []


def test_geocode_failure_becomes_skipped_with_reason():
    geocoder = CountingGeocoder(error=RateLimitedError("API rate limit exceeded (HTTP 429)"))

    [result] = _pool(geocoder).run([RowJob(7, "13.5,105.9")])

    assert isinstance(result, Skipped)
    assert result.row_index == 7
    assert result.error_code == "RATE_LIMITED"
    assert result.reason == "geocode error: API rate limit exceeded (HTTP 429)"


def test_failed_resolution_is_not_cached():
    geocoder = CountingGeocoder(error=RateLimitedError("429"))
    pool = _pool(geocoder, concurrency=1)

    pool.run([RowJob(1, "1,2"), RowJob(2, "1,2")])

    assert len(geocoder.calls) == 2
    assert len(pool.cache) == 0


def test_unexpected_exception_still_produces_a_result():
    geocoder = CountingGeocoder(error=RuntimeError("boom"))

    [result] = _pool(geocoder).run([RowJob(4, "1,2")])

    assert isinstance(result, Skipped)
    assert result.error_code == "UNEXPECTED_ERROR"


def test_cancelled_pool_produces_no_results():
    geocoder = CountingGeocoder()
    cancel = threading.Event()
    cancel.set()

    results = _pool(geocoder, cancel_event=cancel).run([RowJob(i, "1,2") for i in range(1, 30)])

    assert results == []
    assert geocoder.calls == []


def test_more_jobs_than_queue_capacity_and_fewer_than_workers():
    geocoder = CountingGeocoder()

    assert len(_pool(geocoder, concurrency=2).run([RowJob(i, "1,2") for i in range(100)])) == 100
    assert len(_pool(geocoder, concurrency=10).run([RowJob(1, "1,2")])) == 1
    assert _pool(geocoder).run([]) == []


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        WorkerPool(CountingGeocoder(), ResolutionCache(), concurrency=0)


class RecordingWait:
    def __init__(self, cancelled: bool = False) -> None:
        self.delays: list[float] = []
        self.cancelled = cancelled
        self._lock = threading.Lock()

    def __call__(self, delay: float) -> bool:
        with self._lock:
            self.delays.append(delay)
        return self.cancelled


def test_pacing_wait_precedes_every_upstream_call_only():
    geocoder = CountingGeocoder()
    wait = RecordingWait()
    pool = _pool(geocoder, concurrency=1, request_delay=1.5, wait=wait)
    jobs = [
        RowJob(1, "1,2"),
        RowJob(2, "3,4"),
        RowJob(3, "1.000000,2.000000"),
        RowJob(4, ""),
        RowJob(5, "bad"),
    ]

    results = pool.run(jobs)

    assert len(results) == 5
    assert len(geocoder.calls) == 2
    assert wait.delays == [1.5, 1.5]


def test_cancel_during_pacing_wait_skips_upstream_call():
    geocoder = CountingGeocoder()
    pool = _pool(geocoder, request_delay=1.5, wait=RecordingWait(cancelled=True))

    assert pool.process_job(RowJob(1, "1,2")) is None
    assert geocoder.calls == []
