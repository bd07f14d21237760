from __future__ import annotations

import threading
import time

import pytest

from scenecast.errors import CaptureError, CaptureTimeoutError, RenderCancelledError
from scenecast.render import SurfacePool
from tests.helpers.render_stubs import StubSurface


def test_lease_opens_and_closes_a_handle() -> None:
    surface = StubSurface()
    pool = SurfacePool(surface, 2)

    with pool.lease() as handle:
        assert pool.in_use == 1
        assert pool.available == 1
        assert not handle.closed

    assert handle.closed
    assert pool.available == 2
    assert surface.opened == surface.closed == 1


def test_lease_releases_slot_when_body_raises() -> None:
    surface = StubSurface()
    pool = SurfacePool(surface, 1)

    with pytest.raises(RuntimeError):
        with pool.lease():
            raise RuntimeError("boom")

    assert pool.available == 1
    assert surface.active == 0


def test_open_failure_is_a_capture_error_and_frees_the_slot() -> None:
    pool = SurfacePool(StubSurface(fail_open=True), 1)

    with pytest.raises(CaptureError):
        with pool.lease():
            pass

    assert pool.available == 1


def test_pool_size_bounds_concurrent_leases() -> None:
    surface = StubSurface()
    pool = SurfacePool(surface, 2, poll_interval=0.01)
    barrier = threading.Barrier(5)

    def worker() -> None:
        barrier.wait()
        with pool.lease():
            time.sleep(0.02)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert pool.peak_in_use == 2
    assert surface.peak_active == 2
    assert surface.opened == 5
    assert pool.available == 2


def test_waiting_lease_honours_cancellation() -> None:
    pool = SurfacePool(StubSurface(), 1, poll_interval=0.01)
    cancel = threading.Event()
    errors = []

    def waiter() -> None:
        try:
            with pool.lease(cancel_event=cancel):
                pass
        except RenderCancelledError as exc:
            errors.append(exc)

    with pool.lease():
        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.05)
        cancel.set()
        pool.wake()
        thread.join(2)

    assert len(errors) == 1
    assert pool.available == 1


def test_waiting_lease_times_out() -> None:
    pool = SurfacePool(StubSurface(), 1, poll_interval=0.01)

    with pool.lease():
        with pytest.raises(CaptureTimeoutError):
            with pool.lease(timeout=0.05):
                pass

    assert pool.available == 1


def test_pool_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SurfacePool(StubSurface(), 0)
