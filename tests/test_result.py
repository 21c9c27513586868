from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tilemosaic.result import Deferred, ErrorKind, MosaicError, Result, gather, store_failure


def _failure(kind: ErrorKind = ErrorKind.STORE) -> Result[int]:
    return Result.failed(MosaicError(kind, "boom"))


def test_result_states() -> None:
    assert Result.found(0).is_found
    assert Result.empty().is_empty
    assert _failure().is_failed
    assert Result.of_optional(None).is_empty
    assert Result.of_optional(False).value is False


def test_map_and_flat_map_short_circuit() -> None:
    assert Result.found(2).map(lambda value: value * 3).value == 6
    assert Result.empty().map(lambda value: value * 3).is_empty
    failed = _failure().flat_map(lambda value: Result.found(value))
    assert failed.error.kind is ErrorKind.STORE
    assert Result.found(1).flat_map(lambda _: Result.empty()).is_empty


def test_zip_prefers_failure_over_empty() -> None:
    assert Result.found(1).zip(Result.found("a")).value == (1, "a")
    assert Result.found(1).zip(Result.empty()).is_empty
    assert Result.empty().zip(_failure()).is_failed
    assert _failure(ErrorKind.INPUT).zip(_failure()).error.kind is ErrorKind.INPUT


def test_unwrap_raises_carried_error() -> None:
    assert Result.empty().unwrap() is None
    assert Result.found(4).unwrap() == 4
    with pytest.raises(MosaicError, match="boom"):
        _failure().unwrap()
    with pytest.raises(ValueError, match="no value"):
        Result.empty().value


def test_client_error_kinds() -> None:
    assert ErrorKind.CONFIGURATION.client_error
    assert ErrorKind.INPUT.client_error
    assert not ErrorKind.STORE.client_error


def test_store_failure_chains_cause() -> None:
    original = OSError("disk")
    error = store_failure(original)
    assert error.kind is ErrorKind.STORE
    assert error.__cause__ is original
    assert store_failure(error) is error


def test_deferred_submit_captures_exceptions() -> None:
    def _explode() -> Result[int]:
        raise RuntimeError("store offline")

    with ThreadPoolExecutor(max_workers=1) as executor:
        result = Deferred.submit(executor, _explode).result(timeout=5)
    assert result.is_failed
    assert result.error.kind is ErrorKind.STORE
    assert isinstance(result.error.__cause__, RuntimeError)


def test_deferred_map_and_flat_map() -> None:
    with ThreadPoolExecutor(max_workers=2) as executor:
        deferred = Deferred.submit(executor, Result.found, 5)
        doubled = deferred.map(lambda value: value * 2)
        emptied = deferred.flat_map(lambda _: Result.empty())
        assert doubled.result(timeout=5).value == 10
        assert emptied.result(timeout=5).is_empty


def test_deferred_zip_waits_for_both_without_blocking_callbacks() -> None:
    release = threading.Event()

    def _slow() -> Result[str]:
        release.wait(timeout=5)
        return Result.found("slow")

    with ThreadPoolExecutor(max_workers=1) as executor:
        slow = Deferred.submit(executor, _slow)
        paired = Deferred.resolved(Result.found("fast")).zip(slow)
        assert not paired.done()
        release.set()
        assert paired.result(timeout=5).value == ("fast", "slow")


def test_gather_keeps_input_order() -> None:
    events = [threading.Event() for _ in range(3)]

    def _task(index: int) -> Result[int]:
        events[index].wait(timeout=5)
        if index > 0:
            events[index - 1].set()
        return Result.found(index)

    with ThreadPoolExecutor(max_workers=3) as executor:
        deferreds = [Deferred.submit(executor, _task, index) for index in range(3)]
        events[2].set()
        results = gather(deferreds)
    assert [result.value for result in results] == [0, 1, 2]
