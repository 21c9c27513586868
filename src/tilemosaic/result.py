"""Explicit result values for operations that may find nothing or fail.

A ``Result`` is in exactly one of three states:

* found: carries a value,
* empty: the expected "no data here" condition,
* failed: carries a :class:`MosaicError` with an :class:`ErrorKind`.

Combinators propagate empty as empty and failures as failures, so fetch chains
short-circuit without raising. ``Deferred`` wraps a ``concurrent.futures.Future``
that resolves to a ``Result`` and offers the same combinators.
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, Iterable, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class ErrorKind(str, Enum):
    """Categories of failures surfaced by the mosaic pipeline."""

    CONFIGURATION = "configuration"
    INPUT = "input"
    NOT_FOUND = "not_found"
    STORE = "store"

    @property
    def client_error(self) -> bool:
        """Return True for failures caused by the caller's request."""
        return self is not ErrorKind.STORE


class MosaicError(Exception):
    """Failure carried by a result, tagged with its kind."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"MosaicError({self.kind.value!r}, {self.message!r})"


_EMPTY = object()


@dataclass(frozen=True, eq=False)
class Result(Generic[T]):
    """Found value, empty marker, or failure."""

    _value: Any = _EMPTY
    error: MosaicError | None = None

    @classmethod
    def found(cls, value: T) -> "Result[T]":
        return cls(value)

    @classmethod
    def empty(cls) -> "Result[T]":
        return cls()

    @classmethod
    def failed(cls, error: MosaicError) -> "Result[T]":
        return cls(_EMPTY, error)

    @classmethod
    def of_optional(cls, value: T | None) -> "Result[T]":
        """Lift an optional value: None becomes empty."""
        return cls.empty() if value is None else cls.found(value)

    @property
    def is_found(self) -> bool:
        return self.error is None and self._value is not _EMPTY

    @property
    def is_empty(self) -> bool:
        return self.error is None and self._value is _EMPTY

    @property
    def is_failed(self) -> bool:
        return self.error is not None

    @property
    def value(self) -> T:
        if not self.is_found:
            raise ValueError("Result holds no value.")
        return self._value

    def unwrap(self) -> T | None:
        """Return the value, None when empty, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return None if self._value is _EMPTY else self._value

    def map(self, fn: Callable[[T], U]) -> "Result[U]":
        if not self.is_found:
            return self  # type: ignore[return-value]
        return Result.found(fn(self._value))

    def flat_map(self, fn: Callable[[T], "Result[U]"]) -> "Result[U]":
        if not self.is_found:
            return self  # type: ignore[return-value]
        return fn(self._value)

    def zip(self, other: "Result[U]") -> "Result[tuple[T, U]]":
        """Pair two results; a failure wins over empty, empty over found."""
        if self.is_failed:
            return self  # type: ignore[return-value]
        if other.is_failed:
            return other  # type: ignore[return-value]
        if self.is_empty or other.is_empty:
            return Result.empty()
        return Result.found((self._value, other._value))


def store_failure(exc: Exception) -> MosaicError:
    """Wrap an exception raised by a store read."""
    if isinstance(exc, MosaicError):
        return exc
    error = MosaicError(ErrorKind.STORE, f"{type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error


def capture(fn: Callable[..., Result[T]], *args: Any) -> Result[T]:
    """Run a result-returning callable, turning raised exceptions into failures."""
    try:
        return fn(*args)
    except Exception as exc:
        return Result.failed(store_failure(exc))


class Deferred(Generic[T]):
    """Future result of a task running on a worker pool."""

    def __init__(self, future: "Future[Result[T]]") -> None:
        self._future = future

    @classmethod
    def submit(cls, executor: Executor, fn: Callable[..., Result[T]], *args: Any) -> "Deferred[T]":
        """Run ``fn(*args)`` on the executor; raised exceptions become failures."""
        return cls(executor.submit(capture, fn, *args))

    @classmethod
    def resolved(cls, result: Result[T]) -> "Deferred[T]":
        future: Future[Result[T]] = Future()
        future.set_result(result)
        return cls(future)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> Result[T]:
        """Block until the task completes and return its result."""
        return self._future.result(timeout)

    def _chain(self, fn: Callable[[Result[T]], Result[U]]) -> "Deferred[U]":
        chained: Future[Result[U]] = Future()

        def _complete(source: "Future[Result[T]]") -> None:
            try:
                chained.set_result(fn(source.result()))
            except Exception as exc:
                chained.set_result(Result.failed(store_failure(exc)))

        self._future.add_done_callback(_complete)
        return Deferred(chained)

    def map(self, fn: Callable[[T], U]) -> "Deferred[U]":
        return self._chain(lambda result: result.map(fn))

    def flat_map(self, fn: Callable[[T], Result[U]]) -> "Deferred[U]":
        return self._chain(lambda result: result.flat_map(fn))

    def zip(self, other: "Deferred[U]") -> "Deferred[tuple[T, U]]":
        """Pair with another deferred once both have completed.

        Completion callbacks never block on the other task.
        """
        paired: Future[Result[tuple[T, U]]] = Future()
        lock = threading.Lock()
        pending = [2]

        def _complete(_: Future) -> None:
            with lock:
                pending[0] -= 1
                if pending[0]:
                    return
            paired.set_result(self._future.result().zip(other._future.result()))

        self._future.add_done_callback(_complete)
        other._future.add_done_callback(_complete)
        return Deferred(paired)


def gather(deferreds: Iterable[Deferred[T]]) -> list[Result[T]]:
    """Wait for every deferred and return results in input order."""
    return [deferred.result() for deferred in deferreds]
