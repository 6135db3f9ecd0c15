"""Compute-once cell for fallible lazy values."""

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class Once(Generic[T]):
    """Run a loader at most once and remember its value or its exception.

    Thread-safe: concurrent callers block on the first computation and then
    all observe the same outcome. A cached exception is re-raised on every
    subsequent ``get()``.
    """

    def __init__(self, loader: Callable[[], T]):
        self._loader = loader
        self._lock = threading.Lock()
        self._done = False
        self._value: T | None = None
        self._error: BaseException | None = None

    def get(self) -> T:
        with self._lock:
            if not self._done:
                try:
                    self._value = self._loader()
                except Exception as e:
                    self._error = e
                self._done = True

        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    @property
    def done(self) -> bool:
        """True once the loader has run, whether it succeeded or not."""
        return self._done
