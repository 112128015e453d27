from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future

from .models import CollectionRef


class CollectionCache:
    """Collection name -> remote handle map with single-flight loading.

    The first caller for a name runs the loader; concurrent callers for the
    same name wait on that caller's future and receive the same handle (or
    the same exception). Failed loads are evicted so a later caller can try
    again. Successful entries live for the whole run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Future[CollectionRef]] = {}
        self.loads = 0

    def get_or_create(self, name: str, loader: Callable[[], CollectionRef]) -> CollectionRef:
        with self._lock:
            existing = self._entries.get(name)
            if existing is None:
                future: Future[CollectionRef] = Future()
                self._entries[name] = future
                self.loads += 1

        if existing is not None:
            return existing.result()

        try:
            ref = loader()
        except BaseException as exc:
            with self._lock:
                self._entries.pop(name, None)
            future.set_exception(exc)
            raise
        future.set_result(ref)
        return ref

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            futures = dict(self._entries)
        return {
            name: future.result().remote_id
            for name, future in futures.items()
            if future.done() and future.exception() is None
        }
