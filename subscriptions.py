"""
Live views over the document store.

A LiveQuery keeps an in-memory, sorted list that tracks a store query:
every snapshot replaces the whole list (no diffing), the first snapshot or
first error ends the loading state, and read errors become toasts while
the previous items stay in place. close() releases the underlying watch;
snapshots that race with close() are dropped.

DerivedView folds the latest value of several live inputs through a pure
function and recomputes whenever any of them changes, in any order.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generic, Optional, TypeVar

from toasts import ToastQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[], None]


class _LiveBase:
    def __init__(self, label: str, toasts: Optional[ToastQueue], error_message: str) -> None:
        self.label = label
        self.loading = True
        self.error: Optional[Exception] = None
        self._toasts = toasts
        self._error_message = error_message
        self._watch = None
        self._closed = False
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    @property
    def closed(self) -> bool:
        return self._closed

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Call listener after every accepted snapshot or error."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener()

    def _on_error(self, exc: Exception) -> None:
        with self._lock:
            if self._closed:
                return
            self.error = exc
            self.loading = False
        logger.error("Error fetching %s: %s", self.label, exc)
        if self._toasts is not None:
            self._toasts.error(self._error_message)
        self._notify()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            watch, self._watch = self._watch, None
            self._listeners.clear()
        if watch is not None:
            watch.unsubscribe()
        logger.debug("Released subscription %s", self.label)


class LiveQuery(_LiveBase, Generic[T]):
    """Sorted, wholesale-replaced view of a query's documents."""

    def __init__(
        self,
        query,
        parse: Callable[[Any], T],
        sort_key: Optional[Callable[[T], Any]] = None,
        label: str = "documents",
        toasts: Optional[ToastQueue] = None,
        error_message: Optional[str] = None,
    ) -> None:
        super().__init__(label, toasts, error_message or f"Could not fetch {label}.")
        self.items: list[T] = []
        self._query = query
        self._parse = parse
        self._sort_key = sort_key

    def start(self) -> LiveQuery[T]:
        watch = self._query.on_snapshot(self._on_snapshot, self._on_error)
        with self._lock:
            if self._closed:
                watch.unsubscribe()
            else:
                self._watch = watch
        return self

    def _on_snapshot(self, snapshot) -> None:
        try:
            items = [self._parse(doc) for doc in snapshot]
            if self._sort_key is not None:
                items.sort(key=self._sort_key)
        except Exception as exc:
            self._on_error(exc)
            return
        with self._lock:
            if self._closed:
                return
            self.items = items
            self.error = None
            self.loading = False
        self._notify()


class LiveDocument(_LiveBase, Generic[T]):
    """View of one document; None when missing or owned by someone else."""

    def __init__(
        self,
        reference,
        parse: Callable[[Any], T],
        owner_id: Optional[str] = None,
        label: str = "document",
        toasts: Optional[ToastQueue] = None,
        error_message: Optional[str] = None,
    ) -> None:
        super().__init__(label, toasts, error_message or f"Could not fetch {label}.")
        self.value: Optional[T] = None
        self._reference = reference
        self._parse = parse
        self._owner_id = owner_id

    def start(self) -> LiveDocument[T]:
        watch = self._reference.on_snapshot(self._on_snapshot, self._on_error)
        with self._lock:
            if self._closed:
                watch.unsubscribe()
            else:
                self._watch = watch
        return self

    def _on_snapshot(self, snapshot) -> None:
        value = None
        if snapshot.exists:
            data = snapshot.to_dict()
            if self._owner_id is None or data.get("userId") == self._owner_id:
                try:
                    value = self._parse(snapshot)
                except Exception as exc:
                    self._on_error(exc)
                    return
            else:
                logger.info("Ignoring %s owned by another user", self.label)
        with self._lock:
            if self._closed:
                return
            self.value = value
            self.error = None
            self.loading = False
        self._notify()


class DerivedView(Generic[T]):
    """Pure function of the latest values of its inputs.

    `inputs` maps a name to a live view; `extract` pulls the value handed
    to `compute` (e.g. `.items` or `.value`). The result is recomputed on
    every input change once no input is still loading.
    """

    def __init__(
        self,
        inputs: dict[str, _LiveBase],
        compute: Callable[..., T],
        extract: Optional[dict[str, Callable[[Any], Any]]] = None,
    ) -> None:
        self._inputs = inputs
        self._compute = compute
        self._extract = extract or {}
        self.value: Optional[T] = None
        self.recomputations = 0
        self._lock = threading.Lock()
        self._removers = [view.listen(self.refresh) for view in inputs.values()]
        self.refresh()

    @property
    def loading(self) -> bool:
        return any(view.loading for view in self._inputs.values())

    def _current(self, name: str, view: _LiveBase) -> Any:
        if name in self._extract:
            return self._extract[name](view)
        if isinstance(view, LiveQuery):
            return view.items
        return getattr(view, "value", None)

    def refresh(self) -> None:
        if self.loading:
            return
        kwargs = {name: self._current(name, view) for name, view in self._inputs.items()}
        value = self._compute(**kwargs)
        with self._lock:
            self.value = value
            self.recomputations += 1

    def close(self) -> None:
        for remove in self._removers:
            remove()
        self._removers = []
