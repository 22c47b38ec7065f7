"""Public study-material search, joined with subject titles."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from models import COLLECTION_MATERIALS, COLLECTION_SUBJECTS, StudyMaterial

logger = logging.getLogger(__name__)

PAGE_SIZE = 20
MIN_TERM_LENGTH = 3
DEBOUNCE_SECONDS = 0.5


def search_public_materials(
    store,
    term: str,
    page_size: int = PAGE_SIZE,
    min_length: int = MIN_TERM_LENGTH,
) -> list[StudyMaterial]:
    """Case-insensitive substring match over public materials.

    Only the first `page_size` public materials are considered. A term
    shorter than `min_length` returns [] without touching the store.
    Materials whose subject is missing are skipped.
    """
    term = (term or "").strip()
    if len(term) < min_length:
        return []
    needle = term.lower()

    query = store.collection(COLLECTION_MATERIALS).where("isPublic", "==", True).limit(page_size)
    subjects = store.collection(COLLECTION_SUBJECTS)
    titles: dict[str, Optional[str]] = {}

    results = []
    for doc in query.stream():
        material = StudyMaterial.from_snapshot(doc)
        if not material.subject_id:
            continue
        if material.subject_id not in titles:
            subject = subjects.document(material.subject_id).get()
            titles[material.subject_id] = subject.get("title") if subject.exists else None
        subject_title = titles[material.subject_id]
        if subject_title is None:
            logger.debug("Skipping public material %s with no subject", material.id)
            continue

        material.subject_title = subject_title
        if needle in material.title.lower() or needle in subject_title.lower():
            results.append(material)
    return results


class Debouncer:
    """Run a call only after input has been quiet for `delay` seconds.

    Each call() cancels the pending one; the function runs on a timer
    thread with the arguments of the last call.
    """

    def __init__(self, fn: Callable, delay: float = DEBOUNCE_SECONDS) -> None:
        self._fn = fn
        self.delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def call(self, *args, **kwargs) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._run, args, kwargs)
            self._timer.daemon = True
            self._timer.start()

    def _run(self, *args, **kwargs) -> None:
        with self._lock:
            self._timer = None
        try:
            self._fn(*args, **kwargs)
        except Exception:
            logger.exception("Debounced call failed")

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class PublicSearch:
    """Search-as-you-type over public materials.

    update() is called on every keystroke; a term shorter than the minimum
    clears the results at once, anything longer is searched after the
    debounce delay. Results are delivered to `on_results` on the timer
    thread, inside an app context.
    """

    def __init__(self, app, on_results: Callable[[list[StudyMaterial]], None],
                 delay: Optional[float] = None) -> None:
        self._app = app
        self._on_results = on_results
        self._min_length = app.config.get("PUBLIC_SEARCH_MIN_LENGTH", MIN_TERM_LENGTH)
        self._page_size = app.config.get("PUBLIC_SEARCH_PAGE_SIZE", PAGE_SIZE)
        if delay is None:
            delay = app.config.get("SEARCH_DEBOUNCE_SECONDS", DEBOUNCE_SECONDS)
        self._debouncer = Debouncer(self._run, delay)
        self.results: list[StudyMaterial] = []
        self.loading = False

    def update(self, term: str) -> None:
        if len((term or "").strip()) < self._min_length:
            self._debouncer.cancel()
            self.results = []
            self.loading = False
            self._on_results([])
            return
        self.loading = True
        self._debouncer.call(term)

    def _run(self, term: str) -> None:
        with self._app.app_context():
            store = self._app.extensions["document_store"]
            results = search_public_materials(store, term, self._page_size, self._min_length)
        self.results = results
        self.loading = False
        self._on_results(results)

    def close(self) -> None:
        self._debouncer.cancel()
