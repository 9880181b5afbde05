"""Two-step reference search: expand the query, then look up images per term.

``SearchOrchestrator`` drives the four-stage progress checklist, fans image
lookups out over a bounded thread pool and joins the results back in the
order the terms were generated. Each call to ``run`` opens a new epoch;
anything a superseded run produces afterwards is discarded instead of being
written over the newer search's state.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass

from log_setup import get_logger

log = get_logger(__name__)

PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"

_NEXT_STATUS = {PENDING: ACTIVE, ACTIVE: COMPLETED}

CHECKLIST_STAGES = [
    ("1", "Analyzing query with Gemini"),
    ("2", "Generating reference search terms"),
    ("3", "Searching web for images (per term)"),
    ("4", "Building reference collage"),
]

DEFAULT_PAUSES_MS = {"terms": 500, "collage": 300, "deliver": 500}


class SearchFailed(Exception):
    pass


@dataclass
class ChecklistItem:
    id: str
    label: str
    status: str = PENDING


class Checklist:
    """Fixed four-stage checklist. Stages only move pending -> active -> completed."""

    def __init__(self):
        self.items = [ChecklistItem(id_, label) for id_, label in CHECKLIST_STAGES]

    def get(self, item_id):
        for item in self.items:
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def reset(self):
        for item, (_, label) in zip(self.items, CHECKLIST_STAGES):
            item.status = PENDING
            item.label = label

    def advance(self, item_id, label=None):
        item = self.get(item_id)
        if item.status not in _NEXT_STATUS:
            raise ValueError(f"Checklist item {item_id} is already {item.status}")
        target = _NEXT_STATUS[item.status]
        if target == ACTIVE:
            busy = [other.id for other in self.items if other.status == ACTIVE]
            if busy:
                raise ValueError(f"Checklist item {busy[0]} is still active")
            for other in self.items[:self.items.index(item)]:
                if other.status != COMPLETED:
                    raise ValueError(f"Checklist item {other.id} is not completed yet")
        item.status = target
        if label:
            item.label = label
        return item

    def snapshot(self):
        return [asdict(item) for item in self.items]


def term_of(term_obj):
    term = term_obj.get("term") if isinstance(term_obj, dict) else None
    return term if isinstance(term, str) and term.strip() else None


class SearchOrchestrator:
    def __init__(self, client, max_workers=4, pauses_ms=None, sleep=time.sleep):
        self.client = client
        self.max_workers = max(1, int(max_workers))
        self.pauses_ms = dict(DEFAULT_PAUSES_MS if pauses_ms is None else pauses_ms)
        self._sleep = sleep

        self.checklist = Checklist()
        self.terms = []
        self.term_images = {}
        self.results = []
        self.loading = False

        self._epoch = 0
        self._lock = threading.RLock()
        self._listeners = []

    # ── listeners ──

    def subscribe(self, callback):
        """``callback(event, orchestrator)``; events: checklist, terms, term_images, results, error."""
        self._listeners.append(callback)

    def _emit(self, event):
        for callback in list(self._listeners):
            callback(event, self)

    # ── epoch bookkeeping ──

    @property
    def epoch(self):
        return self._epoch

    def _update(self, epoch, event, fn):
        with self._lock:
            if epoch != self._epoch:
                return False
            fn()
            self._emit(event)
            return True

    def _advance(self, epoch, item_id, label=None):
        return self._update(epoch, "checklist", lambda: self.checklist.advance(item_id, label))

    def _pause(self, key):
        ms = self.pauses_ms.get(key, 0)
        if ms > 0:
            self._sleep(ms / 1000)

    # ── search ──

    def run(self, query):
        """Run one search and return its results.

        Returns None when a newer ``run`` superseded this one before it finished.
        Raises SearchFailed when term generation fails.
        """
        with self._lock:
            self._epoch += 1
            epoch = self._epoch

            def reset():
                self.loading = True
                self.terms = []
                self.term_images = {}
                self.results = []
                self.checklist.reset()

            self._update(epoch, "checklist", reset)

        log.info("search_started", query=query, epoch=epoch)
        self._advance(epoch, "1")

        try:
            terms = self.client.generate_terms(query)
        except Exception as e:
            log.error("term_generation_failed", query=query, epoch=epoch, error=str(e))

            def abort():
                self.checklist.reset()
                self.loading = False

            if self._update(epoch, "error", abort):
                raise SearchFailed(str(e) or "Failed to generate search terms") from e
            return None

        terms = list(terms or [])
        self._advance(epoch, "1")
        self._advance(epoch, "2")
        self._advance(epoch, "2", f"Generated {len(terms)} search terms")
        self._update(epoch, "terms", lambda: setattr(self, "terms", terms))

        self._pause("terms")
        self._advance(epoch, "3")

        results = self._lookup_all(epoch, terms)
        if epoch != self._epoch:
            log.info("search_superseded", query=query, epoch=epoch)
            return None

        self._advance(epoch, "3", f"Found images for {len(results)} terms")
        self._advance(epoch, "4")
        self._pause("collage")
        self._advance(epoch, "4")
        self._pause("deliver")

        def deliver():
            self.results = results
            self.loading = False

        if not self._update(epoch, "results", deliver):
            return None
        log.info("search_completed", query=query, epoch=epoch, terms=len(terms), results=len(results))
        return results

    def _lookup_all(self, epoch, terms):
        if not terms:
            return []
        workers = min(self.max_workers, len(terms))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="image-lookup") as pool:
            futures = [pool.submit(self._lookup_one, epoch, term_obj) for term_obj in terms]
            found = [future.result() for future in futures]
        return [result for result in found if result is not None]

    def _lookup_one(self, epoch, term_obj):
        term = term_of(term_obj)
        if term is None:
            log.warning("term_skipped", term=term_obj)
            return None
        if epoch != self._epoch:
            return None

        try:
            image_urls = list(self.client.search_images(term) or [])
        except Exception as e:
            log.warning("image_lookup_failed", term=term, error=str(e))
            return None

        log.info("image_lookup_completed", term=term, count=len(image_urls))
        if not image_urls:
            return None

        self._update(epoch, "term_images", lambda: self.term_images.__setitem__(term, image_urls))
        return {
            "term": term,
            "description": term_obj.get("description") or "",
            "imageUrls": image_urls,
            "sources": list(image_urls),
        }
