"""Polling loop: fetch pending documents, generate, reconcile, sleep or back off."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from .config import log
from .models import Document, DocumentSuggestion, EntityCatalog
from .reconcile import remove_tag


class Backoff:
    """Exponential backoff between ``floor`` and ``ceiling`` seconds."""

    def __init__(self, floor: float = 10.0, ceiling: float = 3600.0):
        if floor <= 0 or ceiling < floor:
            raise ValueError(f"invalid backoff bounds: floor={floor}, ceiling={ceiling}")
        self.floor = floor
        self.ceiling = ceiling
        self.current = floor

    def failure(self) -> float:
        """Return the delay to sleep now and double the next one (capped)."""
        delay = self.current
        doubled = self.current * 2
        if doubled > self.ceiling:
            if self.current < self.ceiling:
                log.warning(f"Wiederholte Fehler erkannt, Backoff auf Maximum {self.ceiling:.0f}s gesetzt")
            doubled = self.ceiling
        self.current = doubled
        return delay

    def reset(self):
        self.current = self.floor


class PollingScheduler:
    """Background control loop for one pending-state tag.

    A pass with work done loops again immediately to drain the backlog; an
    empty pass sleeps ``idle_interval``; a failed pass sleeps the current
    backoff and doubles it. Sleeps are interrupted by ``stop()``.
    """

    def __init__(self, name: str, pending_tag: str, paperless, engine, batch,
                 suggest: Callable[[Document, EntityCatalog], DocumentSuggestion],
                 page_size: int = 1, idle_interval: float = 10.0,
                 backoff: Backoff | None = None, wait_for_tags: tuple[str, ...] = (),
                 partial_commit: bool = False,
                 sleep: Callable[[float], bool] | None = None):
        self.name = name
        self.pending_tag = pending_tag
        self.paperless = paperless
        self.engine = engine
        self.batch = batch
        self.suggest = suggest
        self.page_size = page_size
        self.idle_interval = idle_interval
        self.backoff = backoff or Backoff()
        self.wait_for_tags = wait_for_tags
        self.partial_commit = partial_commit
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait
        self._thread: threading.Thread | None = None

        self.cycles = 0
        self.processed = 0
        self.errors = 0
        self.last_error: str | None = None
        self.last_cycle_at: float | None = None

    def run_once(self) -> int:
        """One pass. Returns the number of updated documents; raises on failure."""
        documents = self.paperless.get_documents_by_tags([self.pending_tag], self.page_size)
        if not documents:
            log.debug(f"{self.name}: Keine Dokumente mit Tag {self.pending_tag}")
            return 0

        eligible = [d for d in documents if not any(tag in d.tags for tag in self.wait_for_tags)]
        if not eligible:
            log.debug(f"{self.name}: {len(documents)} Dokument(e) warten noch auf andere Jobs")
            return 0
        log.info(
            f"{self.name}: {len(eligible)} Dokument(e) mit Tag {self.pending_tag} gefunden",
            extra={"tag": self.pending_tag},
        )

        catalog = self.engine.load_catalog()

        def _suggest(doc: Document) -> DocumentSuggestion:
            return self.suggest(doc, catalog)

        failures: list[Exception] = []
        if self.partial_commit:
            results = self.batch.run(eligible, _suggest)
            suggestions = [r.suggestion for r in results if r.ok]
            failures = [r.error for r in results if not r.ok]
        else:
            suggestions = self.batch.generate(eligible, _suggest)

        for suggestion in suggestions:
            remove_tag(suggestion, self.pending_tag)
        updated = self.engine.apply(suggestions, catalog)
        self.processed += updated
        if failures:
            raise failures[0]
        return updated

    def run_forever(self):
        log.info(f"[bold]{self.name}[/bold] gestartet (Tag={self.pending_tag}, Intervall={self.idle_interval}s)")
        while not self._stop.is_set():
            self.cycles += 1
            self.last_cycle_at = time.time()
            try:
                processed = self.run_once()
            except Exception as exc:
                self.errors += 1
                self.last_error = str(exc)
                delay = self.backoff.failure()
                log.error(
                    f"{self.name}: Fehler: {exc} (retry in {delay:.0f}s)",
                    extra={"tag": self.pending_tag, "backoff_sec": delay, "status": "error"},
                )
                if self._sleep(delay):
                    break
                continue

            self.backoff.reset()
            if processed == 0 and self._sleep(self.idle_interval):
                break
        log.info(f"{self.name}: gestoppt nach {self.cycles} Zyklen ({self.processed} aktualisiert, {self.errors} Fehler)")

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run_forever, name=self.name, daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None):
        self._stop.set()
        self.batch.cancel()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def status(self) -> dict:
        return {
            "name": self.name,
            "tag": self.pending_tag,
            "running": self._thread is not None and self._thread.is_alive(),
            "cycles": self.cycles,
            "processed": self.processed,
            "errors": self.errors,
            "backoff_sec": self.backoff.current,
            "last_error": self.last_error,
            "last_cycle_at": self.last_cycle_at,
        }
