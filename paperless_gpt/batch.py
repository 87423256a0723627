"""Concurrent fan-out of suggestion generation across a batch of documents."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait

from .config import log
from .exceptions import BatchCancelledError
from .models import (
    Document,
    DocumentSuggestion,
    EntityCatalog,
    GenerateSuggestionsRequest,
    SuggestionResult,
)

SuggestionFunc = Callable[[Document], DocumentSuggestion]


class ConcurrentBatchProcessor:
    """Runs one task per document on a bounded thread pool.

    Results and errors are collected under one lock; no task holds it across
    a network call. ``cancel()`` makes tasks that have not started yet fail
    with BatchCancelledError.
    """

    def __init__(self, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="batch")
        self._cancel = threading.Event()

    def __enter__(self) -> ConcurrentBatchProcessor:
        return self

    def __exit__(self, *exc_info):
        self.shutdown()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self):
        self._cancel.set()

    def shutdown(self, wait_for_tasks: bool = True):
        self._pool.shutdown(wait=wait_for_tasks, cancel_futures=self._cancel.is_set())

    def _execute(self, documents: list[Document], fn: SuggestionFunc) -> tuple[list[SuggestionResult], list[Exception]]:
        lock = threading.Lock()
        results: dict[int, SuggestionResult] = {}
        errors: list[Exception] = []

        def _task(index: int, doc: Document):
            t0 = time.perf_counter()
            try:
                if self._cancel.is_set():
                    raise BatchCancelledError(f"Batch abgebrochen vor Dokument #{doc.id}")
                suggestion = fn(doc)
            except Exception as exc:
                log.error(f"Fehler bei Dokument #{doc.id}: {exc}", extra={"doc_id": doc.id, "status": "error"})
                with lock:
                    errors.append(exc)
                    results[index] = SuggestionResult(document_id=doc.id, error=exc)
                return
            elapsed_ms = int((time.perf_counter() - t0) * 1000)
            log.info(
                f"Dokument #{doc.id} erfolgreich verarbeitet ({elapsed_ms} ms)",
                extra={"doc_id": doc.id, "duration_ms": elapsed_ms, "status": "ok"},
            )
            with lock:
                results[index] = SuggestionResult(document_id=doc.id, suggestion=suggestion)

        futures = [self._pool.submit(_task, i, doc) for i, doc in enumerate(documents)]
        wait(futures)
        for i, (future, doc) in enumerate(zip(futures, documents)):
            if future.cancelled() and i not in results:
                exc = BatchCancelledError(f"Batch abgebrochen vor Dokument #{doc.id}")
                errors.append(exc)
                results[i] = SuggestionResult(document_id=doc.id, error=exc)
        return [results[i] for i in range(len(documents))], errors

    def run(self, documents: list[Document], fn: SuggestionFunc) -> list[SuggestionResult]:
        """Tagged result for every document, in input order."""
        results, _ = self._execute(documents, fn)
        return results

    def generate(self, documents: list[Document], fn: SuggestionFunc) -> list[DocumentSuggestion]:
        """All-or-nothing: raises the first recorded error if any document failed."""
        results, errors = self._execute(documents, fn)
        if errors:
            log.warning(
                f"Batch verworfen: {len(errors)}/{len(documents)} Dokumente fehlgeschlagen, "
                f"{len(documents) - len(errors)} Vorschlaege verworfen"
            )
            raise errors[0]
        return [r.suggestion for r in results]

    def generate_for_request(self, request: GenerateSuggestionsRequest, generator,
                             catalog: EntityCatalog, manual_tag: str) -> list[DocumentSuggestion]:
        """Per-field prompting (title / tags / correspondent), as requested."""
        available_tags = catalog.tag_names(exclude=(manual_tag,) + generator.settings.pending_tags)
        available_correspondents = catalog.correspondent_names()

        def _suggest(doc: Document) -> DocumentSuggestion:
            suggested_title = generator.suggest_title(doc) if request.generate_titles else ""
            suggestion = DocumentSuggestion(
                document_id=doc.id,
                original_document=doc,
                title=suggested_title if request.generate_titles else doc.title,
            )
            if request.generate_tags:
                suggestion.tags = generator.suggest_tags(doc, suggested_title, available_tags)
            else:
                suggestion.tags = [t for t in doc.tags if t != manual_tag]
            if request.generate_correspondents:
                suggestion.correspondent = generator.suggest_correspondent(
                    doc, suggested_title, available_correspondents,
                )
            return suggestion

        return self.generate(request.documents, _suggest)
