"""Entry point: wire collaborators, start the polling loops and the optional web API."""

from __future__ import annotations

import signal
import sys
import threading

from .batch import ConcurrentBatchProcessor
from .cache import ResponseCache
from .client import PaperlessClient
from .config import (
    Settings,
    __version__,
    console,
    load_settings,
    log,
    setup_logging,
    validate_settings,
)
from .exceptions import ConfigError
from .llm import LLMClient
from .ocr import TextractOCR
from .prompts import PromptRenderer
from .reconcile import ReconciliationEngine
from .scheduler import Backoff, PollingScheduler
from .suggestions import SuggestionGenerator
from .web import WebContext, start_webui


class App:
    """Haelt alle Komponenten; ein Scheduler pro Pending-Tag."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.paperless = PaperlessClient(
            settings.paperless_base_url,
            settings.paperless_api_token,
            timeout=settings.paperless_timeout,
        )
        self.llm = LLMClient.from_settings(settings)
        self.renderer = PromptRenderer(settings.prompts_dir, language=settings.llm_language)
        self.ocr = TextractOCR.from_settings(settings) if settings.ocr_enabled else None
        self.generator = SuggestionGenerator(
            self.llm, self.renderer, settings,
            cache=ResponseCache(settings.cache_size, name="llm"),
            paperless=self.paperless,
            ocr=self.ocr,
        )
        self.batch = ConcurrentBatchProcessor(settings.batch_max_workers)
        self.engine = ReconciliationEngine(self.paperless)
        self.schedulers = self._build_schedulers()
        self._stopped = threading.Event()

    def _scheduler(self, name: str, pending_tag: str, suggest, wait_for_tags=()) -> PollingScheduler:
        s = self.settings
        return PollingScheduler(
            name=name,
            pending_tag=pending_tag,
            paperless=self.paperless,
            engine=self.engine,
            batch=self.batch,
            suggest=suggest,
            page_size=s.poll_page_size,
            idle_interval=s.poll_interval_sec,
            backoff=Backoff(s.backoff_min_sec, s.backoff_max_sec),
            wait_for_tags=wait_for_tags,
            partial_commit=s.commit_partial_batches,
        )

    def _build_schedulers(self) -> list[PollingScheduler]:
        s = self.settings
        schedulers = [
            # documents still queued for OCR are picked up after OCR finished
            self._scheduler(
                "auto-tag", s.auto_tag, self.generator.generate_auto_suggestion,
                wait_for_tags=(s.ocr_tag,) if s.ocr_enabled else (),
            ),
        ]
        if s.ocr_enabled:
            schedulers.append(self._scheduler(
                "ocr", s.ocr_tag, lambda doc, _catalog: self.generator.generate_ocr_suggestion(doc),
            ))
        return schedulers

    def start(self):
        for scheduler in self.schedulers:
            scheduler.start()
        if self.settings.webui_enabled:
            ctx = WebContext(
                settings=self.settings,
                paperless=self.paperless,
                generator=self.generator,
                batch=self.batch,
                engine=self.engine,
                schedulers=self.schedulers,
            )
            start_webui(ctx, port=self.settings.webui_port)

    def wait(self):
        while not self._stopped.wait(1.0):
            pass

    def stop(self):
        if self._stopped.is_set():
            return
        self._stopped.set()
        log.info("Stoppe Polling-Schleifen...")
        self.batch.cancel()
        for scheduler in self.schedulers:
            scheduler.stop(timeout=5.0)
        self.batch.shutdown(wait_for_tasks=False)


def _install_signal_handlers(app: App):
    def _handle_signal(signum, frame):
        log.warning(f"Signal empfangen: {signal.Signals(signum).name} - fahre sauber herunter...")
        app.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handle_signal)
        except (OSError, ValueError):
            log.debug(f"Signal-Handler fuer {sig} nicht installierbar")


def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as exc:
        console.print(f"[bold red]Konfigurationsfehler:[/bold red] {exc}")
        return 1

    setup_logging(settings)
    log.info("=" * 40)
    log.info(f"[bold]paperless-gpt v{__version__}[/bold]")
    log.info(f"  Python: {sys.version.split()[0]}")
    log.info(f"  LLM: {settings.llm_provider}/{settings.llm_model} @ {settings.llm_base_url}")
    log.info(f"  Paperless: {settings.paperless_base_url}")
    log.info(f"  OCR: {'aktiv' if settings.ocr_enabled else 'aus'}, WebUI: {'aktiv' if settings.webui_enabled else 'aus'}")
    log.info(f"  Log-Datei: {settings.log_file}")
    validate_settings(settings)
    log.info("=" * 40)

    try:
        app = App(settings)
    except ConfigError as exc:
        log.error(f"[bold red]Konfigurationsfehler:[/bold red] {exc}")
        return 1

    _install_signal_handlers(app)
    app.start()
    try:
        app.wait()
    except KeyboardInterrupt:
        app.stop()
    log.info("paperless-gpt beendet")
    return 0


if __name__ == "__main__":
    sys.exit(main())
