"""Tests for paperless_gpt.app (startup, wiring, shutdown)."""

import dataclasses
import signal
from unittest.mock import MagicMock

import pytest

from conftest import make_doc
from paperless_gpt import app as app_module
from paperless_gpt.app import App, main

REQUIRED_ENV = {
    "PAPERLESS_BASE_URL": "http://paperless.local",
    "PAPERLESS_API_TOKEN": "secret",
    "LLM_PROVIDER": "ollama",
    "LLM_MODEL": "llama3",
}


@pytest.fixture
def env(monkeypatch, tmp_path):
    for key, value in REQUIRED_ENV.items():
        monkeypatch.setenv(key, value)
    for key in ("OCR_ENABLED", "WEBUI_ENABLED", "LLM_BASE_URL", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    monkeypatch.setenv("PROMPTS_DIR", str(tmp_path / "prompts"))
    return monkeypatch


@pytest.fixture
def make_app(settings, tmp_path, monkeypatch):
    monkeypatch.setattr(app_module, "TextractOCR", MagicMock())
    created = []

    def _make(**overrides):
        overrides.setdefault("prompts_dir", str(tmp_path / "prompts"))
        app = App(dataclasses.replace(settings, **overrides))
        created.append(app)
        return app

    yield _make
    for app in created:
        app.batch.shutdown()


class TestMain:
    def test_missing_token_exits_non_zero(self, env):
        env.delenv("PAPERLESS_API_TOKEN")
        assert main() == 1

    def test_invalid_provider_exits_non_zero(self, env):
        env.setenv("LLM_PROVIDER", "anthropic")
        assert main() == 1

    def test_runs_until_interrupted(self, env):
        instance = MagicMock()
        instance.wait.side_effect = KeyboardInterrupt
        env.setattr(app_module, "App", MagicMock(return_value=instance))
        env.setattr(app_module, "setup_logging", MagicMock())
        install = MagicMock()
        env.setattr(app_module, "_install_signal_handlers", install)

        assert main() == 0
        install.assert_called_once_with(instance)
        instance.start.assert_called_once()
        instance.stop.assert_called_once()


class TestWiring:
    def test_auto_loop_only_without_ocr(self, make_app):
        app = make_app()
        assert [s.name for s in app.schedulers] == ["auto-tag"]
        [auto] = app.schedulers
        assert auto.pending_tag == "paperless-gpt-auto"
        assert auto.wait_for_tags == ()
        assert app.ocr is None
        assert app.generator.ocr is None

    def test_ocr_loop_added(self, make_app):
        app = make_app(ocr_enabled=True, aws_region="eu-central-1", aws_ocr_bucket_name="bucket")
        auto, ocr = app.schedulers
        assert (auto.name, auto.pending_tag) == ("auto-tag", "paperless-gpt-auto")
        assert auto.wait_for_tags == ("paperless-gpt-ocr",)
        assert (ocr.name, ocr.pending_tag) == ("ocr", "paperless-gpt-ocr")
        assert ocr.wait_for_tags == ()
        app_module.TextractOCR.from_settings.assert_called_once_with(app.settings)
        assert app.generator.ocr is app.ocr

    def test_ocr_loop_ignores_catalog(self, make_app):
        app = make_app(ocr_enabled=True, aws_region="eu-central-1", aws_ocr_bucket_name="bucket")
        app.generator = MagicMock()
        doc = make_doc(4, tags=["paperless-gpt-ocr"])
        _, ocr = app.schedulers
        ocr.suggest(doc, "catalog")
        app.generator.generate_ocr_suggestion.assert_called_once_with(doc)

    def test_settings_passed_through(self, make_app):
        app = make_app(poll_page_size=3, poll_interval_sec=30.0, backoff_min_sec=5.0,
                       backoff_max_sec=60.0, commit_partial_batches=True, batch_max_workers=2)
        [auto] = app.schedulers
        assert auto.page_size == 3
        assert auto.idle_interval == 30.0
        assert (auto.backoff.floor, auto.backoff.ceiling) == (5.0, 60.0)
        assert auto.partial_commit is True
        assert app.batch.max_workers == 2
        assert auto.batch is app.batch


class TestShutdown:
    def test_stop_cancels_batch_once(self, make_app):
        app = make_app()
        app.schedulers = [MagicMock(), MagicMock()]
        app.stop()
        app.stop()
        for scheduler in app.schedulers:
            scheduler.stop.assert_called_once()
        assert app.batch.cancelled

    def test_signal_handler_stops_app(self, monkeypatch):
        registered = {}
        monkeypatch.setattr(app_module.signal, "signal", lambda sig, handler: registered.__setitem__(sig, handler))
        app = MagicMock()
        app_module._install_signal_handlers(app)
        assert set(registered) == {signal.SIGINT, signal.SIGTERM}
        registered[signal.SIGTERM](signal.SIGTERM, None)
        app.stop.assert_called_once()
