"""
paperless-gpt - Web API
Thin Flask front-end for manual review: list documents carrying the manual
tag, generate suggestions for them, write accepted suggestions back.
Runs as daemon thread alongside the polling loops.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from flask import Flask, jsonify, request

from .config import Settings, log
from .models import DocumentSuggestion, GenerateSuggestionsRequest
from .reconcile import remove_tag

DOCUMENTS_PAGE_SIZE = 100


@dataclass
class WebContext:
    """Collaborators shared with the polling loops."""
    settings: Settings
    paperless: object
    generator: object
    batch: object
    engine: object
    schedulers: list = field(default_factory=list)
    started_at: float = field(default_factory=time.time)


def create_app(ctx: WebContext) -> Flask:
    app = Flask(__name__)
    app.json.ensure_ascii = False
    manual_tag = ctx.settings.manual_tag

    @app.route("/api/documents")
    def api_documents():
        try:
            documents = ctx.paperless.get_documents_by_tags([manual_tag], DOCUMENTS_PAGE_SIZE)
        except Exception as exc:
            log.error(f"WEBUI: Fehler beim Laden der Dokumente: {exc}")
            return jsonify({"error": f"Error fetching documents: {exc}"}), 500
        return jsonify([doc.to_dict() for doc in documents])

    @app.route("/api/generate-suggestions", methods=["POST"])
    def api_generate_suggestions():
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Invalid request payload"}), 400
        try:
            suggestion_request = GenerateSuggestionsRequest.from_dict(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            return jsonify({"error": f"Invalid request payload: {exc}"}), 400

        try:
            catalog = ctx.engine.load_catalog()
            suggestions = ctx.batch.generate_for_request(
                suggestion_request, ctx.generator, catalog, manual_tag,
            )
        except Exception as exc:
            log.error(f"WEBUI: Fehler beim Erzeugen der Vorschlaege: {exc}")
            return jsonify({"error": f"Error processing documents: {exc}"}), 500
        return jsonify([s.to_dict() for s in suggestions])

    @app.route("/api/update-documents", methods=["PATCH"])
    def api_update_documents():
        payload = request.get_json(silent=True)
        if not isinstance(payload, list):
            return jsonify({"error": "Invalid request payload"}), 400
        try:
            suggestions = [DocumentSuggestion.from_dict(item) for item in payload]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            return jsonify({"error": f"Invalid request payload: {exc}"}), 400

        try:
            for suggestion in suggestions:
                # no tags sent: keep the document's current tags, only drop the manual tag
                if suggestion.tags is None:
                    suggestion.tags = list(ctx.paperless.get_document(suggestion.document_id).tags)
                remove_tag(suggestion, manual_tag)
            updated = ctx.engine.apply(suggestions)
        except Exception as exc:
            log.error(f"WEBUI: Fehler beim Aktualisieren: {exc}")
            return jsonify({"error": f"Error updating documents: {exc}"}), 500
        return jsonify({"ok": True, "updated": updated})

    @app.route("/api/filter-tag")
    def api_filter_tag():
        return jsonify({"tag": manual_tag})

    @app.route("/api/status")
    def api_status():
        elapsed = time.time() - ctx.started_at
        h, m = int(elapsed // 3600), int((elapsed % 3600) // 60)
        return jsonify({
            "uptime": f"{h}h {m}m",
            "loops": [s.status() for s in ctx.schedulers],
        })

    return app


def start_webui(ctx: WebContext, port: int = 8080) -> threading.Thread:
    """Start Flask web API as daemon thread."""
    app = create_app(ctx)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    def _run():
        try:
            app.run(host="0.0.0.0", port=port, debug=False, use_reloader=False)
        except Exception as exc:
            log.error(f"WEBUI: Flask abgestuerzt: {exc}")

    t = threading.Thread(target=_run, name="webui", daemon=True)
    t.start()
    log.info(f"WEBUI: API auf http://0.0.0.0:{port}")
    return t
