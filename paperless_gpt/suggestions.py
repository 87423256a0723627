"""Suggestion generation: prompt -> cache / LLM -> parsed DocumentSuggestion."""

from __future__ import annotations

import json

from .cache import ResponseCache
from .config import Settings, log
from .exceptions import MalformedResponseError, PaperlessGptError
from .models import Document, DocumentSuggestion, EntityCatalog

_STRING_FIELDS = ("title", "correspondent", "document_type", "created_date", "content")


def extract_json_span(text: str) -> str:
    """Trim and cut everything before the first '{' and after the last '}'.

    Raises MalformedResponseError for empty/blank input.
    """
    text = (text or "").strip()
    if not text:
        raise MalformedResponseError("LLM-Antwort ist leer")
    start = text.find("{")
    if start != -1:
        text = text[start:]
    end = text.rfind("}")
    if end != -1:
        text = text[:end + 1]
    return text


def parse_suggestion(text: str, document: Document) -> DocumentSuggestion:
    """Strictly decode an LLM answer into a DocumentSuggestion for ``document``."""
    span = extract_json_span(text)
    try:
        data = json.loads(span)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"JSON-Parsing fehlgeschlagen fuer Dokument #{document.id}: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError(f"LLM-Antwort fuer Dokument #{document.id} ist kein JSON-Objekt")

    fields: dict = {}
    for key in _STRING_FIELDS:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise MalformedResponseError(f"Feld '{key}' hat falschen Typ: {type(value).__name__}")
        fields[key] = value

    tags = data.get("tags")
    if tags is not None:
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise MalformedResponseError("Feld 'tags' muss eine Liste von Strings sein")
        tags = list(tags)

    return DocumentSuggestion(
        document_id=document.id,
        original_document=document,
        correspondent=fields["correspondent"],
        title=fields["title"],
        created_date=fields["created_date"],
        tags=tags if tags is not None else [],
        document_type=fields["document_type"],
        content=fields["content"],
    )


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


class SuggestionGenerator:
    """Builds suggestions for single documents.

    LLM answers are cached by the exact rendered prompt, so candidate lists
    must be passed in a stable (sorted) order.
    """

    def __init__(self, llm, renderer, settings: Settings,
                 cache: ResponseCache[str, str] | None = None,
                 paperless=None, ocr=None):
        self.llm = llm
        self.renderer = renderer
        self.settings = settings
        if cache is None:
            cache = ResponseCache(settings.cache_size, name="llm")
        self.cache: ResponseCache[str, str] = cache
        self.paperless = paperless
        self.ocr = ocr

    def _complete_cached(self, prompt: str, document_id: int) -> str:
        cached, found = self.cache.lookup(prompt)
        if found:
            log.info(f"Cache-Treffer fuer Prompt von Dokument #{document_id}", extra={"doc_id": document_id})
            return cached
        log.debug(f"Cache-Miss fuer Prompt von Dokument #{document_id}")
        response = self.llm.complete(prompt).strip()
        self.cache.put(prompt, response)
        return response

    def _truncate(self, content: str) -> str:
        return content[:self.settings.content_max_chars]

    # --- JSON mode ---
    def suggest_json(self, prompt: str, document: Document) -> DocumentSuggestion:
        response = self._complete_cached(prompt, document.id)
        log.info(f"JSON-Vorschlag fuer Dokument #{document.id}: {response[:200]}", extra={"doc_id": document.id})
        return parse_suggestion(response, document)

    def generate_auto_suggestion(self, document: Document, catalog: EntityCatalog) -> DocumentSuggestion:
        """Vollstaendiger Vorschlag (Titel, Tags, Korrespondent, Typ, Datum) fuer ein Dokument."""
        pending = self.settings.pending_tags
        prompt = self.renderer.render(
            "json_prompt",
            available_tags=catalog.tag_names(exclude=pending),
            available_correspondents=catalog.correspondent_names(),
            available_document_types=catalog.document_type_names(),
            black_list=list(self.settings.correspondent_black_list),
            black_list_tags=list(self.settings.tag_black_list),
            title=document.title,
            content=self._truncate(document.content),
        )
        try:
            suggestion = self.suggest_json(prompt, document)
        except PaperlessGptError as exc:
            log.error(f"Vorschlag fuer Dokument #{document.id} fehlgeschlagen: {exc}", extra={"doc_id": document.id})
            raise
        kept = [tag for tag in document.tags if tag not in pending]
        suggestion.tags = _unique(suggestion.tags + kept)
        return suggestion

    # --- OCR mode ---
    def generate_ocr_suggestion(self, document: Document) -> DocumentSuggestion:
        """Laedt die Originaldatei, extrahiert Text per OCR und reicht an die Auto-Queue weiter."""
        if self.ocr is None or self.paperless is None:
            raise PaperlessGptError("OCR ist nicht konfiguriert")
        file_bytes = self.paperless.download_original(document.id)
        text = self.ocr.extract_text(file_bytes, document.id)
        log.debug(f"Extrahierter Text fuer Dokument #{document.id}: {len(text)} Zeichen")
        tags = [tag for tag in document.tags + [self.settings.auto_tag] if tag != self.settings.ocr_tag]
        return DocumentSuggestion(
            document_id=document.id,
            original_document=document,
            tags=_unique(tags),
            content=text,
        )

    # --- Per-field mode ---
    def suggest_title(self, document: Document) -> str:
        prompt = self.renderer.render("title_prompt", content=self._truncate(document.content))
        response = self._complete_cached(prompt, document.id)
        return response.strip('"').strip()

    def suggest_tags(self, document: Document, title: str, available_tags: list[str]) -> list[str]:
        prompt = self.renderer.render(
            "tag_prompt",
            available_tags=available_tags,
            title=title,
            content=self._truncate(document.content),
        )
        response = self._complete_cached(prompt, document.id)
        by_lower = {tag.lower(): tag for tag in available_tags}
        selected = []
        for raw in response.split(","):
            hit = by_lower.get(raw.strip().lower())
            if hit:
                selected.append(hit)
        return _unique(selected)

    def suggest_correspondent(self, document: Document, title: str, available_correspondents: list[str]) -> str:
        prompt = self.renderer.render(
            "correspondent_prompt",
            available_correspondents=available_correspondents,
            black_list=list(self.settings.correspondent_black_list),
            title=title,
            content=self._truncate(document.content),
        )
        return self._complete_cached(prompt, document.id)
