"""Reconciliation: name-based suggestions -> id-based document updates."""

from __future__ import annotations

from collections.abc import Callable

from .config import log
from .exceptions import PaperlessAPIError, ReconciliationError
from .models import DocumentSuggestion, EntityCatalog

MAX_TITLE_LENGTH = 128
DATE_ONLY_LENGTH = 10


def remove_tag(suggestion: DocumentSuggestion, tag_name: str) -> DocumentSuggestion:
    """Drop a pending-state tag so the update clears it from the document."""
    if suggestion.tags is not None:
        suggestion.tags = [tag for tag in suggestion.tags if tag != tag_name]
    return suggestion


class ReconciliationEngine:
    """Wandelt Namen in IDs um, erstellt fehlende Korrespondenten/Dokumenttypen.

    Tags are a closed vocabulary: unknown tag names are dropped, never created.
    """

    def __init__(self, paperless):
        self.paperless = paperless

    def load_catalog(self) -> EntityCatalog:
        return EntityCatalog(
            tags=self.paperless.get_all_tags(),
            correspondents=self.paperless.get_all_correspondents(),
            document_types=self.paperless.get_all_document_types(),
        )

    def _resolve_or_create(self, kind: str, name: str, mapping: dict[str, int],
                           create: Callable[[str], int], doc_id: int) -> int:
        if name in mapping:
            return mapping[name]
        try:
            new_id = create(name)
        except PaperlessAPIError as exc:
            raise ReconciliationError(
                f"{kind} '{name}' konnte nicht erstellt werden: {exc}", document_id=doc_id,
            ) from exc
        log.info(f"  [yellow]+ Neuer {kind}:[/yellow] {name} (ID {new_id})", extra={"doc_id": doc_id})
        # visible to later documents of the same pass
        mapping[name] = new_id
        return new_id

    def build_update(self, suggestion: DocumentSuggestion, catalog: EntityCatalog) -> dict:
        """Only fields present in the suggestion end up in the payload."""
        doc_id = suggestion.document_id
        update: dict = {}

        if suggestion.tags is not None:
            tag_ids = []
            for tag_name in suggestion.tags:
                tag_id = catalog.tags.get(tag_name)
                if tag_id is None:
                    log.warning(
                        f"  [yellow]Tag existiert nicht in Paperless, verworfen:[/yellow] {tag_name}",
                        extra={"doc_id": doc_id, "tag": tag_name},
                    )
                    continue
                tag_ids.append(tag_id)
            update["tags"] = list(dict.fromkeys(tag_ids))

        if suggestion.correspondent:
            update["correspondent"] = self._resolve_or_create(
                "Korrespondent", suggestion.correspondent, catalog.correspondents,
                self.paperless.create_correspondent, doc_id,
            )

        if suggestion.document_type:
            update["document_type"] = self._resolve_or_create(
                "Dokumenttyp", suggestion.document_type, catalog.document_types,
                self.paperless.create_document_type, doc_id,
            )

        if suggestion.title is not None:
            if suggestion.title:
                update["title"] = suggestion.title[:MAX_TITLE_LENGTH]
            else:
                log.warning(f"Kein gueltiger Titel fuer Dokument #{doc_id}, uebersprungen.", extra={"doc_id": doc_id})

        if suggestion.created_date is not None:
            if len(suggestion.created_date) == DATE_ONLY_LENGTH:
                update["created_date"] = suggestion.created_date
            else:
                log.debug(f"Datum '{suggestion.created_date}' ignoriert (kein YYYY-MM-DD)")

        if suggestion.content:
            update["content"] = suggestion.content

        return update

    def apply(self, suggestions: list[DocumentSuggestion], catalog: EntityCatalog | None = None) -> int:
        """Update documents one by one. The first failure aborts the rest of the pass."""
        if not suggestions:
            return 0
        if catalog is None:
            catalog = self.load_catalog()
        updated = 0
        for suggestion in suggestions:
            doc_id = suggestion.document_id
            update = self.build_update(suggestion, catalog)
            try:
                self.paperless.update_document(doc_id, update)
            except PaperlessAPIError as exc:
                raise ReconciliationError(
                    f"Dokument #{doc_id} konnte nicht aktualisiert werden: {exc}", document_id=doc_id,
                ) from exc
            updated += 1
            log.info(
                f"[green]Dokument #{doc_id} aktualisiert[/green] ({', '.join(sorted(update)) or 'keine Felder'})",
                extra={"doc_id": doc_id, "action": "update"},
            )
        return updated
