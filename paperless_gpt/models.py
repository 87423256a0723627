"""Data models and dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field


def _tag_list(value) -> list[str] | None:
    """Tag names from JSON; None stays None, anything but a list is rejected."""
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"'tags' muss eine Liste sein, nicht {type(value).__name__}")
    return [str(t) for t in value]


@dataclass
class CustomField:
    field: int
    value: str | None = None


@dataclass
class Document:
    """Transient copy of a Paperless-NGX document. Tags are names, not ids."""
    id: int
    title: str = ""
    content: str = ""
    tags: list[str] = field(default_factory=list)
    original_file_name: str = ""
    custom_fields: list[CustomField] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict, tag_names_by_id: dict[int, str]) -> Document:
        """Build from a /api/documents/ payload, translating tag ids to names."""
        tag_names = [
            tag_names_by_id[tag_id]
            for tag_id in (data.get("tags") or [])
            if tag_id in tag_names_by_id
        ]
        custom_fields = [
            CustomField(field=int(cf["field"]), value=cf.get("value"))
            for cf in (data.get("custom_fields") or [])
            if isinstance(cf, dict) and cf.get("field") is not None
        ]
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            tags=tag_names,
            original_file_name=str(data.get("original_file_name") or ""),
            custom_fields=custom_fields,
        )

    @classmethod
    def from_dict(cls, data: dict) -> Document:
        """Build from the web API's JSON shape (tags already names)."""
        return cls(
            id=int(data["id"]),
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
            tags=_tag_list(data.get("tags")) or [],
            original_file_name=str(data.get("original_file_name") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": list(self.tags),
            "original_file_name": self.original_file_name,
            "custom_fields": [{"field": cf.field, "value": cf.value} for cf in self.custom_fields],
        }


@dataclass
class DocumentSuggestion:
    """Proposed metadata for one document.

    ``None`` means "leave this attribute alone". An empty tag list is a real
    value and clears the document's tags.
    """
    document_id: int
    original_document: Document
    correspondent: str | None = None
    title: str | None = None
    created_date: str | None = None
    tags: list[str] | None = None
    document_type: str | None = None
    content: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> DocumentSuggestion:
        original = Document.from_dict(data.get("original_document") or {"id": data["id"]})
        tags = data.get("tags")
        return cls(
            document_id=int(data["id"]),
            original_document=original,
            correspondent=data.get("correspondent"),
            title=data.get("title"),
            created_date=data.get("created_date"),
            tags=_tag_list(tags),
            document_type=data.get("document_type"),
            content=data.get("content"),
        )

    def to_dict(self) -> dict:
        out: dict = {
            "id": self.document_id,
            "original_document": self.original_document.to_dict(),
            "tags": list(self.tags) if self.tags is not None else None,
        }
        for key in ("correspondent", "title", "created_date", "document_type", "content"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out


@dataclass
class SuggestionResult:
    """Per-document outcome of a batch: either a suggestion or an error."""
    document_id: int
    suggestion: DocumentSuggestion | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.suggestion is not None


@dataclass
class GenerateSuggestionsRequest:
    documents: list[Document]
    generate_titles: bool = False
    generate_tags: bool = False
    generate_correspondents: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> GenerateSuggestionsRequest:
        docs = data.get("documents")
        if not isinstance(docs, list):
            raise ValueError("'documents' muss eine Liste sein")
        return cls(
            documents=[Document.from_dict(d) for d in docs],
            generate_titles=bool(data.get("generate_titles", False)),
            generate_tags=bool(data.get("generate_tags", False)),
            generate_correspondents=bool(data.get("generate_correspondents", False)),
        )


@dataclass
class EntityCatalog:
    """Name -> id snapshots of the Paperless catalog for one reconciliation pass."""
    tags: dict[str, int] = field(default_factory=dict)
    correspondents: dict[str, int] = field(default_factory=dict)
    document_types: dict[str, int] = field(default_factory=dict)

    def tag_names(self, exclude: tuple[str, ...] = ()) -> list[str]:
        """Sorted tag names; sorted so the rendered prompt (and cache key) is stable."""
        return sorted(name for name in self.tags if name not in exclude)

    def correspondent_names(self) -> list[str]:
        return sorted(self.correspondents)

    def document_type_names(self) -> list[str]:
        return sorted(self.document_types)
