"""Paperless-NGX REST API client."""

from __future__ import annotations

import requests

from .config import log
from .exceptions import PaperlessAPIError
from .models import Document


class PaperlessClient:
    """Client fuer die Paperless-NGX REST API.

    Every request carries a ``(connect, read)`` timeout. Failures are raised
    as PaperlessAPIError and not retried here; the polling loop backs off.
    """

    _PAGE_SIZE = 100

    def __init__(self, url: str, token: str, timeout: int = 30, connect_timeout: int = 8):
        self.url = url.rstrip("/")
        self.token = token
        self.timeout = (connect_timeout, timeout)
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Token {token}",
            "Accept": "application/json",
        })

    @staticmethod
    def _error_snippet(resp: requests.Response) -> str:
        text = (resp.text or "").strip().replace("\n", " ")
        if len(text) > 300:
            text = text[:300] + "..."
        return text

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        if not url.startswith(("http://", "https://")):
            url = f"{self.url}/{url.lstrip('/')}"
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise PaperlessAPIError(f"{method} {url} fehlgeschlagen: {exc}") from exc
        if not resp.ok:
            detail = self._error_snippet(resp)
            raise PaperlessAPIError(
                f"{method} {url} -> {resp.status_code}: {detail}",
                status_code=resp.status_code,
                detail=detail,
            )
        return resp

    def _json(self, resp: requests.Response):
        try:
            return resp.json()
        except ValueError as exc:
            raise PaperlessAPIError(f"Ungueltige JSON-Antwort von {resp.url}") from exc

    def _get_all(self, endpoint: str) -> list:
        """Alle Eintraege mit Paginierung laden."""
        results = []
        url = f"api/{endpoint}/?page_size={self._PAGE_SIZE}"
        while url:
            data = self._json(self._request("GET", url))
            results.extend(data.get("results", []))
            url = data.get("next")
        return results

    def _name_id_map(self, endpoint: str) -> dict[str, int]:
        return {
            str(item["name"]): int(item["id"])
            for item in self._get_all(endpoint)
            if item.get("id") is not None and item.get("name") is not None
        }

    # --- Lesen ---
    def get_all_tags(self) -> dict[str, int]:
        return self._name_id_map("tags")

    def get_all_correspondents(self) -> dict[str, int]:
        return self._name_id_map("correspondents")

    def get_all_document_types(self) -> dict[str, int]:
        return self._name_id_map("document_types")

    def get_documents_by_tags(self, tag_names: list[str], page_size: int = 1) -> list[Document]:
        """Dokumente mit allen angegebenen Tags (Volltext-Query ``tag:<name>``)."""
        query = " ".join(f"tag:{name}" for name in tag_names)
        data = self._json(self._request(
            "GET", "api/documents/", params={"query": query, "page_size": page_size},
        ))
        results = data.get("results", [])
        if not results:
            return []
        names_by_id = {tag_id: name for name, tag_id in self.get_all_tags().items()}
        return [Document.from_api(item, names_by_id) for item in results]

    def get_document(self, doc_id: int) -> Document:
        data = self._json(self._request("GET", f"api/documents/{doc_id}/"))
        names_by_id = {tag_id: name for name, tag_id in self.get_all_tags().items()}
        return Document.from_api(data, names_by_id)

    def download_original(self, doc_id: int) -> bytes:
        resp = self._request("GET", f"api/documents/{doc_id}/download/", params={"original": "true"})
        return resp.content

    # --- Schreiben ---
    @staticmethod
    def _new_matching_entity(name: str) -> dict:
        """Neue Eintraege: kein Auto-Matching, kein Owner."""
        return {
            "name": name,
            "matching_algorithm": 0,
            "match": "",
            "is_insensitive": True,
            "owner": None,
        }

    def _create(self, endpoint: str, name: str) -> int:
        resp = self._request("POST", f"api/{endpoint}/", json=self._new_matching_entity(name))
        created = self._json(resp)
        if created.get("id") is None:
            raise PaperlessAPIError(f"POST api/{endpoint}/ lieferte keine ID fuer '{name}'")
        return int(created["id"])

    def create_correspondent(self, name: str) -> int:
        return self._create("correspondents", name)

    def create_document_type(self, name: str) -> int:
        return self._create("document_types", name)

    def update_document(self, doc_id: int, fields: dict) -> dict:
        resp = self._request("PATCH", f"api/documents/{doc_id}/", json=fields)
        log.debug(f"Dokument #{doc_id} aktualisiert: {sorted(fields)}")
        return self._json(resp)
