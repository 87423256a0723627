"""Prompt templates: built-in defaults, overridable from PROMPTS_DIR."""

from __future__ import annotations

import os

from .config import log
from .exceptions import ConfigError

JSON_PROMPT = """I will provide you with the content of a document that has been partially read by OCR (so it may contain errors).
Your task is to suggest metadata for this document so I can store it in the paperless-ngx program.
The content is likely in {language}.

Title: find a short, precise title that describes the document.
Tags: choose only from the available tags below. Do not invent new tags. Never use these tags: {black_list_tags}.
Correspondent: the sender or issuer of the document. Prefer one of the available correspondents.
Never use these correspondents: {black_list}.
Document type: prefer one of the available document types.
Created date: the date the document was written, formatted as YYYY-MM-DD.

Available tags: {available_tags}
Available correspondents: {available_correspondents}
Available document types: {available_document_types}

Respond only with a JSON object of this form, without any additional text:
{{"title": "...", "tags": ["..."], "correspondent": "...", "document_type": "...", "created_date": "YYYY-MM-DD"}}

Content:
{content}
"""

TITLE_PROMPT = """I will provide you with the content of a document that has been partially read by OCR (so it may contain errors).
Your task is to find a suitable document title that I can use as the title in the paperless-ngx program.
Respond only with the title, without any additional information. The content is likely in {language}.

Content:
{content}
"""

TAG_PROMPT = """I will provide you with the content and the title of a document.
Your task is to select appropriate tags for the document from the list of available tags I will provide.
Only select tags from the provided list. Respond only with the selected tags as a comma-separated list, without any additional information.
The content is likely in {language}.

Available Tags:
{available_tags}

Title:
{title}

Content:
{content}
"""

CORRESPONDENT_PROMPT = """I will provide you with the content of a document and its title.
Your task is to identify the correspondent of this document, usually the company or person who sent it.
Prefer one of the existing correspondents if it fits. Never respond with any of these: {black_list}.
Respond only with the name of the correspondent, without any additional information. The content is likely in {language}.

Existing correspondents:
{available_correspondents}

Title:
{title}

Content:
{content}
"""

DEFAULT_TEMPLATES = {
    "json_prompt": JSON_PROMPT,
    "title_prompt": TITLE_PROMPT,
    "tag_prompt": TAG_PROMPT,
    "correspondent_prompt": CORRESPONDENT_PROMPT,
}


class PromptRenderer:
    """Loads ``<name>.tmpl`` files from a directory, falling back to (and writing) defaults."""

    def __init__(self, prompts_dir: str | None = None, language: str = "English"):
        self.prompts_dir = prompts_dir
        self.language = language
        self.templates: dict[str, str] = dict(DEFAULT_TEMPLATES)
        if prompts_dir:
            self.load()

    def load(self):
        try:
            os.makedirs(self.prompts_dir, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Prompt-Verzeichnis nicht anlegbar: {self.prompts_dir}: {exc}") from exc
        for name, default in DEFAULT_TEMPLATES.items():
            path = os.path.join(self.prompts_dir, f"{name}.tmpl")
            if not os.path.exists(path):
                log.info(f"Prompt-Vorlage fehlt, schreibe Standard: {path}")
                with open(path, "w", encoding="utf-8") as f:
                    f.write(default)
                self.templates[name] = default
                continue
            with open(path, "r", encoding="utf-8") as f:
                self.templates[name] = f.read()

    def render(self, name: str, **values) -> str:
        """Render a template. List values are joined with ", " in the order given."""
        template = self.templates.get(name)
        if template is None:
            raise ConfigError(f"Unbekannte Prompt-Vorlage: {name}")
        context = {"language": self.language}
        for key, value in values.items():
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            context[key] = "" if value is None else value
        try:
            return template.format(**context)
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigError(f"Prompt-Vorlage '{name}' ungueltig: {exc}") from exc
