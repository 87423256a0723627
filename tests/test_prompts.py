"""Tests for paperless_gpt.prompts."""

import pytest

from paperless_gpt.exceptions import ConfigError
from paperless_gpt.prompts import DEFAULT_TEMPLATES, PromptRenderer


class TestLoad:
    def test_writes_missing_defaults(self, tmp_path):
        PromptRenderer(str(tmp_path / "prompts"))
        for name, default in DEFAULT_TEMPLATES.items():
            path = tmp_path / "prompts" / f"{name}.tmpl"
            assert path.read_text(encoding="utf-8") == default

    def test_existing_file_overrides(self, tmp_path):
        (tmp_path / "title_prompt.tmpl").write_text("Titel fuer: {content}", encoding="utf-8")
        renderer = PromptRenderer(str(tmp_path))
        assert renderer.render("title_prompt", content="Rechnung") == "Titel fuer: Rechnung"

    def test_no_dir_uses_defaults(self):
        assert PromptRenderer().templates == DEFAULT_TEMPLATES


class TestRender:
    def test_lists_joined_in_order(self):
        out = PromptRenderer().render(
            "tag_prompt", available_tags=["B", "A"], title="T", content="C",
        )
        assert "B, A" in out

    def test_language(self):
        out = PromptRenderer(language="German").render("title_prompt", content="x")
        assert "likely in German" in out

    def test_json_example_braces_literal(self):
        out = PromptRenderer().render(
            "json_prompt", available_tags=[], available_correspondents=[], available_document_types=[],
            black_list=[], black_list_tags=[], content="x",
        )
        assert '{"title": "...", "tags": ["..."]' in out

    def test_deterministic(self):
        r = PromptRenderer()
        assert r.render("title_prompt", content="x") == r.render("title_prompt", content="x")

    def test_unknown_template(self):
        with pytest.raises(ConfigError):
            PromptRenderer().render("summary_prompt")

    def test_missing_placeholder(self):
        with pytest.raises(ConfigError):
            PromptRenderer().render("title_prompt")
