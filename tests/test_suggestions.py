"""Tests for paperless_gpt.suggestions."""

from unittest.mock import MagicMock

import pytest

from conftest import make_doc
from paperless_gpt.cache import ResponseCache
from paperless_gpt.exceptions import LLMError, MalformedResponseError, PaperlessGptError
from paperless_gpt.prompts import PromptRenderer
from paperless_gpt.suggestions import SuggestionGenerator, extract_json_span, parse_suggestion


def _generator(settings, response='{"title": "Telekom Rechnung Januar"}', **kwargs):
    llm = MagicMock()
    llm.complete.return_value = response
    return SuggestionGenerator(llm, PromptRenderer(), settings, **kwargs), llm


# ---------------------------------------------------------------------------
# JSON extraction / parsing
# ---------------------------------------------------------------------------

class TestExtractJsonSpan:
    def test_surrounding_prose(self):
        text = 'Here you go:\n{"title":"Invoice"}\nDone'
        assert extract_json_span(text) == '{"title":"Invoice"}'

    def test_nested_braces_use_last_closing(self):
        text = 'x {"a": {"b": 1}} y'
        assert extract_json_span(text) == '{"a": {"b": 1}}'

    def test_no_braces_returns_trimmed(self):
        assert extract_json_span("  no json  ") == "no json"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    def test_empty_raises(self, text):
        with pytest.raises(MalformedResponseError):
            extract_json_span(text)


class TestParseSuggestion:
    def test_full_payload(self):
        doc = make_doc(7)
        text = (
            '{"title": "Telekom Rechnung", "tags": ["Rechnung"], "correspondent": "Telekom",'
            ' "document_type": "Rechnung", "created_date": "2024-01-03"}'
        )
        s = parse_suggestion(text, doc)
        assert s.document_id == 7
        assert s.original_document is doc
        assert s.title == "Telekom Rechnung"
        assert s.tags == ["Rechnung"]
        assert s.correspondent == "Telekom"
        assert s.document_type == "Rechnung"
        assert s.created_date == "2024-01-03"
        assert s.content is None

    def test_prose_around_json(self):
        s = parse_suggestion('Here you go:\n{"title":"Invoice"}\nDone', make_doc())
        assert s.title == "Invoice"

    def test_missing_tags_become_empty(self):
        s = parse_suggestion('{"title": "X"}', make_doc())
        assert s.tags == []

    def test_unknown_keys_ignored(self):
        s = parse_suggestion('{"title": "X", "confidence": 0.9}', make_doc())
        assert s.title == "X"

    def test_invalid_json(self):
        with pytest.raises(MalformedResponseError):
            parse_suggestion('{"title": "X",}', make_doc())

    def test_no_object(self):
        with pytest.raises(MalformedResponseError):
            parse_suggestion("I cannot help with that", make_doc())

    def test_array_is_not_an_object(self):
        with pytest.raises(MalformedResponseError):
            parse_suggestion('["a", "b"]', make_doc())

    def test_tags_wrong_type(self):
        with pytest.raises(MalformedResponseError):
            parse_suggestion('{"tags": "Rechnung"}', make_doc())

    def test_title_wrong_type(self):
        with pytest.raises(MalformedResponseError):
            parse_suggestion('{"title": 42}', make_doc())


# ---------------------------------------------------------------------------
# Cache behaviour
# ---------------------------------------------------------------------------

class TestCaching:
    def test_second_call_served_from_cache(self, settings):
        gen, llm = _generator(settings)
        doc = make_doc()
        first = gen.suggest_json("prompt", doc)
        second = gen.suggest_json("prompt", doc)
        assert llm.complete.call_count == 1
        assert first.title == second.title == "Telekom Rechnung Januar"

    def test_response_stored_trimmed(self, settings):
        gen, _ = _generator(settings, response='  {"title": "A"}\n')
        gen.suggest_json("prompt", make_doc())
        assert gen.cache.get("prompt") == '{"title": "A"}'

    def test_malformed_response_is_cached(self, settings):
        gen, llm = _generator(settings, response="no json here")
        with pytest.raises(MalformedResponseError):
            gen.suggest_json("prompt", make_doc())
        with pytest.raises(MalformedResponseError):
            gen.suggest_json("prompt", make_doc())
        assert llm.complete.call_count == 1
        assert gen.cache.get("prompt") == "no json here"

    def test_llm_error_not_cached(self, settings):
        gen, llm = _generator(settings)
        llm.complete.side_effect = LLMError("down")
        with pytest.raises(LLMError):
            gen.suggest_json("prompt", make_doc())
        assert "prompt" not in gen.cache

    def test_injected_cache_used(self, settings):
        cache = ResponseCache(capacity=5, name="llm")
        cache.put("prompt", '{"title": "Cached"}')
        gen, llm = _generator(settings, cache=cache)
        assert gen.suggest_json("prompt", make_doc()).title == "Cached"
        llm.complete.assert_not_called()


# ---------------------------------------------------------------------------
# Auto mode
# ---------------------------------------------------------------------------

class TestAutoSuggestion:
    def test_existing_tags_kept_pending_removed(self, settings, catalog):
        gen, _ = _generator(settings, response='{"title": "T", "tags": ["Rechnung"]}')
        doc = make_doc(tags=["Versicherung", "paperless-gpt-auto", "Rechnung"])
        s = gen.generate_auto_suggestion(doc, catalog)
        assert s.tags == ["Rechnung", "Versicherung"]

    def test_prompt_lists_sorted_candidates_without_pending_tags(self, settings, catalog):
        gen, llm = _generator(settings)
        gen.generate_auto_suggestion(make_doc(), catalog)
        prompt = llm.complete.call_args[0][0]
        assert "Available tags: Rechnung, Versicherung, paperless-gpt\n" in prompt
        assert "paperless-gpt-auto" not in prompt
        assert "Available correspondents: Allianz, Telekom" in prompt

    def test_same_document_same_prompt(self, settings, catalog):
        gen, llm = _generator(settings)
        doc = make_doc()
        gen.generate_auto_suggestion(doc, catalog)
        gen.generate_auto_suggestion(doc, catalog)
        assert llm.complete.call_count == 1

    def test_content_truncated(self, settings, catalog):
        gen, llm = _generator(settings)
        gen.generate_auto_suggestion(make_doc(content="x" * 6000), catalog)
        prompt = llm.complete.call_args[0][0]
        assert "x" * 5000 in prompt
        assert "x" * 5001 not in prompt

    def test_malformed_propagates(self, settings, catalog):
        gen, _ = _generator(settings, response="")
        with pytest.raises(MalformedResponseError):
            gen.generate_auto_suggestion(make_doc(), catalog)


# ---------------------------------------------------------------------------
# OCR mode
# ---------------------------------------------------------------------------

class TestOcrSuggestion:
    def test_moves_document_to_auto_queue(self, settings):
        paperless = MagicMock()
        paperless.download_original.return_value = b"%PDF"
        ocr = MagicMock()
        ocr.extract_text.return_value = "Zeile 1\nZeile 2\n"
        gen, llm = _generator(settings, paperless=paperless, ocr=ocr)

        doc = make_doc(3, tags=["Rechnung", "paperless-gpt-ocr"])
        s = gen.generate_ocr_suggestion(doc)

        paperless.download_original.assert_called_once_with(3)
        ocr.extract_text.assert_called_once_with(b"%PDF", 3)
        assert s.content == "Zeile 1\nZeile 2\n"
        assert s.tags == ["Rechnung", "paperless-gpt-auto"]
        assert s.title is None
        llm.complete.assert_not_called()

    def test_not_configured(self, settings):
        gen, _ = _generator(settings)
        with pytest.raises(PaperlessGptError):
            gen.generate_ocr_suggestion(make_doc())


# ---------------------------------------------------------------------------
# Per-field mode
# ---------------------------------------------------------------------------

class TestPerField:
    def test_title_quotes_stripped(self, settings):
        gen, _ = _generator(settings, response='"Telekom Rechnung"')
        assert gen.suggest_title(make_doc()) == "Telekom Rechnung"

    def test_tags_filtered_case_insensitive(self, settings):
        gen, _ = _generator(settings, response="rechnung, Unbekannt , VERSICHERUNG, Rechnung")
        tags = gen.suggest_tags(make_doc(), "T", ["Rechnung", "Versicherung"])
        assert tags == ["Rechnung", "Versicherung"]

    def test_correspondent_as_is(self, settings):
        gen, _ = _generator(settings, response="  Deutsche Telekom AG \n")
        assert gen.suggest_correspondent(make_doc(), "T", ["Telekom"]) == "Deutsche Telekom AG"
