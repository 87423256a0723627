"""Chat-completion transport for OpenAI-compatible and Ollama endpoints."""

from __future__ import annotations

import threading
import time

import requests

from .config import Settings, log
from .exceptions import LLMError, LLMTimeoutError


class LLMClient:
    """Sendet einen Prompt als einzelne User-Nachricht und liefert den Antworttext."""

    def __init__(self, provider: str, model: str, base_url: str, api_key: str = "",
                 timeout: int = 120, connect_timeout: int = 8):
        self.provider = provider.lower()
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._response_times: list[float] = []
        self._max_tracked = 50
        self._times_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> LLMClient:
        return cls(
            provider=settings.llm_provider,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout,
            connect_timeout=settings.llm_connect_timeout,
        )

    @property
    def url(self) -> str:
        if self.provider == "ollama":
            return f"{self.base_url}/api/chat"
        return f"{self.base_url}/v1/chat/completions"

    @property
    def avg_response_time(self) -> float:
        with self._times_lock:
            times = list(self._response_times)
        return sum(times) / len(times) if times else 0.0

    def _auth_headers(self) -> dict | None:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None

    def _build_payload(self, prompt: str) -> dict:
        payload: dict = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if self.provider == "ollama":
            payload["stream"] = False
        return payload

    @staticmethod
    def _extract_response_text(data: dict) -> str:
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            first_choice = choices[0] if isinstance(choices[0], dict) else {}
            message = first_choice.get("message", {})
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]
            if isinstance(first_choice.get("text"), str):
                return first_choice["text"]
        message = data.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(data.get("response"), str):
            return data["response"]
        keys = ", ".join(sorted(data.keys())[:8])
        raise LLMError(f"Unbekanntes LLM-Antwortformat (keys: {keys})")

    def _record_time(self, elapsed: float):
        with self._times_lock:
            self._response_times.append(elapsed)
            if len(self._response_times) > self._max_tracked:
                del self._response_times[:-self._max_tracked]

    @staticmethod
    def _error_snippet(resp: requests.Response) -> str:
        text = (resp.text or "").strip().replace("\n", " ")
        if len(text) > 300:
            text = text[:300] + "..."
        return text

    def complete(self, prompt: str) -> str:
        """Sendet Prompt an LLM-Endpunkt und gibt Antwort zurueck."""
        t0 = time.perf_counter()
        try:
            resp = requests.post(
                self.url,
                headers=self._auth_headers(),
                json=self._build_payload(prompt),
                timeout=(max(3, self.connect_timeout), max(5, self.timeout)),
            )
        except requests.exceptions.Timeout as exc:
            raise LLMTimeoutError(f"LLM-Timeout nach {self.timeout}s ({self.url})") from exc
        except requests.exceptions.RequestException as exc:
            raise LLMError(f"LLM nicht erreichbar ({self.url}): {exc}") from exc

        elapsed = time.perf_counter() - t0
        if not resp.ok:
            raise LLMError(f"{resp.status_code} {resp.reason} for url: {self.url} | body: {self._error_snippet(resp)}")
        self._record_time(elapsed)
        log.debug(f"LLM-Antwort in {elapsed:.1f}s (avg {self.avg_response_time:.1f}s)")
        try:
            data = resp.json()
        except ValueError as exc:
            raise LLMError(f"LLM-Antwort ist kein JSON ({self.url})") from exc
        return self._extract_response_text(data)
