"""Settings, logging setup, and shared console."""

from __future__ import annotations

import json as _json
import logging
import logging.handlers
import os
import re
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from .exceptions import ConfigError

load_dotenv()
console = Console()
log = logging.getLogger("paperless_gpt")

# --- Version ---
__version__ = "0.4.0"

_TRUTHY = ("1", "true", "yes", "on")
_PROVIDERS = ("openai", "ollama")

# --- Structured JSON Logging ---
_RICH_MARKUP_RE = re.compile(r"\[/?[a-z_]+(?:\s[^\]]+)?\]")
_STRUCTURED_KEYS = ("doc_id", "tag", "action", "duration_ms", "backoff_sec", "status")


class _JsonLineFormatter(logging.Formatter):
    """Formats log records as single-line JSON (JSONL) for monitoring tools."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        # Strip Rich markup tags like [bold], [cyan], [/cyan] etc.
        msg = _RICH_MARKUP_RE.sub("", msg)
        entry: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": msg,
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        for key in _STRUCTURED_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return _json.dumps(entry, ensure_ascii=False, default=str)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration, loaded once at startup."""

    # --- Paperless-NGX ---
    paperless_base_url: str
    paperless_api_token: str
    paperless_timeout: int = 30

    # --- LLM ---
    llm_provider: str = "openai"
    llm_model: str = ""
    llm_base_url: str = ""
    openai_api_key: str = ""
    llm_language: str = "English"
    llm_timeout: int = 120
    llm_connect_timeout: int = 8

    # --- Prompts ---
    prompts_dir: str = "prompts"
    correspondent_black_list: tuple[str, ...] = ()
    tag_black_list: tuple[str, ...] = ()
    content_max_chars: int = 5000

    # --- Tags that drive the pipeline ---
    auto_tag: str = "paperless-gpt-auto"
    ocr_tag: str = "paperless-gpt-ocr"
    manual_tag: str = "paperless-gpt"

    # --- Polling / Backoff ---
    poll_interval_sec: float = 10.0
    backoff_min_sec: float = 10.0
    backoff_max_sec: float = 3600.0
    poll_page_size: int = 1

    # --- Batch / Cache ---
    batch_max_workers: int = 4
    commit_partial_batches: bool = False
    cache_size: int = 100

    # --- OCR (AWS Textract) ---
    ocr_enabled: bool = False
    aws_region: str = ""
    aws_ocr_bucket_name: str = ""
    ocr_poll_interval: float = 3.0
    ocr_timeout: int = 900

    # --- WebUI ---
    webui_enabled: bool = False
    webui_port: int = 8080

    # --- Logging ---
    log_level: str = "INFO"
    log_dir: str = "."
    structured_log: bool = True

    @property
    def pending_tags(self) -> tuple[str, ...]:
        return (self.auto_tag, self.ocr_tag)

    @property
    def log_file(self) -> str:
        return os.path.join(self.log_dir, "paperless_gpt.log")

    @property
    def log_file_json(self) -> str:
        return os.path.join(self.log_dir, "paperless_gpt.jsonl")


def _get(env: Mapping[str, str], key: str, default: str = "") -> str:
    return (env.get(key) or default).strip()


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _get_number(env: Mapping[str, str], key: str, default, cast=int):
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{key}={raw!r} ist keine gueltige Zahl") from exc


def _get_list(env: Mapping[str, str], key: str) -> tuple[str, ...]:
    raw = env.get(key) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def likely_language(raw: str) -> str:
    """Normalize LLM_LANGUAGE ("GERMAN" -> "German"), default English."""
    value = (raw or "").strip()
    return value.lower().title() if value else "English"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment (and .env). Raises ConfigError on missing values."""
    env = os.environ if environ is None else environ

    missing = [
        key for key in ("PAPERLESS_BASE_URL", "PAPERLESS_API_TOKEN", "LLM_PROVIDER", "LLM_MODEL")
        if not _get(env, key)
    ]
    if missing:
        raise ConfigError("Bitte Umgebungsvariablen setzen: " + ", ".join(missing))

    provider = _get(env, "LLM_PROVIDER").lower()
    if provider not in _PROVIDERS:
        raise ConfigError(f"Nicht unterstuetzter LLM_PROVIDER: {provider}")
    openai_api_key = _get(env, "OPENAI_API_KEY")
    if provider == "openai" and not openai_api_key:
        raise ConfigError("OPENAI_API_KEY ist fuer den Provider 'openai' erforderlich")

    if provider == "ollama":
        default_base = _get(env, "OLLAMA_HOST", "http://127.0.0.1:11434")
    else:
        default_base = "https://api.openai.com"
    llm_base_url = _get(env, "LLM_BASE_URL", default_base).rstrip("/")

    ocr_enabled = _get_bool(env, "OCR_ENABLED", False)
    aws_region = _get(env, "AWS_REGION")
    bucket = _get(env, "AWS_OCR_BUCKET_NAME")
    if ocr_enabled and not aws_region:
        raise ConfigError("Fehlende Umgebungsvariable: AWS_REGION")
    if ocr_enabled and not bucket:
        raise ConfigError("Fehlende Umgebungsvariable: AWS_OCR_BUCKET_NAME")

    log_level = _get(env, "LOG_LEVEL", "INFO").upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "WARN", "ERROR"):
        raise ConfigError(f"Ungueltiges LOG_LEVEL: '{log_level}'")

    settings = Settings(
        paperless_base_url=_get(env, "PAPERLESS_BASE_URL").rstrip("/"),
        paperless_api_token=_get(env, "PAPERLESS_API_TOKEN"),
        paperless_timeout=_get_number(env, "PAPERLESS_TIMEOUT", 30),
        llm_provider=provider,
        llm_model=_get(env, "LLM_MODEL"),
        llm_base_url=llm_base_url,
        openai_api_key=openai_api_key,
        llm_language=likely_language(_get(env, "LLM_LANGUAGE")),
        llm_timeout=_get_number(env, "LLM_TIMEOUT", 120),
        llm_connect_timeout=_get_number(env, "LLM_CONNECT_TIMEOUT", 8),
        prompts_dir=_get(env, "PROMPTS_DIR", "prompts"),
        correspondent_black_list=_get_list(env, "CORRESPONDENT_BLACK_LIST"),
        tag_black_list=_get_list(env, "TAG_BLACK_LIST"),
        content_max_chars=_get_number(env, "CONTENT_MAX_CHARS", 5000),
        auto_tag=_get(env, "AUTO_TAG", "paperless-gpt-auto"),
        ocr_tag=_get(env, "OCR_TAG", "paperless-gpt-ocr"),
        manual_tag=_get(env, "MANUAL_TAG", "paperless-gpt"),
        poll_interval_sec=_get_number(env, "POLL_INTERVAL_SEC", 10.0, float),
        backoff_min_sec=_get_number(env, "BACKOFF_MIN_SEC", 10.0, float),
        backoff_max_sec=_get_number(env, "BACKOFF_MAX_SEC", 3600.0, float),
        poll_page_size=_get_number(env, "POLL_PAGE_SIZE", 1),
        batch_max_workers=_get_number(env, "BATCH_MAX_WORKERS", 4),
        commit_partial_batches=_get_bool(env, "COMMIT_PARTIAL_BATCHES", False),
        cache_size=_get_number(env, "CACHE_SIZE", 100),
        ocr_enabled=ocr_enabled,
        aws_region=aws_region,
        aws_ocr_bucket_name=bucket,
        ocr_poll_interval=_get_number(env, "OCR_POLL_INTERVAL", 3.0, float),
        ocr_timeout=_get_number(env, "OCR_TIMEOUT", 900),
        webui_enabled=_get_bool(env, "WEBUI_ENABLED", False),
        webui_port=_get_number(env, "WEBUI_PORT", 8080),
        log_level="WARNING" if log_level == "WARN" else log_level,
        log_dir=_get(env, "LOG_DIR", "."),
        structured_log=_get_bool(env, "STRUCTURED_LOG", True),
    )
    if settings.poll_page_size < 1:
        raise ConfigError(f"POLL_PAGE_SIZE={settings.poll_page_size} muss >= 1 sein")
    if settings.batch_max_workers < 1:
        raise ConfigError(f"BATCH_MAX_WORKERS={settings.batch_max_workers} muss >= 1 sein")
    if settings.cache_size < 1:
        raise ConfigError(f"CACHE_SIZE={settings.cache_size} muss >= 1 sein")
    if settings.backoff_min_sec <= 0 or settings.backoff_max_sec < settings.backoff_min_sec:
        raise ConfigError(
            f"BACKOFF_MIN_SEC={settings.backoff_min_sec} / BACKOFF_MAX_SEC={settings.backoff_max_sec} ungueltig"
        )
    return settings


def validate_settings(settings: Settings) -> bool:
    """Warn about legal but suspicious values. Returns True when nothing was flagged."""
    warnings = []
    if not settings.paperless_base_url.startswith(("http://", "https://")):
        warnings.append(f"PAPERLESS_BASE_URL='{settings.paperless_base_url}' hat kein http(s):// Prefix")
    if settings.llm_timeout < 10:
        warnings.append(f"LLM_TIMEOUT={settings.llm_timeout}s sehr kurz - Timeouts wahrscheinlich")
    if settings.poll_interval_sec < 5:
        warnings.append(f"POLL_INTERVAL_SEC={settings.poll_interval_sec}s zu kurz - Server-Ueberlastung moeglich")
    if settings.batch_max_workers > 16:
        warnings.append(f"BATCH_MAX_WORKERS={settings.batch_max_workers} sehr hoch - LLM-Rate-Limits wahrscheinlich")
    if settings.content_max_chars < 500:
        warnings.append(f"CONTENT_MAX_CHARS={settings.content_max_chars} sehr klein - schlechte Vorschlaege wahrscheinlich")
    for w in warnings:
        log.warning(f"[yellow]Config:[/yellow] {w}")
    return len(warnings) == 0


def setup_logging(settings: Settings) -> None:
    """Rich console handler + rotating plain-text file (+ JSONL when STRUCTURED_LOG)."""
    os.makedirs(settings.log_dir, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        settings.log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s  [%(threadName)s] %(message)s", datefmt="%H:%M:%S"))

    handlers: list[logging.Handler] = [
        RichHandler(console=console, show_path=False, markup=True, rich_tracebacks=True),
        file_handler,
    ]
    if settings.structured_log:
        json_handler = logging.handlers.RotatingFileHandler(
            settings.log_file_json, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8",
        )
        json_handler.setFormatter(_JsonLineFormatter())
        handlers.append(json_handler)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s  %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True,
    )
    # urllib3/botocore are chatty on DEBUG
    for noisy in ("urllib3", "botocore", "boto3", "werkzeug"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
