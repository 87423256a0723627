"""OCR via AWS Textract: upload to S3, async text detection, cleanup."""

from __future__ import annotations

import time
from datetime import datetime

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .cache import ResponseCache
from .config import Settings, log
from .exceptions import OCRError


class TextractOCR:
    """Extracts text from a document's original file. Results cached per document id."""

    def __init__(self, bucket: str, region: str, poll_interval: float = 3.0,
                 timeout: float = 900, cache_size: int = 100,
                 s3_client=None, textract_client=None, sleep=time.sleep):
        self.bucket = bucket
        self.region = region
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.cache: ResponseCache[int, str] = ResponseCache(cache_size, name="ocr")
        self._s3 = s3_client or boto3.client("s3", region_name=region)
        self._textract = textract_client or boto3.client("textract", region_name=region)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> TextractOCR:
        return cls(
            bucket=settings.aws_ocr_bucket_name,
            region=settings.aws_region,
            poll_interval=settings.ocr_poll_interval,
            timeout=settings.ocr_timeout,
            cache_size=settings.cache_size,
        )

    def extract_text(self, file_bytes: bytes, document_id: int) -> str:
        cached, found = self.cache.lookup(document_id)
        if found:
            log.info(f"OCR-Cache-Treffer fuer Dokument #{document_id}", extra={"doc_id": document_id})
            return cached

        object_key = f"uploaded-pdf-{document_id}-{datetime.now().strftime('%Y%m%d-%H%M%S')}.pdf"
        try:
            self._s3.put_object(Bucket=self.bucket, Key=object_key, Body=file_bytes)
        except (BotoCoreError, ClientError) as exc:
            raise OCRError(f"Upload nach S3 fehlgeschlagen ({object_key}): {exc}") from exc
        log.info(f"Dokument #{document_id} nach S3 hochgeladen: {object_key}", extra={"doc_id": document_id})

        try:
            job_id = self._start_job(object_key)
            log.info(f"Textract-Job gestartet: {job_id}", extra={"doc_id": document_id})
            blocks = self._collect_blocks(job_id)
        finally:
            self._delete_object(object_key)

        text = self.extract_lines(blocks)
        self.cache.put(document_id, text)
        return text

    def _start_job(self, object_key: str) -> str:
        try:
            resp = self._textract.start_document_text_detection(
                DocumentLocation={"S3Object": {"Bucket": self.bucket, "Name": object_key}},
            )
        except (BotoCoreError, ClientError) as exc:
            raise OCRError(f"Textract-Job konnte nicht gestartet werden: {exc}") from exc
        return resp["JobId"]

    def _collect_blocks(self, job_id: str) -> list[dict]:
        """Pollt bis SUCCEEDED (inkl. NextToken-Seiten), FAILED oder Timeout."""
        blocks: list[dict] = []
        next_token = None
        deadline = time.monotonic() + self.timeout
        while True:
            kwargs = {"JobId": job_id}
            if next_token:
                kwargs["NextToken"] = next_token
            try:
                resp = self._textract.get_document_text_detection(**kwargs)
            except (BotoCoreError, ClientError) as exc:
                raise OCRError(f"Textract-Ergebnis nicht abrufbar: {exc}") from exc

            status = resp.get("JobStatus")
            if status == "SUCCEEDED":
                blocks.extend(resp.get("Blocks", []))
                next_token = resp.get("NextToken")
                if not next_token:
                    log.info("OCR-Job erfolgreich abgeschlossen")
                    return blocks
                log.debug("Lade naechste Block-Seite...")
                continue
            if status != "IN_PROGRESS":
                raise OCRError(f"Textract-Job {job_id} fehlgeschlagen: Status {status}")
            if time.monotonic() >= deadline:
                raise OCRError(f"Textract-Job {job_id} nach {self.timeout}s nicht fertig")
            log.debug(f"OCR-Job laeuft noch, warte {self.poll_interval}s...")
            self._sleep(self.poll_interval)

    def _delete_object(self, object_key: str):
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=object_key)
            log.info(f"S3-Objekt geloescht: {object_key}")
        except (BotoCoreError, ClientError) as exc:
            log.error(f"S3-Objekt konnte nicht geloescht werden ({object_key}): {exc}")

    @staticmethod
    def extract_lines(blocks: list[dict]) -> str:
        return "".join(
            f"{block.get('Text', '')}\n"
            for block in blocks
            if block.get("BlockType") == "LINE"
        )
