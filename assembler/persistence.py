"""Persistence boundary: the pipeline hands over snapshots, stores keep them."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional, Protocol
from uuid import uuid4

import httpx

from common.config import PersistenceSettings
from common.schemas import SaveResult, SaveTranscriptRequest, TranscriptExport
from oracle.client import error_detail

logger = logging.getLogger(__name__)


class TranscriptStore(Protocol):
    async def save(self, request: SaveTranscriptRequest) -> SaveResult: ...


def build_save_request(
    export: TranscriptExport,
    title: Optional[str] = None,
    voice_agent: str = "webspeech",
    model_used: str = "none",
) -> SaveTranscriptRequest:
    return SaveTranscriptRequest(
        title=title or f"Transcript {date.today().isoformat()}",
        content=export.processed or export.raw,
        voice_agent=voice_agent,
        model_used=model_used,
        metadata={
            "raw": export.raw,
            "exported_at": export.metadata.timestamp,
            "total_chunks": export.metadata.total_chunks,
            "average_confidence": export.metadata.average_confidence,
        },
    )


class InMemoryTranscriptStore:
    def __init__(self) -> None:
        self.saved: dict[str, SaveTranscriptRequest] = {}

    async def save(self, request: SaveTranscriptRequest) -> SaveResult:
        transcript_id = uuid4().hex
        self.saved[transcript_id] = request
        logger.info("Transcript saved in memory: %s (%d chars)", transcript_id, len(request.content))
        return SaveResult(success=True, transcript_id=transcript_id)


class HttpTranscriptStore:
    """Inserts rows through a REST table endpoint (``POST {url}/{table}``)."""

    def __init__(
        self,
        settings: PersistenceSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or PersistenceSettings()
        self._transport = transport

    async def save(self, request: SaveTranscriptRequest) -> SaveResult:
        url = f"{self.settings.url.rstrip('/')}/{self.settings.table}"
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "apikey": self.settings.api_key,
            "Prefer": "return=representation",
        }

        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout_s, transport=self._transport) as client:
                resp = await client.post(url, json=request.model_dump(), headers=headers)
        except httpx.HTTPError as exc:
            logger.exception("Error saving transcript")
            return SaveResult(success=False, error=str(exc))

        if resp.is_error:
            detail = error_detail(resp)
            logger.error("Transcript store rejected save: %s - %s", resp.status_code, detail)
            return SaveResult(success=False, error=detail)

        try:
            data = resp.json()
        except ValueError:
            data = None
        row = data[0] if isinstance(data, list) and data else data
        transcript_id = None
        if isinstance(row, dict) and row.get("id") is not None:
            transcript_id = str(row["id"])
        return SaveResult(success=True, transcript_id=transcript_id)


def make_store(settings: PersistenceSettings | None = None) -> TranscriptStore:
    settings = settings or PersistenceSettings()
    if settings.url:
        return HttpTranscriptStore(settings)
    return InMemoryTranscriptStore()
