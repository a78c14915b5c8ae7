from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence

from common.config import AssemblerSettings
from common.schemas import (
    Chunk,
    ChunkStatus,
    ExportMetadata,
    ProcessingStatus,
    SaveResult,
    TranscriptExport,
    TranscriptState,
)
from assembler.chunk_store import ChunkStore
from assembler.persistence import TranscriptStore, build_save_request
from oracle.client import CorrectionClient, Corrector

logger = logging.getLogger(__name__)

StateCallback = Callable[[TranscriptState], None]


class RealtimeAssembler:
    """Public face of the transcript pipeline.

    Owns one :class:`ChunkStore`, fans state out to subscribers and debounces
    the notifications caused by ingestion. The chunk data itself is updated
    immediately; only delivery is delayed.
    """

    def __init__(
        self,
        oracle: Optional[Corrector] = None,
        settings: Optional[AssemblerSettings] = None,
    ) -> None:
        self.settings = settings or AssemblerSettings()
        self._oracle = oracle or CorrectionClient()
        self._store = ChunkStore(
            self._oracle,
            process_threshold=self.settings.process_threshold,
            context_max_chars=self.settings.context_max_chars,
            on_change=self._notify,
        )
        self._subscribers: list[StateCallback] = []
        self._debounce: asyncio.TimerHandle | None = None
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def add_chunk(self, text: str, is_final: bool = False) -> str | None:
        if not self._enabled or not text.strip():
            return None

        logger.debug("Adding chunk (final=%s): %r", is_final, text)
        chunk_id = self._store.add_chunk(text, is_final)
        self._debounced_notify()
        return chunk_id

    def get_state(self) -> TranscriptState:
        chunks = self._store.get_chunks()
        return TranscriptState(
            raw_transcript=self._store.get_raw_transcript(),
            processed_transcript=self._store.get_processed_transcript(),
            chunks=chunks,
            is_processing=any(c.is_processing for c in chunks),
            stats=self._store.get_stats(),
        )

    def on_update(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def clear(self) -> None:
        logger.info("Clearing transcript")
        self._cancel_debounce()
        self._store.clear()
        self._notify()

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        logger.info("Transcript processing %s", "enabled" if enabled else "disabled")

    async def process_batch(self, texts: Sequence[str]) -> None:
        if not self._enabled:
            return
        logger.info("Processing batch of %d chunks", len(texts))
        await self._store.process_batch(texts)
        self._notify()

    def get_processing_status(self) -> ProcessingStatus:
        stats = self._store.get_stats()
        return ProcessingStatus(
            is_processing=stats.processing_chunks > 0,
            queue_length=0,
            processing_chunks=stats.processing_chunks,
        )

    async def is_service_available(self) -> bool:
        return await self._store.is_service_available()

    async def reprocess_all(self) -> None:
        logger.info("Reprocessing all chunks")
        await self._store.reprocess_all()
        self._notify()

    def get_processed_text(self) -> str:
        return self._store.get_processed_transcript()

    def get_raw_text(self) -> str:
        return self._store.get_raw_transcript()

    def get_chunks_by_status(self, status: ChunkStatus | str) -> list[Chunk]:
        status = ChunkStatus(status)
        chunks = self._store.get_chunks()
        if status == ChunkStatus.processing:
            return [c for c in chunks if c.is_processing]
        if status == ChunkStatus.completed:
            return [c for c in chunks if c.corrected is not None and not c.is_processing]
        return [c for c in chunks if c.corrected is None and not c.is_processing]

    def get_overall_confidence(self) -> float:
        return self._store.get_stats().average_confidence

    def export_transcript_data(self) -> TranscriptExport:
        state = self.get_state()
        return TranscriptExport(
            raw=state.raw_transcript,
            processed=state.processed_transcript,
            chunks=state.chunks,
            metadata=ExportMetadata(
                timestamp=time.time(),
                total_chunks=state.stats.total_chunks,
                average_confidence=state.stats.average_confidence,
            ),
        )

    async def save(
        self,
        store: TranscriptStore,
        title: str | None = None,
        voice_agent: str = "webspeech",
        model_used: str | None = None,
    ) -> SaveResult:
        """Hand the current snapshot to the persistence boundary."""
        request = build_save_request(
            self.export_transcript_data(),
            title=title,
            voice_agent=voice_agent,
            model_used=model_used or getattr(self._oracle, "model", "none"),
        )
        return await store.save(request)

    async def wait_settled(self) -> None:
        await self._store.wait_settled()

    def close(self) -> None:
        self._cancel_debounce()
        self._store.close()
        self._subscribers.clear()
        logger.info("RealtimeAssembler closed")

    def _debounced_notify(self) -> None:
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(self.settings.debounce_s, self._fire_debounced)

    def _fire_debounced(self) -> None:
        self._debounce = None
        self._notify()

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def _notify(self) -> None:
        state = self.get_state()
        logger.debug(
            "Transcript state: raw=%d processed=%d chunks=%d processing=%s",
            len(state.raw_transcript),
            len(state.processed_transcript),
            len(state.chunks),
            state.is_processing,
        )

        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("Error in transcript update callback")
