from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence
from uuid import uuid4

from common.schemas import Chunk, TranscriptStats
from oracle.client import Corrector

logger = logging.getLogger(__name__)


class ChunkStore:
    """Ordered, append-only sequence of speech fragments.

    Each chunk moves pending -> processing -> corrected on its own. Correction
    requests run as tasks on the current event loop and complete in whatever
    order the oracle answers; every completion re-validates its chunk before
    writing, so results that arrive after :meth:`clear` or
    :meth:`reprocess_all` are dropped.
    """

    def __init__(
        self,
        oracle: Corrector,
        process_threshold: int = 10,
        context_max_chars: int = 0,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._oracle = oracle
        self.process_threshold = process_threshold
        self.context_max_chars = context_max_chars
        self._on_change = on_change
        self._chunks: list[Chunk] = []
        self._generation = 0
        self._last_timestamp = 0.0
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._chunks)

    def add_chunk(self, text: str, is_final: bool = False) -> str | None:
        """Append a fragment and start correcting it if it qualifies.

        Blank text is ignored and returns ``None``. Must be called from a
        running event loop when the chunk qualifies for correction.
        """
        chunk = self._append(text, is_final)
        if chunk is None:
            return None

        if is_final or len(chunk.text) > self.process_threshold:
            self._schedule(chunk.id)
        return chunk.id

    async def process_chunk(self, chunk_id: str) -> None:
        chunk = self._find(chunk_id)
        if chunk is None or chunk.is_processing or chunk.corrected is not None:
            return

        generation = self._generation
        context = self.context_for(self._index_of(chunk_id))
        chunk.is_processing = True
        self._notify()

        try:
            result = await self._oracle.correct(chunk.text, context)
            corrected, confidence = result.corrected_text, result.confidence
        except Exception:
            logger.exception("Error processing chunk %s", chunk_id)
            corrected, confidence = chunk.text, 0.0

        if generation != self._generation or self._find(chunk_id) is not chunk:
            logger.info("Discarding stale correction for %s", chunk_id)
            return

        chunk.corrected = corrected
        chunk.confidence = confidence
        chunk.is_processing = False
        self._notify()

    def context_for(self, index: int) -> list[str]:
        """Corrected-or-raw text of every chunk before ``index``, oldest first."""
        segments = [c.corrected or c.text for c in self._chunks[:index]]
        if self.context_max_chars <= 0:
            return segments

        kept: list[str] = []
        total = 0
        for segment in reversed(segments):
            total += len(segment) + 1
            if total > self.context_max_chars:
                break
            kept.append(segment)
        kept.reverse()
        return kept

    def get_processed_transcript(self) -> str:
        # Oracle answers carry the whole prior transcript, so the furthest-along
        # answered chunk already covers everything before it.
        anchor = None
        for index, chunk in enumerate(self._chunks):
            if chunk.corrected and chunk.confidence:
                anchor = index

        if anchor is None:
            return " ".join(c.corrected or c.text for c in self._chunks).strip()

        tail = [c.corrected or c.text for c in self._chunks[anchor + 1:]]
        return " ".join([self._chunks[anchor].corrected, *tail]).strip()

    def get_raw_transcript(self) -> str:
        return " ".join(c.text for c in self._chunks).strip()

    def get_chunks(self) -> list[Chunk]:
        return [chunk.model_copy() for chunk in self._chunks]

    def clear(self) -> None:
        self._generation += 1
        self._chunks = []

    def get_stats(self) -> TranscriptStats:
        scores = [c.confidence for c in self._chunks if c.confidence is not None]
        return TranscriptStats(
            total_chunks=len(self._chunks),
            processed_chunks=sum(1 for c in self._chunks if c.corrected is not None),
            processing_chunks=sum(1 for c in self._chunks if c.is_processing),
            average_confidence=sum(scores) / len(scores) if scores else 0.0,
        )

    async def reprocess_all(self) -> None:
        self._generation += 1
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for chunk in self._chunks:
            chunk.corrected = None
            chunk.confidence = None
            chunk.is_processing = False

        for chunk_id in [c.id for c in self._chunks]:
            await self.process_chunk(chunk_id)

    async def process_batch(self, texts: Sequence[str]) -> None:
        """Add ``texts`` in order (only the last one final) and correct them all."""
        last = len(texts) - 1
        chunks = [self._append(text, is_final=i == last) for i, text in enumerate(texts)]
        await asyncio.gather(*(self.process_chunk(c.id) for c in chunks if c is not None))

    async def is_service_available(self) -> bool:
        return await self._oracle.is_available()

    async def wait_settled(self) -> None:
        """Wait until no correction task is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _append(self, text: str, is_final: bool) -> Chunk | None:
        text = text.strip()
        if not text:
            return None

        chunk = Chunk(
            id=f"chunk_{uuid4().hex[:12]}",
            text=text,
            timestamp=self._next_timestamp(),
            is_final=is_final,
        )
        self._chunks.append(chunk)
        return chunk

    def _schedule(self, chunk_id: str) -> None:
        task = asyncio.get_running_loop().create_task(self.process_chunk(chunk_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _find(self, chunk_id: str) -> Chunk | None:
        for chunk in self._chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    def _index_of(self, chunk_id: str) -> int:
        for index, chunk in enumerate(self._chunks):
            if chunk.id == chunk_id:
                return index
        raise KeyError(chunk_id)

    def _next_timestamp(self) -> float:
        self._last_timestamp = max(time.time(), self._last_timestamp)
        return self._last_timestamp

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
