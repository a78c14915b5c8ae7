from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Optional, Sequence

from common.config import InterpreterSettings
from common.schemas import StreamingFragment
from commands.document import Document
from commands.markup import clean_markup, should_apply_partial
from commands.patterns import COMMANDS, VoiceCommand, contains_command_keywords, match_command, supported_phrases
from oracle.client import CorrectionClient, OracleError
from oracle.prompts import EDITOR_SYSTEM_PROMPT, build_command_prompt

logger = logging.getLogger(__name__)


class StreamingCommandInterpreter:
    """Turns a stream of spoken fragments into edits on a rich-text document.

    Fragments accumulate in one text buffer. Once the buffer looks like a
    command it is flushed: the local phrase table is tried first (selection
    only), then a streamed rewrite from the correction endpoint.

    Flushes go through a single-slot queue. One worker task runs at a time;
    a flush requested while it runs only marks the slot, and the worker
    makes one more pass over the merged buffer before it finishes.
    """

    def __init__(
        self,
        document: Document,
        client: Optional[CorrectionClient] = None,
        settings: Optional[InterpreterSettings] = None,
    ) -> None:
        self.document = document
        self.client = client
        self.settings = settings or InterpreterSettings()
        self._buffer = ""
        self._fragments: deque[StreamingFragment] = deque(maxlen=self.settings.history_size)
        self._worker: asyncio.Task | None = None
        self._rerun = False

        if not self.streaming_enabled:
            logger.warning("No correction API key; voice commands use pattern matching only")

    @property
    def streaming_enabled(self) -> bool:
        return self.client is not None and self.client.configured

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def submit(self, fragment: StreamingFragment) -> bool:
        """Feed one fragment; True if it led to an edit of the document."""
        started = time.perf_counter()
        self._fragments.append(fragment)
        self._buffer += fragment.text + " "

        if not self.should_flush(fragment):
            return False

        if self.busy:
            self._rerun = True
            return False

        self._worker = asyncio.get_running_loop().create_task(self._drain())
        acted = await self._worker
        logger.debug("Voice command pass took %.1fms", (time.perf_counter() - started) * 1000)
        return acted

    def should_flush(self, fragment: StreamingFragment) -> bool:
        word_count = len(self._buffer.split())
        return (
            (word_count >= self.settings.keyword_min_words and contains_command_keywords(self._buffer))
            or word_count >= self.settings.min_words
            or fragment.text.strip().endswith((".", "!", "?"))
            or (fragment.confidence or 0.0) > self.settings.high_confidence
        )

    async def process_command(self, text: str) -> bool:
        return await self.submit(StreamingFragment(text=text, timestamp=time.time(), confidence=1.0))

    async def process_transcript_stream(
        self,
        texts: Sequence[str],
        on_progress: Optional[Callable[[float], None]] = None,
        delay_s: float = 0.05,
    ) -> None:
        logger.info("Processing transcript stream with %d chunks", len(texts))
        now = time.time()
        for i, text in enumerate(texts):
            await self.submit(StreamingFragment(text=text, timestamp=now + i, confidence=0.9))
            if on_progress is not None:
                on_progress((i + 1) / len(texts))
            await asyncio.sleep(delay_s)

    def available_commands(self) -> list[VoiceCommand]:
        return list(COMMANDS)

    def supported_phrases(self) -> list[str]:
        return supported_phrases()

    def buffer_state(self) -> dict:
        return {
            "buffer": self._buffer,
            "queue_length": len(self._fragments),
            "is_processing": self.busy,
        }

    def clear_buffer(self) -> None:
        self._buffer = ""
        self._fragments.clear()

    async def _drain(self) -> bool:
        acted = await self._flush()
        while self._rerun:
            self._rerun = False
            acted = await self._flush() or acted
        return acted

    async def _flush(self) -> bool:
        # Text submitted while this pass runs lands past `consumed` and is
        # left for the next pass.
        consumed = len(self._buffer)
        command_text = self._buffer.strip()
        if not command_text:
            return False

        if self._apply_pattern(command_text):
            self._retain_tail(consumed)
            return True

        if self.streaming_enabled and await self._rewrite_streaming(command_text):
            self._retain_tail(consumed)
            return True

        if consumed > self.settings.buffer_ceiling:
            self._buffer = self._buffer[consumed:]
            if not self._buffer:
                self._fragments.clear()
        return False

    def _apply_pattern(self, text: str) -> bool:
        match = match_command(text, self.document.has_selection())
        if match is None:
            return False

        command, pattern = match
        try:
            self.document.apply_format(command.action)
        except Exception:
            logger.exception("Error executing voice command %r", pattern)
            return False
        logger.info("Pattern match executed: %s", pattern)
        return True

    async def _rewrite_streaming(self, command: str) -> bool:
        original = self.document.get_html()
        selection = self.document.get_selection()
        messages = [
            {"role": "system", "content": EDITOR_SYSTEM_PROMPT},
            {"role": "user", "content": build_command_prompt(command, original, self.settings.max_content_chars)},
        ]
        logger.info("Streaming rewrite for command %r (%d chars of content)", command, len(original))

        accumulated = ""
        try:
            async for delta in self.client.stream_completion(messages):
                accumulated += delta
                partial = clean_markup(accumulated)
                if should_apply_partial(partial, original):
                    self._apply_partial(partial)
        except OracleError as exc:
            logger.error("Streaming voice command failed: %s", exc)
            self._restore(original, selection)
            return False

        cleaned = clean_markup(accumulated)
        if cleaned and cleaned.strip() != original.strip():
            if cleaned.strip() != self.document.get_html().strip():
                self.document.set_content(cleaned)
            logger.info("Streaming command applied (%d chars)", len(cleaned))
            return True

        logger.warning("Streaming response had no usable markup")
        self._restore(original, selection)
        return False

    def _apply_partial(self, html: str) -> None:
        try:
            self.document.set_content(html)
        except Exception:
            logger.debug("Partial update rejected", exc_info=True)

    def _restore(self, original: str, selection: Optional[tuple[int, int]]) -> None:
        if self.document.get_html() != original:
            self.document.set_content(original)
            self.document.set_selection(selection)

    def _retain_tail(self, consumed: int) -> None:
        # Keep a little trailing context for the next command
        words = self._buffer[:consumed].split()
        kept = " ".join(words[-3:]) + " " if len(words) > 5 else ""
        self._buffer = kept + self._buffer[consumed:]

        if len(self._fragments) > 5:
            recent = list(self._fragments)[-3:]
            self._fragments.clear()
            self._fragments.extend(recent)
        else:
            self._fragments.clear()
