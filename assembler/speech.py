"""Speech Source side of the pipeline.

A speech source emits interim and final text fragments through
:class:`SpeechSourceHandler`. :func:`listen_to_asr` drives one from a
streaming ASR service over a websocket.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterable, Optional, Union

import websockets
from pydantic import ValidationError

from common.schemas import ASRMessageType, ASRStartMessage, SegmentStatus, TranscriptSegment
from assembler.manager import RealtimeAssembler

logger = logging.getLogger(__name__)


class SpeechSourceHandler:
    """Callback surface a speech source drives; feeds the assembler."""

    def __init__(self, assembler: RealtimeAssembler, name: str = "speech") -> None:
        self.assembler = assembler
        self.name = name
        self.is_open = False
        self.last_error: Optional[BaseException] = None

    def on_fragment(self, text: str, is_final: bool, confidence: Optional[float] = None) -> None:
        if confidence is not None:
            logger.debug("%s fragment (final=%s, asr_confidence=%.2f)", self.name, is_final, confidence)
        self.assembler.add_chunk(text, is_final)

    def on_open(self) -> None:
        self.is_open = True
        logger.info("%s connection opened", self.name)

    def on_close(self) -> None:
        self.is_open = False
        logger.info("%s connection closed", self.name)

    def on_error(self, err: BaseException) -> None:
        self.last_error = err
        logger.error("%s error: %s", self.name, err)


async def relay_asr_stream(
    messages: AsyncIterable[Union[str, bytes]],
    handler: SpeechSourceHandler,
) -> None:
    """Translate streaming-ASR frames into fragment callbacks."""
    async for raw in messages:
        if isinstance(raw, bytes):
            continue
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed ASR frame: %.80s", raw)
            continue

        kind = msg.get("type")
        if kind == ASRMessageType.segment:
            try:
                segment = TranscriptSegment(**msg.get("segment", {}))
            except ValidationError:
                logger.warning("Ignoring invalid ASR segment: %s", msg)
                continue
            handler.on_fragment(
                segment.text,
                segment.status == SegmentStatus.final,
                segment.confidence,
            )
        elif kind == ASRMessageType.error:
            handler.on_error(RuntimeError(msg.get("detail", "ASR error")))
        elif kind == ASRMessageType.transcript_complete:
            break


async def listen_to_asr(url: str, start: ASRStartMessage, handler: SpeechSourceHandler) -> None:
    """Open the ASR websocket, send the start frame and relay until it closes."""
    try:
        async with websockets.connect(url, ping_interval=30, ping_timeout=300, close_timeout=10) as ws:
            handler.on_open()
            await ws.send(start.model_dump_json())
            await relay_asr_stream(ws, handler)
    except websockets.ConnectionClosed:
        logger.info("ASR connection closed for %s", start.stream_id)
    except (OSError, websockets.WebSocketException) as exc:
        handler.on_error(exc)
    finally:
        handler.on_close()
