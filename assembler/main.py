from __future__ import annotations

import asyncio
import json
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from common.config import AssemblerSettings, OracleSettings, PersistenceSettings, SpeechSettings
from common.schemas import (
    ASRStartMessage,
    ClientMessageType,
    ErrorMessage,
    ExportedMessage,
    ExportRequestMessage,
    FragmentMessage,
    StartMessage,
    StateMessage,
    TranscriptState,
)
from assembler.persistence import make_store
from assembler.session import SessionManager
from assembler.speech import SpeechSourceHandler, listen_to_asr
from oracle.client import CorrectionClient

logger = logging.getLogger(__name__)

settings = AssemblerSettings()
speech_settings = SpeechSettings()
oracle = CorrectionClient(OracleSettings())
manager = SessionManager(oracle, settings)
store = make_store(PersistenceSettings())
app = FastAPI(title="Realtime Transcript Assembler")


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "active_sessions": manager.active_count,
        "correction_configured": oracle.configured,
    }


@app.websocket("/transcript")
async def transcript_endpoint(ws: WebSocket):
    await ws.accept()
    stream_id: str | None = None
    try:
        # Expect a start message first
        raw = await ws.receive_text()
        msg = json.loads(raw)
        if msg.get("type") != ClientMessageType.start:
            await ws.send_text(ErrorMessage(stream_id="", detail="Expected start message").model_dump_json())
            await ws.close()
            return

        start = StartMessage(**msg)
        session = await manager.create(start.stream_id, voice_agent=start.voice_agent)
        stream_id = session.stream_id
        assembler = session.assembler

        # Single writer: state pushes and replies share one outbox
        outbox: asyncio.Queue[str | None] = asyncio.Queue()

        def push_state(state: TranscriptState) -> None:
            outbox.put_nowait(StateMessage(stream_id=start.stream_id, state=state).model_dump_json())

        unsubscribe = assembler.on_update(push_state)
        writer = asyncio.create_task(_drain_outbox(ws, outbox))

        asr_task = None
        if start.use_asr:
            handler = SpeechSourceHandler(assembler, name=f"asr:{stream_id}")
            asr_start = ASRStartMessage(stream_id=stream_id, language=start.language)
            asr_task = asyncio.create_task(listen_to_asr(speech_settings.asr_ws_url, asr_start, handler))

        try:
            while True:
                message = await ws.receive()
                if message.get("type") == "websocket.disconnect":
                    break
                if not message.get("text"):
                    continue

                try:
                    data = json.loads(message["text"])
                    kind = data.get("type")
                    if kind == ClientMessageType.fragment:
                        fragment = FragmentMessage(**data)
                        assembler.add_chunk(fragment.text, fragment.is_final)
                    elif kind == ClientMessageType.clear:
                        assembler.clear()
                    elif kind == ClientMessageType.export:
                        request = ExportRequestMessage(**data)
                        await assembler.wait_settled()
                        result = await assembler.save(store, title=request.title, voice_agent=session.voice_agent)
                        outbox.put_nowait(ExportedMessage(stream_id=stream_id, result=result).model_dump_json())
                    elif kind == ClientMessageType.end:
                        await assembler.wait_settled()
                        push_state(assembler.get_state())
                        break
                    else:
                        outbox.put_nowait(
                            ErrorMessage(stream_id=stream_id, detail=f"Unknown message type: {kind}").model_dump_json()
                        )
                except (json.JSONDecodeError, ValidationError) as exc:
                    outbox.put_nowait(ErrorMessage(stream_id=stream_id, detail=str(exc)).model_dump_json())
        finally:
            unsubscribe()
            if asr_task is not None:
                asr_task.cancel()
            outbox.put_nowait(None)
            try:
                await writer
            except (WebSocketDisconnect, RuntimeError):
                pass

    except WebSocketDisconnect:
        logger.info("Client disconnected: %s", stream_id)
    except RuntimeError as exc:
        logger.warning("Session error: %s", exc)
        await ws.send_text(ErrorMessage(stream_id=stream_id or "", detail=str(exc)).model_dump_json())
    except Exception:
        logger.exception("Unexpected error in transcript endpoint")
    finally:
        if stream_id:
            await manager.remove(stream_id)


async def _drain_outbox(ws: WebSocket, outbox: asyncio.Queue) -> None:
    while True:
        frame = await outbox.get()
        if frame is None:
            return
        await ws.send_text(frame)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
