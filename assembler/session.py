from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from common.config import AssemblerSettings
from assembler.manager import RealtimeAssembler
from oracle.client import Corrector

logger = logging.getLogger(__name__)


@dataclass
class Session:
    stream_id: str
    assembler: RealtimeAssembler
    voice_agent: str = "webspeech"


class SessionManager:
    """Registry of live transcript streams, one assembler per stream."""

    def __init__(self, oracle: Corrector, settings: AssemblerSettings | None = None) -> None:
        self._oracle = oracle
        self._settings = settings or AssemblerSettings()
        self._max = self._settings.max_sessions
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self, stream_id: str, **kwargs) -> Session:
        async with self._lock:
            if len(self._sessions) >= self._max:
                raise RuntimeError(f"Max sessions ({self._max}) reached")
            if stream_id in self._sessions:
                raise RuntimeError(f"Session {stream_id} already exists")
            assembler = RealtimeAssembler(self._oracle, self._settings)
            session = Session(stream_id=stream_id, assembler=assembler, **kwargs)
            self._sessions[stream_id] = session
            logger.info("Session created: %s (%d active)", stream_id, len(self._sessions))
            return session

    async def remove(self, stream_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(stream_id, None)
            if session is not None:
                session.assembler.close()
            logger.info("Session removed: %s (%d active)", stream_id, len(self._sessions))

    def get(self, stream_id: str) -> Session | None:
        return self._sessions.get(stream_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)
