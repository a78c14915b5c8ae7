from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


# --- Correction oracle ---

class ChangeKind(str, Enum):
    correction = "correction"
    grammar = "grammar"
    formatting = "formatting"
    context = "context"


class TextChange(BaseModel):
    original: str
    corrected: str
    kind: ChangeKind = ChangeKind.correction


class CorrectionResult(BaseModel):
    corrected_text: str
    confidence: float
    changes: list[TextChange] = []


class CorrectRequest(BaseModel):
    text: str
    context: list[str] = []


# --- Transcript chunks and assembler state ---

class Chunk(BaseModel):
    id: str
    text: str
    timestamp: float
    is_final: bool = False
    corrected: Optional[str] = None
    confidence: Optional[float] = None
    is_processing: bool = False


class ChunkStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"


class TranscriptStats(BaseModel):
    total_chunks: int = 0
    processed_chunks: int = 0
    processing_chunks: int = 0
    average_confidence: float = 0.0


class TranscriptState(BaseModel):
    raw_transcript: str
    processed_transcript: str
    chunks: list[Chunk]
    is_processing: bool
    stats: TranscriptStats


class ProcessingStatus(BaseModel):
    is_processing: bool
    queue_length: int = 0
    processing_chunks: int = 0


class ExportMetadata(BaseModel):
    timestamp: float
    total_chunks: int
    average_confidence: float


class TranscriptExport(BaseModel):
    raw: str
    processed: str
    chunks: list[Chunk]
    metadata: ExportMetadata


# --- Streaming command interpreter ---

class StreamingFragment(BaseModel):
    text: str
    timestamp: float = 0.0
    confidence: Optional[float] = None


# --- Persistence boundary ---

class SaveTranscriptRequest(BaseModel):
    title: Optional[str] = None
    content: str
    voice_agent: str
    model_used: str
    metadata: dict = {}


class SaveResult(BaseModel):
    success: bool
    transcript_id: Optional[str] = None
    error: Optional[str] = None


# --- Streaming ASR messages (speech source → assembler) ---

class ASRMessageType(str, Enum):
    start = "start"
    end = "end"
    segment = "segment"
    transcript_complete = "transcript_complete"
    error = "error"


class ASRStartMessage(BaseModel):
    type: ASRMessageType = ASRMessageType.start
    stream_id: str
    sample_rate: int = 16000
    encoding: str = "pcm_s16le"
    channels: int = 1
    language: Optional[str] = None


class SegmentStatus(str, Enum):
    partial = "partial"
    final = "final"


class TranscriptSegment(BaseModel):
    status: SegmentStatus
    segment_id: int
    start_time: float = 0.0
    end_time: float = 0.0
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


# --- WebSocket messages: client ↔ assembler service ---

class ClientMessageType(str, Enum):
    start = "start"
    fragment = "fragment"
    clear = "clear"
    export = "export"
    end = "end"


class StartMessage(BaseModel):
    type: ClientMessageType = ClientMessageType.start
    stream_id: str
    voice_agent: str = "webspeech"
    use_asr: bool = False  # pull fragments from the streaming ASR service
    language: Optional[str] = None


class FragmentMessage(BaseModel):
    type: ClientMessageType = ClientMessageType.fragment
    text: str
    is_final: bool = False
    confidence: Optional[float] = None


class ExportRequestMessage(BaseModel):
    type: ClientMessageType = ClientMessageType.export
    title: Optional[str] = None


class ServerMessageType(str, Enum):
    state = "state"
    exported = "exported"
    error = "error"


class StateMessage(BaseModel):
    type: ServerMessageType = ServerMessageType.state
    stream_id: str
    state: TranscriptState


class ExportedMessage(BaseModel):
    type: ServerMessageType = ServerMessageType.exported
    stream_id: str
    result: SaveResult


class ErrorMessage(BaseModel):
    type: ServerMessageType = ServerMessageType.error
    stream_id: str
    detail: str
