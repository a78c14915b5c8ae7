from typing import Literal

from pydantic_settings import BaseSettings


class OracleSettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8002
    api_key: str = ""
    provider: Literal["direct", "gateway"] = "direct"
    direct_url: str = "https://api.x.ai/v1"
    gateway_url: str = "https://openrouter.ai/api/v1"
    direct_model: str = "grok-2"
    gateway_model: str = "x-ai/grok-2"
    temperature: float = 0.1
    max_tokens: int = 500
    stream_temperature: float = 0.0
    stream_max_tokens: int = 300
    timeout_s: float = 30.0
    app_url: str = "https://localhost:3000"
    app_title: str = "Voice Transcript Processor"

    model_config = {"env_prefix": "CORRECTION_"}


class AssemblerSettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8000
    debounce_s: float = 0.1
    process_threshold: int = 10
    context_max_chars: int = 0  # 0 = whole prior transcript
    max_sessions: int = 10

    model_config = {"env_prefix": "ASSEMBLER_"}


class InterpreterSettings(BaseSettings):
    max_content_chars: int = 2000
    buffer_ceiling: int = 300
    high_confidence: float = 0.7
    min_words: int = 3
    keyword_min_words: int = 2
    history_size: int = 20

    model_config = {"env_prefix": "INTERPRETER_"}


class PersistenceSettings(BaseSettings):
    url: str = ""
    api_key: str = ""
    table: str = "transcripts"
    timeout_s: float = 10.0

    model_config = {"env_prefix": "PERSIST_"}


class SpeechSettings(BaseSettings):
    asr_ws_url: str = "ws://asr:8001/stream"

    model_config = {"env_prefix": "SPEECH_"}
