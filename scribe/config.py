"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz
    SAMPLE_RATE: int = 16000
    CHANNELS: int = 1

    # Frame: 20ms @ 16kHz = 320 samples = 640 bytes (local VAD only)
    FRAME_MS: int = 20
    FRAME_BYTES: int = 640  # 320 * 2

    # Upstream streaming STT (Deepgram live API)
    DEEPGRAM_API_KEY: str = ""
    DEEPGRAM_URL: str = "wss://api.deepgram.com/v1/listen"
    DEEPGRAM_MODEL: str = "nova-2"
    DEEPGRAM_LANGUAGE: str = "en-US"
    DEEPGRAM_UTTERANCE_END_MS: int = 1000
    # First attempt asks for VAD events; on setup failure we retry once without them.
    DEEPGRAM_ENABLE_VAD: bool = True
    STT_CONNECT_TIMEOUT_SECONDS: float = 10.0
    STT_CLOSE_TIMEOUT_SECONDS: float = 5.0
    STT_AUDIO_QUEUE_FRAMES: int = 500  # frames awaiting upstream send; overflow is dropped

    # Chunk aggregation: speaker turn is cut when it would exceed this span
    CHUNK_MAX_DURATION_SECONDS: float = 30.0

    # Transcript store: "supabase" | "memory" (memory = offline / dev, nothing durable)
    STORE_BACKEND: Literal["supabase", "memory"] = "memory"
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    SUPABASE_TABLE: str = "transcripts2"

    # Persistence buffer: flush at N pending chunks or after the debounce delay
    PERSIST_HIGH_WATER_MARK: int = 5
    PERSIST_FLUSH_DELAY_SECONDS: float = 1.5
    # On session close: attempts before pending chunks are spilled to disk
    PERSIST_DRAIN_ATTEMPTS: int = 3
    SPILL_ENABLED: bool = True
    SPILL_DIR: str = "./spill"

    # Local VAD (advisory speech/silence status to the client; never gates audio)
    LOCAL_VAD_ENABLED: bool = True
    LOCAL_VAD_AGGRESSIVENESS: int = 2  # 0..3
    LOCAL_VAD_SILENCE_MS: int = 1000

    # Used when the WebSocket handshake carries no userId
    DEFAULT_USER_ID: str = "00000000-0000-0000-0000-000000000000"

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # e.g. "logs/scribe.log"

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
