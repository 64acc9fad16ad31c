"""
Configuration loader for the lecture QA engine.

Loads environment variables from .env.local (then .env) with sensible defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def get_project_root() -> Path:
    """Get the project root directory (parent of lecture_qa)."""
    return Path(__file__).parent.parent


def load_env_files() -> None:
    """Load .env.local first, then any .env; existing variables are never overwritten."""
    load_dotenv(dotenv_path=get_project_root() / ".env.local")
    load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime configuration with sensible defaults."""

    # Ollama endpoint
    ollama_host: str = "localhost"
    ollama_port: int = 11434
    generation_model: str = "llama2"
    embedding_model: str = "nomic-embed-text"
    embedding_dim: int = 768
    request_timeout_ms: int = 120000
    liveness_timeout_ms: int = 5000

    # Retrieval
    retrieval_strategy: str = "self_query"
    retrieval_top_k: int = 4
    slide_chunk_size: int = 1000
    slide_chunk_overlap: int = 200

    # Sessions
    session_idle_ttl_s: int = 6 * 60 * 60
    session_sweep_interval_s: int = 10 * 60
    serialize_session_requests: bool = True

    # Temporary files
    temp_storage_path: str = "data/temp"
    temp_file_max_age_s: int = 24 * 60 * 60

    # External tools
    tesseract_path: str = "tesseract"
    ffmpeg_path: str = "ffmpeg"

    # Lecture schedule
    lectures_file_path: str = "data/lectures.json"
    lecture_test_mode: bool = False

    # Logging
    log_dir: str = "logs"

    @property
    def ollama_url(self) -> str:
        """Base URL of the Ollama HTTP API."""
        return f"http://{self.ollama_host}:{self.ollama_port}"

    @classmethod
    def from_env(cls, load_files: bool = True) -> Settings:
        """Build settings from environment variables."""
        if load_files:
            load_env_files()

        defaults = cls()
        return cls(
            ollama_host=os.getenv("OLLAMA_HOST", defaults.ollama_host),
            ollama_port=int(os.getenv("OLLAMA_PORT", str(defaults.ollama_port))),
            generation_model=os.getenv("OLLAMA_MODEL", defaults.generation_model),
            embedding_model=os.getenv("OLLAMA_EMBEDDING_MODEL", defaults.embedding_model),
            embedding_dim=int(os.getenv("EMBEDDING_DIM", str(defaults.embedding_dim))),
            request_timeout_ms=int(
                os.getenv("OLLAMA_TIMEOUT_MS", str(defaults.request_timeout_ms))
            ),
            liveness_timeout_ms=int(
                os.getenv("LIVENESS_TIMEOUT_MS", str(defaults.liveness_timeout_ms))
            ),
            retrieval_strategy=os.getenv("RETRIEVAL_STRATEGY", defaults.retrieval_strategy),
            retrieval_top_k=int(os.getenv("RETRIEVAL_TOP_K", str(defaults.retrieval_top_k))),
            slide_chunk_size=int(os.getenv("SLIDE_CHUNK_SIZE", str(defaults.slide_chunk_size))),
            slide_chunk_overlap=int(
                os.getenv("SLIDE_CHUNK_OVERLAP", str(defaults.slide_chunk_overlap))
            ),
            session_idle_ttl_s=int(
                os.getenv("SESSION_IDLE_TTL_S", str(defaults.session_idle_ttl_s))
            ),
            session_sweep_interval_s=int(
                os.getenv("SESSION_SWEEP_INTERVAL_S", str(defaults.session_sweep_interval_s))
            ),
            serialize_session_requests=_env_bool(
                "SERIALIZE_SESSION_REQUESTS", defaults.serialize_session_requests
            ),
            temp_storage_path=os.getenv("TEMP_STORAGE_PATH", defaults.temp_storage_path),
            temp_file_max_age_s=int(
                os.getenv("TEMP_FILE_MAX_AGE_S", str(defaults.temp_file_max_age_s))
            ),
            tesseract_path=os.getenv("TESSERACT_PATH", defaults.tesseract_path),
            ffmpeg_path=os.getenv("FFMPEG_PATH", defaults.ffmpeg_path),
            lectures_file_path=os.getenv("LECTURES_FILE_PATH", defaults.lectures_file_path),
            lecture_test_mode=_env_bool("LECTURE_TEST_MODE", defaults.lecture_test_mode),
            log_dir=os.getenv("LOG_DIR", defaults.log_dir),
        )
