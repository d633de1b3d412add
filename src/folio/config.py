"""Application configuration defaults."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

INDEX_FILENAME = "folio-search-index.json"
DB_FILENAME = "folio.db"
DEFAULT_MODEL = "thenlper/gte-base"
DEFAULT_RERANKER_MODEL = "cross-encoder/ms-marco-MiniLM-L-6-v2"


def _get_default_data_dir() -> Path:
    """Get the per-user data directory for the current platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
        return Path(appdata) / "Folio"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Folio"
    return Path.home() / ".local" / "share" / "folio"


@dataclass(slots=True)
class AppConfig:
    data_dir: Path | None = None
    knowledge_dir: Path | None = None
    db_path: Path | None = None
    index_path: Path | None = None
    log_path: Path | None = None
    model_name: str = DEFAULT_MODEL
    reranker_model: str = DEFAULT_RERANKER_MODEL
    embed_batch_size: int = 15
    max_concurrent: int = 3
    device: str | None = None

    def __post_init__(self) -> None:
        if self.data_dir is None:
            self.data_dir = _get_default_data_dir()
        if self.knowledge_dir is None:
            self.knowledge_dir = Path.home() / "Folio"
        if self.db_path is None:
            self.db_path = Path(self.data_dir) / DB_FILENAME
        if self.index_path is None:
            self.index_path = Path(self.data_dir) / INDEX_FILENAME
        if self.log_path is None:
            self.log_path = Path(self.data_dir) / "logs" / "main.log"

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create a config, letting ``FOLIO_*`` environment variables override defaults.

        Supported env vars:
            FOLIO_DATA_DIR: Directory for the database, file index and logs
            FOLIO_KNOWLEDGE_DIR: Folder indexed by default
            FOLIO_DB_PATH: SQLite database path
            FOLIO_MODEL: Sentence-transformer model name
            FOLIO_RERANKER_MODEL: Cross-encoder model name
            FOLIO_BATCH_SIZE: Texts per embedding request
            FOLIO_DEVICE: Torch device for both models
        """
        env = os.environ
        data_dir = env.get("FOLIO_DATA_DIR")
        knowledge_dir = env.get("FOLIO_KNOWLEDGE_DIR")
        db_path = env.get("FOLIO_DB_PATH")
        return cls(
            data_dir=Path(data_dir).expanduser() if data_dir else None,
            knowledge_dir=Path(knowledge_dir).expanduser() if knowledge_dir else None,
            db_path=Path(db_path).expanduser() if db_path else None,
            model_name=env.get("FOLIO_MODEL", DEFAULT_MODEL),
            reranker_model=env.get("FOLIO_RERANKER_MODEL", DEFAULT_RERANKER_MODEL),
            embed_batch_size=int(env.get("FOLIO_BATCH_SIZE", "15")),
            device=env.get("FOLIO_DEVICE") or None,
        )
