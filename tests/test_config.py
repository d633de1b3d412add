"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from folio.config import (
    DB_FILENAME,
    DEFAULT_MODEL,
    DEFAULT_RERANKER_MODEL,
    INDEX_FILENAME,
    AppConfig,
    _get_default_data_dir,
)


class TestAppConfig:
    """Test AppConfig dataclass."""

    def test_defaults_derive_from_data_dir(self, tmp_path: Path) -> None:
        config = AppConfig(data_dir=tmp_path)

        assert config.db_path == tmp_path / DB_FILENAME
        assert config.index_path == tmp_path / INDEX_FILENAME
        assert config.log_path == tmp_path / "logs" / "main.log"
        assert config.model_name == DEFAULT_MODEL
        assert config.reranker_model == DEFAULT_RERANKER_MODEL
        assert config.embed_batch_size == 15
        assert config.max_concurrent == 3

    def test_index_file_name(self) -> None:
        assert INDEX_FILENAME == "folio-search-index.json"

    def test_explicit_paths_win(self, tmp_path: Path) -> None:
        config = AppConfig(data_dir=tmp_path, db_path=Path("/custom/folio.db"))
        assert config.db_path == Path("/custom/folio.db")

    def test_resolve_db_path_absolute(self) -> None:
        config = AppConfig(db_path=Path("/absolute/path/db.db"))
        assert config.resolve_db_path(Path("/base")) == Path("/absolute/path/db.db")

    def test_resolve_db_path_relative(self) -> None:
        config = AppConfig(db_path=Path("data/folio.db"))
        assert config.resolve_db_path(Path("/base")) == Path("/base/data/folio.db")

    def test_resolve_db_path_without_base(self) -> None:
        config = AppConfig(db_path=Path("data/folio.db"))
        assert config.resolve_db_path() == Path("data/folio.db")


class TestFromEnv:
    """Environment overrides."""

    def test_from_env_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FOLIO_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("FOLIO_KNOWLEDGE_DIR", str(tmp_path / "notes"))
        monkeypatch.setenv("FOLIO_MODEL", "custom-model")
        monkeypatch.setenv("FOLIO_RERANKER_MODEL", "custom-reranker")
        monkeypatch.setenv("FOLIO_BATCH_SIZE", "4")
        monkeypatch.setenv("FOLIO_DEVICE", "cpu")
        monkeypatch.delenv("FOLIO_DB_PATH", raising=False)

        config = AppConfig.from_env()

        assert config.data_dir == tmp_path / "data"
        assert config.knowledge_dir == tmp_path / "notes"
        assert config.db_path == tmp_path / "data" / DB_FILENAME
        assert config.model_name == "custom-model"
        assert config.reranker_model == "custom-reranker"
        assert config.embed_batch_size == 4
        assert config.device == "cpu"

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "FOLIO_DATA_DIR",
            "FOLIO_KNOWLEDGE_DIR",
            "FOLIO_DB_PATH",
            "FOLIO_MODEL",
            "FOLIO_RERANKER_MODEL",
            "FOLIO_BATCH_SIZE",
            "FOLIO_DEVICE",
        ):
            monkeypatch.delenv(name, raising=False)

        config = AppConfig.from_env()

        assert config.model_name == DEFAULT_MODEL
        assert config.device is None
        assert config.knowledge_dir == Path.home() / "Folio"


class TestDefaultDataDir:
    """Platform-specific data directories."""

    def test_linux(self) -> None:
        with patch("folio.config.sys.platform", "linux"):
            assert _get_default_data_dir() == Path.home() / ".local" / "share" / "folio"

    def test_macos(self) -> None:
        with patch("folio.config.sys.platform", "darwin"):
            assert _get_default_data_dir() == Path.home() / "Library" / "Application Support" / "Folio"

    def test_windows(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LOCALAPPDATA", "/appdata")
        with patch("folio.config.sys.platform", "win32"):
            assert _get_default_data_dir() == Path("/appdata") / "Folio"
