from __future__ import annotations

from taskflow.config import Settings
from taskflow.database import _engine_kwargs


def test_sqlite_engine_allows_cross_thread_use() -> None:
    config = Settings(DATABASE_URL="sqlite:///./local.db")

    assert config.is_sqlite is True
    assert _engine_kwargs(config) == {"connect_args": {"check_same_thread": False}}


def test_server_database_engine_uses_pool_settings() -> None:
    config = Settings(
        DATABASE_URL="postgresql://taskflow:secret@db:5432/taskflow",
        DATABASE_POOL_SIZE=5,
        DATABASE_MAX_OVERFLOW=2,
    )

    assert config.is_sqlite is False
    assert _engine_kwargs(config) == {"pool_size": 5, "max_overflow": 2, "pool_pre_ping": True}


def test_cors_origins_are_split_and_trimmed() -> None:
    config = Settings(ALLOWED_ORIGINS="https://app.example.com, https://admin.example.com ,")

    assert config.cors_origins == ["https://app.example.com", "https://admin.example.com"]
