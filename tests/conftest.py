"""Shared fixtures for indexer tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "index.sqlite")


@pytest.fixture
def mappings_file(tmp_path: Path) -> Path:
    path = tmp_path / "mappings.csv"
    path.write_text("handle,domain\nalice.bsky.social,blog.example.com\n", encoding="utf-8")
    return path
