"""Shared test fixtures."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

BASE = "http://gdetect.test"
TOKEN = "2b886d5f-aa81d629-4299e60b-41b728ba-9bcbbc00"

DETECT = f"{BASE}/api/lite/v2"
SYNDETECT = f"{BASE}/api/v1"


@pytest.fixture()
def sample_bytes() -> bytes:
    return b"MZ\x90\x00 false mirai sample"


@pytest.fixture()
def sample_sha256(sample_bytes: bytes) -> str:
    return hashlib.sha256(sample_bytes).hexdigest()


@pytest.fixture()
def sample_file(tmp_path: Path, sample_bytes: bytes) -> Path:
    path = tmp_path / "false_mirai"
    path.write_bytes(sample_bytes)
    return path
