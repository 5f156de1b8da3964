"""Shared fixtures: the scripted fake peer and a loguru capture sink."""

import sys
from pathlib import Path

import pytest
from loguru import logger

FAKE_PEER = Path(__file__).parent / "fixtures" / "fake_peer.py"


@pytest.fixture
def peer_command():
    """Argv for the scripted fake peer in the given mode."""

    def _command(mode: str = "normal") -> list[str]:
        return [sys.executable, "-u", str(FAKE_PEER), mode]

    return _command


@pytest.fixture
def log_records():
    """Capture loguru output as "LEVEL message" strings."""
    records: list[str] = []
    sink_id = logger.add(lambda msg: records.append(msg.rstrip("\n")), format="{level} {message}", level="DEBUG")
    yield records
    logger.remove(sink_id)
