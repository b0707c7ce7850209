"""Pytest configuration and fixtures for agent-relay tests."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from agent_relay.daemon.state import reset_state


@pytest.fixture
def anyio_backend() -> str:
    """Run anyio tests on asyncio only; the code under test uses asyncio directly."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_daemon_state() -> Iterator[None]:
    """Reset daemon state before and after each test."""
    reset_state()
    yield
    reset_state()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A temporary project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root
