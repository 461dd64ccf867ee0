"""Test configuration and fixtures."""

from __future__ import annotations

import io

import pytest

from depflow import Taskflow


@pytest.fixture
def out() -> io.StringIO:
    """Provide an in-memory output stream."""
    return io.StringIO()


@pytest.fixture
def flow(out: io.StringIO) -> Taskflow:
    """Provide a taskflow writing into ``out``."""
    return Taskflow(output=out)


@pytest.fixture(autouse=True)
def _clean_depflow_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings tests independent of the developer's environment."""
    monkeypatch.delenv("DEPFLOW_LOG_LEVEL", raising=False)
    monkeypatch.delenv("DEPFLOW_LOG_FORMAT", raising=False)
