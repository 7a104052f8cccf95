"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Iterator

import pytest

from confab.services import telemetry


@pytest.fixture
def recorder() -> Iterator[telemetry.EventRecorder]:
    """Capture every session telemetry event for the duration of a test."""

    with telemetry.EventRecorder() as capture:
        yield capture


@pytest.fixture
def sample_transcript() -> str:
    return "User> hi\n\nAssistant> hello\n\nUser> and now?\n\nAssistant> still here"
