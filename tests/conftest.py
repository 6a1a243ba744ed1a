"""Shared fixtures: in-memory settings store and pipeline session.

No external services are needed; HTTP calls are mocked per test.
"""

import pytest

from lumiverse.config import PipelineSettings, SettingsStore
from lumiverse.pipeline.session import PipelineSession


def make_window(count: int, user_every: int = 2) -> list[dict]:
    """Alternating user / assistant messages numbered from 0."""
    return [
        {"is_user": i % user_every == 0, "name": "User" if i % user_every == 0 else "Lumia", "mes": f"msg {i}"}
        for i in range(count)
    ]


@pytest.fixture
def store() -> SettingsStore:
    """Function-scoped settings store with defaults (nothing enabled)."""
    return SettingsStore(PipelineSettings())


@pytest.fixture
def session(store) -> PipelineSession:
    return PipelineSession(store)
