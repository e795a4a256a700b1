"""Shared fixtures: mocked ports and reference time."""

from unittest.mock import AsyncMock

import pytest

from factories import REFERENCE_NOW
from race.common.schemas import DataSharing


@pytest.fixture
def now():
    return REFERENCE_NOW


@pytest.fixture
def embedding_port():
    port = AsyncMock()
    port.embed.return_value = [0.1, 0.2, 0.3]
    return port


@pytest.fixture
def vector_port():
    port = AsyncMock()
    port.query.return_value = []
    return port


@pytest.fixture
def event_port():
    port = AsyncMock()
    port.get_events.return_value = []
    return port


@pytest.fixture
def generation_port():
    port = AsyncMock()
    port.complete.return_value = "Here is what I found."
    return port


@pytest.fixture
def all_sharing():
    return DataSharing(
        share_health=True,
        share_location=True,
        share_activities=True,
        share_voice_notes=True,
        share_photos=True,
    )
