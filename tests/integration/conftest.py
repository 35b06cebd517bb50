"""
Integration Test Configuration
Provides fixtures for end-to-end request scenarios
"""

from pathlib import Path

import pytest

from sevak.delivery import RecordingDeliveryChannel
from sevak.metrics import InMemoryMetrics

from tests.fixtures.fakes import FakeClock, FakeInferenceService

PROJECT_ROOT = Path(__file__).parent.parent.parent


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingDeliveryChannel()


@pytest.fixture
def metrics():
    return InMemoryMetrics()


@pytest.fixture
def inference():
    return FakeInferenceService(answer="PM-KISAN pays Rs 6000 a year to eligible farmer families.")


@pytest.fixture
def knowledge_path():
    """Sample knowledge base shipped with the repository"""
    return PROJECT_ROOT / "data" / "knowledge.yaml"
