"""
Test configuration and fixtures for Smart Buffer.
"""
import pytest
from unittest.mock import Mock
import os

# Set test environment
os.environ.update({
    'ENVIRONMENT': 'test',
    'LOG_LEVEL': 'DEBUG',
    'INDUSTRY_CONFIG': 'medical',
    'TIMING_PROFILE': 'balanced',
    'REDIS_URL': '',
    'ML_ENABLED': 'false',
    'BUFFER_TTL': '',
    'BUFFER_MAX_SIZE': '',
    'BUFFER_MAX_SIZE_KB': '',
    'TIMING_URGENT': '',
    'TIMING_SIMPLE': '',
    'TIMING_COMPLEX': '',
    'RATE_LIMIT_ENABLED': 'true',
})

from config.presets import load_preset
from smart_buffer.models import BreakerSettings, EngineConfig
from smart_buffer.services import InMemoryStore, MLService
from smart_buffer.core import (
    BufferManager,
    CircuitBreaker,
    MessageAggregator,
    Orchestrator,
    SemanticAnalyzer,
    TimingPolicy,
)


class FakeClock:
    """Manually advanced clock; starts at an arbitrary epoch in milliseconds."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def ms(self) -> int:
        return self.now

    def seconds(self) -> float:
        return self.now / 1000.0

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine_config():
    """Medical preset with the balanced profile."""
    return EngineConfig.from_dict(load_preset('medical'), profile='balanced')


@pytest.fixture
def analyzer(engine_config):
    return SemanticAnalyzer(engine_config)


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock.seconds)


@pytest.fixture
def store_breaker(clock):
    return CircuitBreaker('store', BreakerSettings(3, 30000, 60000), clock=clock.seconds)


@pytest.fixture
def buffer_manager(store, engine_config, store_breaker, clock):
    return BufferManager(store, engine_config.buffer, store_breaker, clock=clock.ms)


@pytest.fixture
def make_orchestrator(engine_config, clock):
    """Build an orchestrator around any store, sharing the fake clock."""

    def _make(store=None, config=None, analyzer=None):
        config = config or engine_config
        store = store if store is not None else InMemoryStore(clock=clock.seconds)
        analyzer = analyzer or SemanticAnalyzer(config)
        manager = BufferManager(
            store,
            config.buffer,
            CircuitBreaker('store', config.store_breaker, clock=clock.seconds),
            clock=clock.ms,
        )
        return Orchestrator(
            analyzer,
            manager,
            TimingPolicy(config.timing, max_size=config.buffer.max_size),
            MessageAggregator(analyzer, separator=config.buffer.separator),
            clock=clock.ms,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator, store):
    return make_orchestrator(store=store)


@pytest.fixture
def mock_ml_service():
    """Mock ML service for testing."""
    return Mock(spec=MLService)
