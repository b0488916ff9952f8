"""Core components for Smart Buffer."""
from .circuit_breaker import CircuitBreaker, CircuitState, CircuitStatus
from .semantic_analyzer import SemanticAnalyzer
from .buffer_manager import BufferManager
from .timing_policy import TimingAction, TimingDecision, TimingPolicy
from .message_aggregator import MessageAggregator, aggregation_key
from .message_gate import MessageGate, GateStats
from .orchestrator import Orchestrator, EngineStats
from .factory import build_engine_config, create_orchestrator, create_store

__all__ = [
    'CircuitBreaker', 'CircuitState', 'CircuitStatus',
    'SemanticAnalyzer',
    'BufferManager',
    'TimingAction', 'TimingDecision', 'TimingPolicy',
    'MessageAggregator', 'aggregation_key',
    'MessageGate', 'GateStats',
    'Orchestrator', 'EngineStats',
    'build_engine_config', 'create_orchestrator', 'create_store',
]
