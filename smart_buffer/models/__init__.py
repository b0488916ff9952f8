"""Data models for Smart Buffer."""
from .classification import ClassificationResult, Completeness, Urgency, UNKNOWN_INTENT, merge_entities
from .buffer import BufferEntry, BufferState, ConversationBuffer, text_size
from .message import AggregatedMessage, Decision, DecisionAction, InboundMessage, now_ms
from .engine_config import (
    BreakerSettings,
    BufferSettings,
    EngineConfig,
    MLSettings,
    PatternSet,
    TimingProfile,
)

__all__ = [
    'ClassificationResult', 'Completeness', 'Urgency', 'UNKNOWN_INTENT', 'merge_entities',
    'BufferEntry', 'BufferState', 'ConversationBuffer', 'text_size',
    'AggregatedMessage', 'Decision', 'DecisionAction', 'InboundMessage', 'now_ms',
    'BreakerSettings', 'BufferSettings', 'EngineConfig', 'MLSettings', 'PatternSet', 'TimingProfile',
]
