"""Service layer for Smart Buffer."""
from .store import BufferStore, RedisStore, InMemoryStore
from .ml_service import MLService, MLPrediction

__all__ = ['BufferStore', 'RedisStore', 'InMemoryStore', 'MLService', 'MLPrediction']
