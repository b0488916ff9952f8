"""Utility modules for Smart Buffer."""
from .logger import setup_logger, log_conversation_event, log_error_with_context
from .exceptions import (
    SmartBufferException,
    ConfigurationError,
    PatternCompilationError,
    StoreUnavailableError,
    CircuitOpenError,
    MLServiceError,
    MLTimeoutError,
    ValidationError,
    InvalidMessageError,
    RateLimitError,
)
from .text_utils import normalize_text, matching_form, preview

__all__ = [
    'setup_logger',
    'log_conversation_event',
    'log_error_with_context',
    'SmartBufferException',
    'ConfigurationError',
    'PatternCompilationError',
    'StoreUnavailableError',
    'CircuitOpenError',
    'MLServiceError',
    'MLTimeoutError',
    'ValidationError',
    'InvalidMessageError',
    'RateLimitError',
    'normalize_text',
    'matching_form',
    'preview',
]
