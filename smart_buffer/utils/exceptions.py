"""
Custom exceptions for Smart Buffer.
Dependency failures are absorbed by the engine; configuration and input errors surface.
"""


class SmartBufferException(Exception):
    """Base exception for all Smart Buffer related errors."""

    def __init__(self, message: str, error_code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(SmartBufferException):
    """Raised when there's a configuration issue."""
    pass


class PatternCompilationError(ConfigurationError):
    """Raised when a configured regex pattern cannot be compiled."""
    pass


class StoreUnavailableError(SmartBufferException):
    """Raised when the backing store cannot serve a buffer operation."""
    pass


class CircuitOpenError(SmartBufferException):
    """Raised when a circuit breaker refuses a call without invoking it."""
    pass


class MLServiceError(SmartBufferException):
    """Raised when the ML classification service fails."""
    pass


class MLTimeoutError(MLServiceError):
    """Raised when the ML classification service does not answer in time."""
    pass


class ValidationError(SmartBufferException):
    """Raised when data validation fails."""
    pass


class InvalidMessageError(ValidationError):
    """Raised when an inbound message is missing its chat id or text."""
    pass


class RateLimitError(SmartBufferException):
    """Raised when rate limits are exceeded."""
    pass
