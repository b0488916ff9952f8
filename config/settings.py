"""
Configuration management for Smart Buffer.
Centralizes all environment variables and application settings.
"""
import os
from typing import Optional
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() == 'true'


def _env_int(name: str) -> Optional[int]:
    """Read an optional integer override; unset or blank means 'use the preset'."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return int(value)


@dataclass
class RedisConfig:
    """Redis backing store configuration settings."""
    url: Optional[str] = os.getenv('REDIS_URL')
    password: Optional[str] = os.getenv('REDIS_PASSWORD') or None
    db: int = int(os.getenv('REDIS_DB', '0'))
    socket_timeout: float = float(os.getenv('REDIS_SOCKET_TIMEOUT', '0.5'))
    connect_timeout: float = float(os.getenv('REDIS_CONNECT_TIMEOUT', '2.0'))


@dataclass
class BufferEnvConfig:
    """Buffer overrides applied on top of the industry preset."""
    ttl: Optional[int] = _env_int('BUFFER_TTL')
    max_size: Optional[int] = _env_int('BUFFER_MAX_SIZE')
    max_size_kb: Optional[int] = _env_int('BUFFER_MAX_SIZE_KB')


@dataclass
class TimingEnvConfig:
    """Timing profile selection and per-urgency overrides (milliseconds)."""
    profile: str = os.getenv('TIMING_PROFILE', 'balanced')
    urgent: Optional[int] = _env_int('TIMING_URGENT')
    simple: Optional[int] = _env_int('TIMING_SIMPLE')
    complex: Optional[int] = _env_int('TIMING_COMPLEX')


@dataclass
class CircuitBreakerEnvConfig:
    """Circuit breaker overrides for the store and ML dependencies."""
    redis_threshold: Optional[int] = _env_int('CIRCUIT_BREAKER_REDIS_THRESHOLD')
    redis_timeout: Optional[int] = _env_int('CIRCUIT_BREAKER_REDIS_TIMEOUT')
    ml_threshold: Optional[int] = _env_int('CIRCUIT_BREAKER_ML_THRESHOLD')
    ml_timeout: Optional[int] = _env_int('CIRCUIT_BREAKER_ML_TIMEOUT')


@dataclass
class MLConfig:
    """Optional ML intent service configuration settings."""
    enabled: bool = _env_flag('ML_ENABLED')
    service_url: Optional[str] = os.getenv('ML_SERVICE_URL') or None
    api_key: Optional[str] = os.getenv('ML_API_KEY') or None
    model_name: str = os.getenv('ML_MODEL_NAME', 'consultorio-intent-v1')
    timeout: int = int(os.getenv('ML_TIMEOUT', '2000'))

    def __post_init__(self):
        if self.enabled and not self.service_url:
            raise ValueError("ML_SERVICE_URL must be set when ML_ENABLED is true")


@dataclass
class RateLimitConfig:
    """Per-conversation rate limiting and redelivery detection."""
    enabled: bool = _env_flag('RATE_LIMIT_ENABLED', 'true')
    window_ms: int = int(os.getenv('RATE_LIMIT_WINDOW', '60000'))
    max_requests: int = int(os.getenv('RATE_LIMIT_MAX_REQUESTS', '100'))
    duplicate_window_ms: int = int(os.getenv('DUPLICATE_WINDOW', '2000'))


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str = os.getenv('ENVIRONMENT', 'development')
    debug: bool = _env_flag('SMART_BUFFER_DEBUG')
    log_level: str = os.getenv('LOG_LEVEL', 'INFO')
    host: str = os.getenv('HOST', '0.0.0.0')
    port: int = int(os.getenv('PORT', '5000'))

    # Industry preset: medical, ecommerce, generic or custom
    industry: str = os.getenv('INDUSTRY_CONFIG', os.getenv('SMART_BUFFER_CONFIG', 'medical'))
    custom_config_path: Optional[str] = os.getenv('CUSTOM_CONFIG_PATH') or None

    # Per-component debug switches
    debug_semantic_analysis: bool = _env_flag('DEBUG_SEMANTIC_ANALYSIS')
    debug_timing_decisions: bool = _env_flag('DEBUG_TIMING_DECISIONS')
    debug_buffer_operations: bool = _env_flag('DEBUG_BUFFER_OPERATIONS')

    # Sub-configurations
    redis: RedisConfig = None
    buffer: BufferEnvConfig = None
    timing: TimingEnvConfig = None
    circuit_breaker: CircuitBreakerEnvConfig = None
    ml: MLConfig = None
    rate_limit: RateLimitConfig = None

    def __post_init__(self):
        self.redis = self.redis or RedisConfig()
        self.buffer = self.buffer or BufferEnvConfig()
        self.timing = self.timing or TimingEnvConfig()
        self.circuit_breaker = self.circuit_breaker or CircuitBreakerEnvConfig()
        self.ml = self.ml or MLConfig()
        self.rate_limit = self.rate_limit or RateLimitConfig()


# Global configuration instance
config = AppConfig()
