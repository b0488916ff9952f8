"""
Engine assembly.

Builds the frozen EngineConfig from the industry preset plus environment
overrides and wires the components together in dependency order.
"""
from dataclasses import replace
from typing import Optional

from config import AppConfig
from config.presets import load_preset
from smart_buffer.models import EngineConfig
from smart_buffer.services import BufferStore, InMemoryStore, MLService, RedisStore
from smart_buffer.core.buffer_manager import BufferManager
from smart_buffer.core.circuit_breaker import CircuitBreaker
from smart_buffer.core.message_aggregator import MessageAggregator
from smart_buffer.core.orchestrator import Orchestrator
from smart_buffer.core.semantic_analyzer import SemanticAnalyzer
from smart_buffer.core.timing_policy import TimingPolicy
from smart_buffer.utils import setup_logger, ConfigurationError


logger = setup_logger(__name__)


def build_engine_config(app_config: AppConfig) -> EngineConfig:
    """
    Load the configured preset and apply environment overrides.

    Args:
        app_config: Application configuration

    Returns:
        Frozen EngineConfig

    Raises:
        ConfigurationError: Unknown preset, unreadable custom file or invalid values
    """
    try:
        preset = load_preset(app_config.industry, app_config.custom_config_path)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not load preset '{app_config.industry}': {e}",
                                 details={'industry': app_config.industry})

    if app_config.ml.enabled:
        preset.setdefault('ml', {})['enabled'] = True

    engine_config = EngineConfig.from_dict(preset, profile=app_config.timing.profile)

    timing_overrides = {
        key: value for key, value in (
            ('urgent', app_config.timing.urgent),
            ('simple', app_config.timing.simple),
            ('complex', app_config.timing.complex),
        ) if value is not None
    }
    if timing_overrides:
        engine_config = replace(engine_config, timing=replace(engine_config.timing, **timing_overrides))

    buffer_overrides = {
        key: value for key, value in (
            ('ttl_seconds', app_config.buffer.ttl),
            ('max_size', app_config.buffer.max_size),
            ('max_size_kb', app_config.buffer.max_size_kb),
        ) if value is not None
    }
    if buffer_overrides:
        engine_config = replace(engine_config, buffer=replace(engine_config.buffer, **buffer_overrides))

    breakers = app_config.circuit_breaker
    for attribute, threshold, timeout in (
        ('store_breaker', breakers.redis_threshold, breakers.redis_timeout),
        ('ml_breaker', breakers.ml_threshold, breakers.ml_timeout),
    ):
        overrides = {
            key: value for key, value in (('threshold', threshold), ('timeout_ms', timeout))
            if value is not None
        }
        if overrides:
            engine_config = replace(engine_config, **{
                attribute: replace(getattr(engine_config, attribute), **overrides)
            })

    _check_overrides(engine_config)

    logger.info(
        f"Engine configured: preset={engine_config.name}, profile={engine_config.timing.name}, "
        f"ml_enabled={engine_config.ml.enabled}"
    )
    return engine_config


def _check_overrides(engine_config: EngineConfig) -> None:
    timing = engine_config.timing
    if min(timing.urgent, timing.simple, timing.complex) <= 0:
        raise ConfigurationError("TIMING_URGENT, TIMING_SIMPLE and TIMING_COMPLEX must be positive")

    buffer = engine_config.buffer
    if min(buffer.ttl_seconds, buffer.max_size, buffer.max_size_kb) <= 0:
        raise ConfigurationError("BUFFER_TTL, BUFFER_MAX_SIZE and BUFFER_MAX_SIZE_KB must be positive")

    for breaker in (engine_config.store_breaker, engine_config.ml_breaker):
        if breaker.threshold <= 0 or breaker.timeout_ms <= 0:
            raise ConfigurationError("CIRCUIT_BREAKER_* thresholds and timeouts must be positive")


def create_store(app_config: AppConfig) -> BufferStore:
    """Redis when REDIS_URL is set, otherwise a process-local store."""
    if app_config.redis.url:
        return RedisStore(app_config.redis)

    logger.warning("REDIS_URL not set, buffering in process memory (single worker only)")
    return InMemoryStore()


def create_orchestrator(app_config: AppConfig,
                        engine_config: Optional[EngineConfig] = None,
                        store: Optional[BufferStore] = None,
                        ml_service: Optional[MLService] = None) -> Orchestrator:
    """
    Wire up the decision engine.

    Args:
        app_config: Application configuration
        engine_config: Pre-built engine configuration (built from app_config when omitted)
        store: Backing store override
        ml_service: ML client override

    Returns:
        Ready Orchestrator
    """
    engine_config = engine_config or build_engine_config(app_config)
    store = store or create_store(app_config)

    ml_breaker = None
    if engine_config.ml.enabled:
        ml_service = ml_service or MLService(app_config.ml)
        ml_breaker = CircuitBreaker('ml', engine_config.ml_breaker)

    analyzer = SemanticAnalyzer(engine_config, ml_service=ml_service, ml_breaker=ml_breaker)
    buffer_manager = BufferManager(
        store,
        engine_config.buffer,
        CircuitBreaker('store', engine_config.store_breaker),
    )
    timing_policy = TimingPolicy(engine_config.timing, max_size=engine_config.buffer.max_size)
    aggregator = MessageAggregator(analyzer, separator=engine_config.buffer.separator)

    return Orchestrator(analyzer, buffer_manager, timing_policy, aggregator)
