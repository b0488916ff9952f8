"""
Immutable engine configuration.

Built once from an industry preset (plus environment overrides) and handed to
every component at construction time. Patterns are compiled here so that a
malformed regex stops startup instead of failing per message.
"""
import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, Pattern, Tuple

from smart_buffer.models.classification import UNKNOWN_INTENT, Urgency
from smart_buffer.utils.exceptions import ConfigurationError, PatternCompilationError


# Fixed intent priority; preset-specific intents are tried after these in declared order
INTENT_PRIORITY = (
    'appointment',
    'cancellation',
    'modification',
    'information',
    'medical_query',
    'greeting',
    'farewell',
    'confirmation',
    'negation',
)

PATTERN_FLAGS = re.IGNORECASE | re.UNICODE


def compile_pattern(source: str, location: str) -> Pattern:
    """
    Compile one configured pattern.

    Raises:
        PatternCompilationError: Pattern is not a string or not a valid regex
    """
    if isinstance(source, re.Pattern):
        return source
    if not isinstance(source, str) or not source:
        raise PatternCompilationError(f"Pattern at {location} must be a non-empty string",
                                      details={'location': location})
    try:
        return re.compile(source, PATTERN_FLAGS)
    except re.error as e:
        raise PatternCompilationError(f"Invalid regex at {location}: {e}",
                                      details={'location': location, 'pattern': source})


@dataclass(frozen=True)
class PatternSet:
    """Compiled semantic pattern tables."""
    fragments: Tuple[Pattern, ...]
    complete: Tuple[Pattern, ...]
    intents: Tuple[Tuple[str, Pattern], ...]
    entities: Tuple[Tuple[str, Pattern], ...]

    @classmethod
    def from_dict(cls, patterns: Dict[str, Any]) -> 'PatternSet':
        fragments = patterns.get('fragments', [])
        complete = patterns.get('complete', [])
        if not isinstance(fragments, list) or not isinstance(complete, list):
            raise ConfigurationError("semantic.patterns.fragments and .complete must be lists")

        intents = patterns.get('intents', {})
        entities = patterns.get('entities', {})
        if not isinstance(intents, dict) or not isinstance(entities, dict):
            raise ConfigurationError("semantic.patterns.intents and .entities must be mappings")

        ordered_intents = [name for name in INTENT_PRIORITY if name in intents]
        ordered_intents += [name for name in intents if name not in INTENT_PRIORITY]

        return cls(
            fragments=tuple(compile_pattern(p, f'fragments[{i}]') for i, p in enumerate(fragments)),
            complete=tuple(compile_pattern(p, f'complete[{i}]') for i, p in enumerate(complete)),
            intents=tuple((name, compile_pattern(intents[name], f'intents.{name}'))
                          for name in ordered_intents),
            entities=tuple((kind, compile_pattern(pattern, f'entities.{kind}'))
                           for kind, pattern in entities.items()),
        )


@dataclass(frozen=True)
class TimingProfile:
    """Wait windows per urgency class (ms) and the buffer cap for a profile."""
    name: str
    urgent: int
    simple: int
    complex: int
    max_buffer: int

    def wait_for(self, urgency: Urgency) -> int:
        return {
            Urgency.URGENT: self.urgent,
            Urgency.SIMPLE: self.simple,
            Urgency.COMPLEX: self.complex,
        }[urgency]

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'TimingProfile':
        try:
            profile = cls(
                name=name,
                urgent=int(data['urgent']),
                simple=int(data['simple']),
                complex=int(data['complex']),
                max_buffer=int(data.get('maxBuffer', 3)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Timing profile '{name}' is invalid: {e}")
        if min(profile.urgent, profile.simple, profile.complex, profile.max_buffer) <= 0:
            raise ConfigurationError(f"Timing profile '{name}' values must be positive")
        return profile


@dataclass(frozen=True)
class BufferSettings:
    ttl_seconds: int = 300
    max_size: int = 10
    max_size_kb: int = 50
    sliding_ttl: bool = True
    separator: str = ' '
    key_prefix: str = 'buffer'

    @property
    def max_bytes(self) -> int:
        return self.max_size_kb * 1024


@dataclass(frozen=True)
class BreakerSettings:
    threshold: int = 3
    timeout_ms: int = 30000
    reset_timeout_ms: int = 60000

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> 'BreakerSettings':
        try:
            settings = cls(
                threshold=int(data.get('threshold', 3)),
                timeout_ms=int(data.get('timeout', 30000)),
                reset_timeout_ms=int(data.get('resetTimeout', 60000)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"circuitBreaker.{name} is invalid: {e}")
        if settings.threshold <= 0 or settings.timeout_ms <= 0:
            raise ConfigurationError(f"circuitBreaker.{name} threshold and timeout must be positive")
        return settings


@dataclass(frozen=True)
class MLSettings:
    enabled: bool = False
    min_threshold: float = 0.7
    fallback_threshold: float = 0.5


@dataclass(frozen=True)
class EngineConfig:
    """Everything the decision engine reads, frozen at startup."""
    name: str
    patterns: PatternSet
    urgency: Mapping[str, Urgency]
    timing: TimingProfile
    profiles: Mapping[str, TimingProfile]
    buffer: BufferSettings = field(default_factory=BufferSettings)
    store_breaker: BreakerSettings = field(default_factory=BreakerSettings)
    ml_breaker: BreakerSettings = field(default_factory=lambda: BreakerSettings(2, 60000, 300000))
    ml: MLSettings = field(default_factory=MLSettings)

    def urgency_for(self, intent: str) -> Urgency:
        return self.urgency.get(intent, self.urgency.get(UNKNOWN_INTENT, Urgency.COMPLEX))

    def with_profile(self, profile_name: str) -> 'EngineConfig':
        if profile_name not in self.profiles:
            raise ConfigurationError(
                f"Unknown timing profile '{profile_name}' (available: {', '.join(self.profiles)})")
        return replace(self, timing=self.profiles[profile_name])

    @classmethod
    def from_dict(cls, data: Dict[str, Any], profile: str = 'balanced') -> 'EngineConfig':
        """
        Build an EngineConfig from a preset dictionary.

        Args:
            data: Preset (see config.presets) or custom JSON document
            profile: Active timing profile name

        Returns:
            Frozen EngineConfig

        Raises:
            ConfigurationError: Missing sections or invalid values
            PatternCompilationError: A configured regex does not compile
        """
        for section in ('semantic', 'timing', 'buffer', 'circuitBreaker'):
            if not isinstance(data.get(section), dict):
                raise ConfigurationError(f"Configuration section '{section}' is missing")

        semantic = data['semantic']
        patterns = PatternSet.from_dict(semantic.get('patterns') or {})

        urgency = {}
        for intent, value in (semantic.get('urgency') or {}).items():
            try:
                urgency[intent] = Urgency(str(value).lower())
            except ValueError:
                raise ConfigurationError(f"semantic.urgency.{intent} has unknown class '{value}'")
        urgency.setdefault(UNKNOWN_INTENT, Urgency.COMPLEX)

        raw_profiles = data['timing'].get('profiles') or {}
        if not raw_profiles:
            raise ConfigurationError("No timing profiles defined")
        profiles = {name: TimingProfile.from_dict(name, values) for name, values in raw_profiles.items()}
        if profile not in profiles:
            raise ConfigurationError(
                f"Unknown timing profile '{profile}' (available: {', '.join(profiles)})")

        raw_buffer = data['buffer']
        try:
            buffer = BufferSettings(
                ttl_seconds=int(raw_buffer.get('ttl', 300)),
                max_size=int(raw_buffer.get('maxSize', 10)),
                max_size_kb=int(raw_buffer.get('maxSizeKB', 50)),
                sliding_ttl=bool(raw_buffer.get('slidingTTL', True)),
                separator=str(raw_buffer.get('separator', ' ')),
                key_prefix=str(raw_buffer.get('keyPrefix', 'buffer')),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Buffer configuration is invalid: {e}")
        if min(buffer.ttl_seconds, buffer.max_size, buffer.max_size_kb) <= 0:
            raise ConfigurationError("Buffer ttl, maxSize and maxSizeKB must be positive")

        breakers = data['circuitBreaker']
        raw_ml = data.get('ml') or {}
        confidence = raw_ml.get('confidence') or {}
        ml = MLSettings(
            enabled=bool(raw_ml.get('enabled', False)),
            min_threshold=float(confidence.get('minThreshold', 0.7)),
            fallback_threshold=float(confidence.get('fallbackThreshold', 0.5)),
        )
        if ml.fallback_threshold > ml.min_threshold:
            raise ConfigurationError("ml.confidence.fallbackThreshold cannot exceed minThreshold")

        return cls(
            name=data.get('name', 'custom'),
            patterns=patterns,
            urgency=MappingProxyType(urgency),
            timing=profiles[profile],
            profiles=MappingProxyType(profiles),
            buffer=buffer,
            store_breaker=BreakerSettings.from_dict('redis', breakers.get('redis') or {}),
            ml_breaker=BreakerSettings.from_dict('ml', breakers.get('ml') or {}),
            ml=ml,
        )
