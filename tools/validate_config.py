"""
Configuration validator for Smart Buffer.

Checks the environment, the selected industry preset and Redis connectivity
before a deployment. Exits with status 1 when any error was found.

Usage:
    python tools/validate_config.py
"""
import os
import re
import sys
import uuid
from pathlib import Path

import redis

sys.path.append(str(Path(__file__).resolve().parent.parent))

from config import config, AppConfig
from config.presets import load_preset
from smart_buffer.core import SemanticAnalyzer, build_engine_config
from smart_buffer.models import EngineConfig
from smart_buffer.utils import ConfigurationError


GREEN = '\033[32m'
YELLOW = '\033[33m'
RED = '\033[31m'
BLUE = '\033[34m'
RESET = '\033[0m'

REDIS_URL_PATTERN = re.compile(r'^rediss?://.+')
NUMERIC_VARS = ('BUFFER_TTL', 'BUFFER_MAX_SIZE', 'BUFFER_MAX_SIZE_KB',
                'TIMING_URGENT', 'TIMING_SIMPLE', 'TIMING_COMPLEX')

# Sanity samples for the built-in presets
SAMPLE_MESSAGES = {
    'medical': [('quiero un turno', 'fragment'), ('Hola doctor', 'complete')],
    'ecommerce': [('quiero comprar', 'fragment'), ('¿tienen envío gratis?', 'complete')],
}


def log(message: str, color: str = RESET):
    print(f"{color}{message}{RESET}")


class ConfigValidator:
    """Collects pass/warning/error results across all checks."""

    def __init__(self, app_config: AppConfig):
        self.config = app_config
        self.errors = []
        self.warnings = []
        self.checks = 0
        self.passed = 0

    def check(self, condition: bool, success_msg: str, error_msg: str, is_warning: bool = False) -> bool:
        self.checks += 1

        if condition:
            self.passed += 1
            log(f"OK    {success_msg}", GREEN)
            return True

        if is_warning:
            self.warnings.append(error_msg)
            log(f"WARN  {error_msg}", YELLOW)
        else:
            self.errors.append(error_msg)
            log(f"FAIL  {error_msg}", RED)
        return False

    def validate_environment(self):
        log("\nValidating environment configuration...", BLUE)

        self.check(Path('.env').exists(), '.env file found',
                   '.env file is missing (copy from .env.example)', is_warning=True)

        if self.check(bool(self.config.redis.url), 'REDIS_URL is set',
                      'REDIS_URL is not set, buffers will live in process memory', is_warning=True):
            self.check(bool(REDIS_URL_PATTERN.match(self.config.redis.url)),
                       'Redis URL format is valid',
                       'Redis URL format is invalid (should be redis://host:port)', is_warning=True)

        for name in NUMERIC_VARS:
            raw = os.getenv(name)
            if raw:
                self.check(raw.isdigit() and int(raw) > 0,
                           f"{name} is a valid number ({raw})",
                           f"{name} is not a valid positive number")

        if self.config.ml.enabled:
            self.check(bool(self.config.ml.api_key), 'ML_API_KEY is set',
                       'ML_ENABLED is true but ML_API_KEY is empty', is_warning=True)

    def validate_preset(self) -> EngineConfig:
        log(f"\nValidating preset '{self.config.industry}'...", BLUE)

        try:
            preset = load_preset(self.config.industry, self.config.custom_config_path)
        except (OSError, ValueError) as e:
            self.check(False, '', f"Preset could not be loaded: {e}")
            return None

        for section in ('semantic', 'timing', 'buffer', 'circuitBreaker'):
            self.check(isinstance(preset.get(section), dict),
                       f"Configuration section '{section}' is present",
                       f"Configuration section '{section}' is missing")

        patterns = (preset.get('semantic') or {}).get('patterns') or {}
        self.check(bool(patterns.get('fragments')), 'Fragment patterns configured',
                   'No fragment patterns configured, every message will be treated as complete',
                   is_warning=True)
        self.check(bool(patterns.get('intents')), 'Intent patterns configured',
                   'No intent patterns configured', is_warning=True)

        try:
            engine_config = build_engine_config(self.config)
        except ConfigurationError as e:
            self.check(False, '', f"Engine configuration is invalid: {e.message}")
            return None

        self.check(True, 'All patterns compile', '')
        return engine_config

    def validate_timing(self, engine_config: EngineConfig):
        log("\nValidating timing profiles...", BLUE)

        for profile in engine_config.profiles.values():
            self.check(profile.urgent <= profile.simple <= profile.complex,
                       f"Profile '{profile.name}' waits are ordered urgent <= simple <= complex",
                       f"Profile '{profile.name}' waits are not ordered urgent <= simple <= complex",
                       is_warning=True)

        timing = engine_config.timing
        self.check(timing.max_buffer <= engine_config.buffer.max_size,
                   f"Active profile '{timing.name}' maxBuffer fits the buffer limit",
                   f"Profile maxBuffer {timing.max_buffer} exceeds buffer maxSize "
                   f"{engine_config.buffer.max_size}; maxSize wins",
                   is_warning=True)

    def validate_samples(self, engine_config: EngineConfig):
        samples = SAMPLE_MESSAGES.get(self.config.industry.lower())
        if not samples:
            return

        log("\nClassifying sample messages...", BLUE)
        analyzer = SemanticAnalyzer(engine_config)
        for text, expected in samples:
            result = analyzer.classify(text)
            self.check(result.completeness.value == expected,
                       f"'{text}' -> {expected}",
                       f"'{text}' classified as {result.completeness.value}, expected {expected}",
                       is_warning=True)

    def validate_redis(self):
        log("\nValidating Redis connection...", BLUE)

        if not self.config.redis.url:
            self.check(False, '', 'Cannot test Redis, REDIS_URL not configured', is_warning=True)
            return

        key = f"smart-buffer:validate:{uuid.uuid4().hex}"
        try:
            client = redis.Redis.from_url(
                self.config.redis.url,
                db=self.config.redis.db,
                password=self.config.redis.password,
                socket_connect_timeout=5,
            )
            client.set(key, 'validation')
            value = client.get(key)
            client.delete(key)
            self.check(value == b'validation', 'Redis connection and operations work correctly',
                       'Redis operations failed')

            client.setex(key, 5, 'ttl')
            remaining = client.ttl(key)
            client.delete(key)
            self.check(remaining is not None and remaining > 0, 'Redis TTL functionality works',
                       'Redis TTL functionality failed')
        except redis.RedisError as e:
            self.check(False, '', f"Redis connection failed: {e}")

    def run(self) -> bool:
        self.validate_environment()
        engine_config = self.validate_preset()
        if engine_config is not None:
            self.validate_timing(engine_config)
            self.validate_samples(engine_config)
        self.validate_redis()

        log(f"\n{self.passed}/{self.checks} checks passed, "
            f"{len(self.warnings)} warning(s), {len(self.errors)} error(s)",
            GREEN if not self.errors else RED)
        return not self.errors


def main() -> int:
    validator = ConfigValidator(config)
    return 0 if validator.run() else 1


if __name__ == "__main__":
    sys.exit(main())
