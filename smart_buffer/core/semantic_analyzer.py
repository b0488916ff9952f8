"""
Semantic analyzer: completeness, intent and entity classification.

One implementation for every industry; the behaviour comes entirely from the
pattern and urgency tables in EngineConfig. The optional ML service can refine
the intent but never the completeness, and any ML problem falls back to the
regex result.
"""
from typing import Dict, List, Optional

from smart_buffer.models import (
    ClassificationResult,
    Completeness,
    EngineConfig,
    UNKNOWN_INTENT,
    merge_entities,
)
from smart_buffer.services import MLService
from smart_buffer.core.circuit_breaker import CircuitBreaker
from smart_buffer.utils import (
    setup_logger,
    log_error_with_context,
    normalize_text,
    matching_form,
    preview,
    CircuitOpenError,
    MLServiceError,
)


logger = setup_logger(__name__)


class SemanticAnalyzer:
    """Pattern-driven message classifier with optional ML refinement."""

    def __init__(self,
                 engine_config: EngineConfig,
                 ml_service: Optional[MLService] = None,
                 ml_breaker: Optional[CircuitBreaker] = None):
        self.config = engine_config
        self.patterns = engine_config.patterns
        self.ml_service = ml_service if engine_config.ml.enabled else None
        self.ml_breaker = ml_breaker
        self.known_intents = {name for name, _ in self.patterns.intents}

        if ml_service is not None and not engine_config.ml.enabled:
            logger.info("ML service provided but ml.enabled is false, using regex only")

    def classify(self, text: str, prior_entities: Optional[Dict[str, List[str]]] = None) -> ClassificationResult:
        """
        Classify a message or an aggregated text.

        Args:
            text: Message text
            prior_entities: Entities already known for the conversation, merged first

        Returns:
            ClassificationResult (never raises)
        """
        normalized = normalize_text(text)
        lowered = matching_form(text)

        intent = self.detect_intent(lowered)
        result = ClassificationResult(
            completeness=self.detect_completeness(lowered),
            intent=intent,
            entities=merge_entities(prior_entities, self.extract_entities(normalized)),
            urgency=self.config.urgency_for(intent),
        )

        if self.ml_service is not None and normalized:
            result = self._refine_with_ml(normalized, result)

        logger.debug(
            f"Classified '{preview(normalized)}' -> {result.completeness.value}, "
            f"intent={result.intent}, urgency={result.urgency.value}, source={result.source}"
        )
        return result

    def detect_completeness(self, lowered: str) -> Completeness:
        """Complete patterns first, then fragments; unmatched text counts as complete."""
        if not lowered:
            return Completeness.FRAGMENT

        for pattern in self.patterns.complete:
            if pattern.search(lowered):
                return Completeness.COMPLETE

        for pattern in self.patterns.fragments:
            if pattern.search(lowered):
                return Completeness.FRAGMENT

        return Completeness.COMPLETE

    def detect_intent(self, lowered: str) -> str:
        for name, pattern in self.patterns.intents:
            if pattern.search(lowered):
                return name
        return UNKNOWN_INTENT

    def extract_entities(self, text: str) -> Dict[str, List[str]]:
        entities: Dict[str, List[str]] = {}
        for kind, pattern in self.patterns.entities:
            for match in pattern.finditer(text):
                value = match.group(0).strip()
                if not value:
                    continue
                bucket = entities.setdefault(kind, [])
                if value not in bucket:
                    bucket.append(value)
        return entities

    def _refine_with_ml(self, text: str, result: ClassificationResult) -> ClassificationResult:
        try:
            if self.ml_breaker is not None:
                prediction = self.ml_breaker.execute(self.ml_service.predict, text)
            else:
                prediction = self.ml_service.predict(text)
        except CircuitOpenError:
            logger.debug("ML circuit open, using regex classification")
            return result
        except MLServiceError as e:
            logger.warning(f"ML classification failed, using regex: {e.message}")
            return result
        except Exception as e:
            log_error_with_context(logger, e, {'component': 'ml_classification'})
            return result

        thresholds = self.config.ml
        if prediction.intent not in self.known_intents:
            logger.debug(f"ML intent '{prediction.intent}' is not configured, ignoring")
            return result

        if prediction.confidence >= thresholds.min_threshold:
            intent, source = prediction.intent, 'ml'
        elif prediction.confidence >= thresholds.fallback_threshold and result.intent == UNKNOWN_INTENT:
            intent, source = prediction.intent, 'ml+regex'
        else:
            logger.debug(f"ML confidence {prediction.confidence:.2f} too low, keeping regex intent")
            return result

        return ClassificationResult(
            completeness=result.completeness,
            intent=intent,
            entities=merge_entities(result.entities, prediction.entities),
            urgency=self.config.urgency_for(intent),
            source=source,
            confidence=prediction.confidence,
        )
