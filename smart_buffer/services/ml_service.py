"""
Client for the optional ML intent classification service.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from config.settings import MLConfig
from smart_buffer.utils import setup_logger, MLServiceError, MLTimeoutError


logger = setup_logger(__name__)


@dataclass
class MLPrediction:
    """Intent prediction returned by the ML service."""
    intent: str
    confidence: float
    entities: Dict[str, List[str]] = field(default_factory=dict)


class MLService:
    """HTTP client for `POST {text, model} -> {intent, confidence, entities}`."""

    def __init__(self, ml_config: MLConfig, session: Optional[requests.Session] = None):
        self.config = ml_config
        self.session = session or requests.Session()
        self.timeout = ml_config.timeout / 1000.0

        self.headers = {'Content-Type': 'application/json'}
        if ml_config.api_key:
            self.headers['Authorization'] = f"Bearer {ml_config.api_key}"

    def predict(self, text: str) -> MLPrediction:
        """
        Classify text with the ML model.

        Args:
            text: Message text

        Returns:
            MLPrediction

        Raises:
            MLTimeoutError: No answer within ML_TIMEOUT
            MLServiceError: Transport error, HTTP error or malformed response
        """
        if not self.config.service_url:
            raise MLServiceError("ML_SERVICE_URL is not configured")

        try:
            response = self.session.post(
                self.config.service_url,
                json={'text': text, 'model': self.config.model_name},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise MLTimeoutError(f"ML service timed out after {self.config.timeout}ms: {e}")
        except requests.RequestException as e:
            raise MLServiceError(f"ML service request failed: {e}")

        if response.status_code >= 400:
            raise MLServiceError(
                f"ML service returned HTTP {response.status_code}",
                details={'status_code': response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MLServiceError(f"ML service returned invalid JSON: {e}")

        return self._parse(data)

    def _parse(self, data) -> MLPrediction:
        if not isinstance(data, dict):
            raise MLServiceError("ML response must be a JSON object")

        intent = data.get('intent')
        if not isinstance(intent, str) or not intent:
            raise MLServiceError("ML response is missing 'intent'")

        try:
            confidence = float(data.get('confidence'))
        except (TypeError, ValueError):
            raise MLServiceError("ML response has no numeric 'confidence'")
        if not 0.0 <= confidence <= 1.0:
            raise MLServiceError(f"ML confidence out of range: {confidence}")

        raw_entities = data.get('entities') or {}
        if not isinstance(raw_entities, dict):
            raise MLServiceError("ML response 'entities' must be an object")

        entities = {}
        for kind, values in raw_entities.items():
            if not isinstance(values, list):
                values = [values]
            entities[kind] = [str(value) for value in values]

        logger.debug(f"ML prediction: intent={intent} confidence={confidence:.2f}")
        return MLPrediction(intent=intent.lower(), confidence=confidence, entities=entities)
