"""
Tests for the semantic analyzer.
"""
import pytest

from config.presets import load_preset
from smart_buffer.core import CircuitBreaker, SemanticAnalyzer
from smart_buffer.models import BreakerSettings, Completeness, EngineConfig, Urgency
from smart_buffer.services.ml_service import MLPrediction
from smart_buffer.utils import MLServiceError, MLTimeoutError, PatternCompilationError


def _ml_config(min_threshold=0.7, fallback_threshold=0.5):
    preset = load_preset('medical')
    preset['ml'] = {
        'enabled': True,
        'confidence': {'minThreshold': min_threshold, 'fallbackThreshold': fallback_threshold},
    }
    return EngineConfig.from_dict(preset)


class TestCompleteness:
    """Fragment / complete detection with the medical preset."""

    @pytest.mark.parametrize('text', [
        'quiero un turno',
        'quiero',
        'un',
        'turno',
        'tengo una consulta y',
        'me duele',
        'estaba pensando...',
    ])
    def test_fragments(self, analyzer, text):
        assert analyzer.classify(text).completeness is Completeness.FRAGMENT

    @pytest.mark.parametrize('text', [
        'Hola doctor',
        'para mañana en la mañana',
        'quiero un turno para el lunes',
        '¿atienden los sábados?',
        'muchas gracias!',
    ])
    def test_complete(self, analyzer, text):
        assert analyzer.classify(text).completeness is Completeness.COMPLETE

    def test_unmatched_text_defaults_to_complete(self, analyzer):
        assert analyzer.classify('el perro ladra fuerte').completeness is Completeness.COMPLETE

    def test_empty_text_is_fragment(self, analyzer):
        result = analyzer.classify('   ')
        assert result.completeness is Completeness.FRAGMENT
        assert result.intent == 'unknown'

    def test_whitespace_and_case_do_not_matter(self, analyzer):
        assert analyzer.classify('  QUIERO   un turno ').completeness is Completeness.FRAGMENT


class TestIntentAndUrgency:
    """Intent priority and urgency mapping."""

    def test_appointment_is_urgent(self, analyzer):
        result = analyzer.classify('quiero un turno')
        assert result.intent == 'appointment'
        assert result.urgency is Urgency.URGENT

    def test_greeting_is_simple(self, analyzer):
        result = analyzer.classify('Hola doctor')
        assert result.intent == 'greeting'
        assert result.urgency is Urgency.SIMPLE

    def test_unknown_is_complex(self, analyzer):
        result = analyzer.classify('para mañana en la mañana')
        assert result.intent == 'unknown'
        assert result.urgency is Urgency.COMPLEX

    def test_priority_order_wins(self, analyzer):
        # Mentions both a greeting and an appointment; appointment ranks higher
        assert analyzer.classify('hola, quiero un turno para hoy').intent == 'appointment'
        # Cancellation outranks modification
        assert analyzer.classify('quiero cancelar o cambiar la cita').intent == 'appointment'
        assert analyzer.classify('quiero cancelar o cambiar').intent == 'cancellation'

    def test_medical_query(self, analyzer):
        result = analyzer.classify('me duele la cabeza desde ayer')
        assert result.intent == 'medical_query'
        assert result.urgency is Urgency.COMPLEX

    def test_word_bounded_intents(self, analyzer):
        # "no" inside "noche" or "nosotros" must not count as a negation
        assert analyzer.classify('esta noche').intent == 'unknown'
        assert analyzer.classify('nosotros vamos').intent == 'unknown'


class TestEntities:
    """Entity extraction."""

    def test_date_entity_deduplicated(self, analyzer):
        result = analyzer.classify('para mañana en la mañana')
        assert result.entities['date'] == ['mañana']

    def test_multiple_kinds(self, analyzer):
        result = analyzer.classify('Tengo OSDE, mi DNI es 30123456, el 12/05/2024 a las 10:30')
        assert result.entities['insurance'] == ['OSDE']
        assert '30123456' in result.entities['dni']
        assert result.entities['date'] == ['12/05/2024']
        assert result.entities['time'] == ['10:30']

    def test_entities_keep_original_case(self, analyzer):
        assert analyzer.classify('El Martes puedo').entities['date'] == ['Martes']

    def test_prior_entities_merged_first(self, analyzer):
        result = analyzer.classify('el lunes', prior_entities={'date': ['hoy'], 'dni': ['1234567']})
        assert result.entities['date'] == ['hoy', 'lunes']
        assert result.entities['dni'] == ['1234567']

    def test_no_entities(self, analyzer):
        assert analyzer.classify('hola').entities == {}


def test_classification_is_idempotent(analyzer):
    text = 'quiero un turno para el lunes 10:30'
    assert analyzer.classify(text) == analyzer.classify(text)


def test_invalid_pattern_fails_at_construction():
    preset = load_preset('medical')
    preset['semantic']['patterns']['fragments'].append('^(unclosed')

    with pytest.raises(PatternCompilationError) as exc_info:
        EngineConfig.from_dict(preset)

    assert exc_info.value.details['location'] == 'fragments[13]'


def test_extra_preset_intents_follow_fixed_priority():
    config = EngineConfig.from_dict(load_preset('ecommerce'))
    names = [name for name, _ in config.patterns.intents]

    assert names[0] == 'appointment'
    assert names[-1] == 'order_status'

    analyzer = SemanticAnalyzer(config)
    assert analyzer.classify('¿dónde está mi pedido?').intent == 'order_status'
    assert analyzer.classify('¿dónde está mi pedido?').urgency is Urgency.URGENT


class TestMLRefinement:
    """ML intent refinement and fallback."""

    def test_high_confidence_ml_wins(self, mock_ml_service):
        mock_ml_service.predict.return_value = MLPrediction('information', 0.9, {'date': ['viernes']})
        analyzer = SemanticAnalyzer(_ml_config(), ml_service=mock_ml_service)

        result = analyzer.classify('quiero un turno')

        assert result.intent == 'information'
        assert result.source == 'ml'
        assert result.confidence == 0.9
        assert result.urgency is Urgency.SIMPLE
        assert result.entities['date'] == ['viernes']
        # Completeness always comes from the patterns
        assert result.completeness is Completeness.FRAGMENT

    def test_medium_confidence_only_fills_unknown(self, mock_ml_service):
        mock_ml_service.predict.return_value = MLPrediction('appointment', 0.6)
        analyzer = SemanticAnalyzer(_ml_config(), ml_service=mock_ml_service)

        unknown = analyzer.classify('para mañana en la mañana')
        assert unknown.intent == 'appointment'
        assert unknown.source == 'ml+regex'

        known = analyzer.classify('Hola doctor')
        assert known.intent == 'greeting'
        assert known.source == 'regex'

    def test_low_confidence_ignored(self, mock_ml_service):
        mock_ml_service.predict.return_value = MLPrediction('appointment', 0.3)
        analyzer = SemanticAnalyzer(_ml_config(), ml_service=mock_ml_service)

        result = analyzer.classify('para mañana en la mañana')

        assert result.intent == 'unknown'
        assert result.source == 'regex'

    def test_unconfigured_ml_intent_ignored(self, mock_ml_service):
        mock_ml_service.predict.return_value = MLPrediction('weather', 0.99)
        analyzer = SemanticAnalyzer(_ml_config(), ml_service=mock_ml_service)

        assert analyzer.classify('Hola doctor').intent == 'greeting'

    @pytest.mark.parametrize('error', [
        MLServiceError('boom'),
        MLTimeoutError('slow'),
        RuntimeError('unexpected'),
    ])
    def test_ml_errors_fall_back_to_regex(self, mock_ml_service, error):
        mock_ml_service.predict.side_effect = error
        analyzer = SemanticAnalyzer(_ml_config(), ml_service=mock_ml_service)

        result = analyzer.classify('quiero un turno')

        assert result.intent == 'appointment'
        assert result.source == 'regex'

    def test_open_ml_circuit_skips_service(self, mock_ml_service, clock):
        mock_ml_service.predict.side_effect = MLTimeoutError('slow')
        breaker = CircuitBreaker('ml', BreakerSettings(2, 60000, 300000), clock=clock.seconds)
        analyzer = SemanticAnalyzer(_ml_config(), ml_service=mock_ml_service, ml_breaker=breaker)

        analyzer.classify('hola')
        analyzer.classify('hola')
        assert breaker.is_open

        result = analyzer.classify('quiero un turno')

        assert mock_ml_service.predict.call_count == 2
        assert result.intent == 'appointment'

    def test_ml_disabled_ignores_service(self, engine_config, mock_ml_service):
        analyzer = SemanticAnalyzer(engine_config, ml_service=mock_ml_service)

        analyzer.classify('quiero un turno')

        mock_ml_service.predict.assert_not_called()
