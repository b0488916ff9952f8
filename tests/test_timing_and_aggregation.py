"""
Tests for the timing policy and the message aggregator.
"""
import pytest

from smart_buffer.core import MessageAggregator, TimingAction, TimingPolicy, aggregation_key
from smart_buffer.models import (
    BufferEntry,
    BufferState,
    ConversationBuffer,
    TimingProfile,
    Urgency,
)


BALANCED = TimingProfile('balanced', urgent=2000, simple=3000, complex=4000, max_buffer=3)


def _buffer(*texts, conversation_id='chat-1', start=1000):
    buffer = ConversationBuffer(conversation_id=conversation_id, created_at=start, last_updated_at=start)
    for offset, text in enumerate(texts):
        buffer.append(BufferEntry(text=text, timestamp=start + offset * 500), start + offset * 500)
    return buffer


class TestTimingPolicy:

    @pytest.mark.parametrize('urgency,expected', [
        (Urgency.URGENT, 2000),
        (Urgency.SIMPLE, 3000),
        (Urgency.COMPLEX, 4000),
    ])
    def test_wait_per_urgency(self, urgency, expected):
        decision = TimingPolicy(BALANCED).decide(urgency, BufferState(_buffer('quiero'), False))

        assert decision.action is TimingAction.WAIT
        assert decision.wait_ms == expected
        assert not decision.flush_now

    def test_flush_now_when_buffer_must_flush(self):
        state = BufferState(_buffer('Hola doctor'), True, 'complete')

        decision = TimingPolicy(BALANCED).decide(Urgency.SIMPLE, state)

        assert decision.action is TimingAction.FLUSH_NOW
        assert decision.wait_ms == 0

    def test_max_buffer_size_bounded_by_buffer_limit(self):
        assert TimingPolicy(BALANCED).max_buffer_size(Urgency.URGENT) == 3
        assert TimingPolicy(BALANCED, max_size=10).max_buffer_size(Urgency.URGENT) == 3
        assert TimingPolicy(BALANCED, max_size=2).max_buffer_size(Urgency.COMPLEX) == 2

    def test_profiles_from_preset(self, engine_config):
        aggressive = engine_config.with_profile('aggressive').timing
        conservative = engine_config.with_profile('conservative').timing

        assert (aggressive.urgent, aggressive.max_buffer) == (1500, 2)
        assert (conservative.complex, conservative.max_buffer) == (6000, 4)


class TestMessageAggregator:

    def test_joins_in_arrival_order(self, analyzer):
        aggregator = MessageAggregator(analyzer)

        message = aggregator.aggregate(_buffer('quiero un turno', 'para mañana en la mañana'))

        assert message.final_text == 'quiero un turno para mañana en la mañana'
        assert message.intent == 'appointment'
        assert message.entities['date'] == ['mañana']
        assert message.urgency == 'urgent'
        assert message.completeness == 'complete'
        assert message.message_count == 2
        assert message.fallback_used is False

    def test_custom_separator_and_blank_entries(self, analyzer):
        aggregator = MessageAggregator(analyzer, separator='\n')

        assert aggregator.combine(_buffer(' hola ', '  ', 'doctor').entries) == 'hola\ndoctor'

    def test_fallback_flag_is_carried(self, analyzer):
        message = MessageAggregator(analyzer).aggregate(_buffer('hola'), fallback_used=True)

        assert message.fallback_used is True


class TestAggregationKey:

    def test_stable_for_same_entries(self):
        assert aggregation_key(_buffer('a', 'b')) == aggregation_key(_buffer('a', 'b'))
        assert len(aggregation_key(_buffer('a'))) == 32

    def test_changes_with_content_order_and_conversation(self):
        base = aggregation_key(_buffer('a', 'b'))

        assert aggregation_key(_buffer('b', 'a')) != base
        assert aggregation_key(_buffer('a', 'c')) != base
        assert aggregation_key(_buffer('a', 'b', conversation_id='chat-2')) != base
        assert aggregation_key(_buffer('a', 'b', start=2000)) != base

    def test_field_boundaries_are_unambiguous(self):
        assert aggregation_key(_buffer('ab', 'c')) != aggregation_key(_buffer('a', 'bc'))
