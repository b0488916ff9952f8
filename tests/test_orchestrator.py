"""
Tests for the orchestrator decision loop.
"""
import threading

import pytest
from unittest.mock import Mock

from config.presets import load_preset
from smart_buffer.core import CircuitStatus
from smart_buffer.models import BufferSettings, DecisionAction, EngineConfig, InboundMessage
from smart_buffer.services import BufferStore, InMemoryStore
from smart_buffer.utils import InvalidMessageError


def _message(text, chat_id='5491100000000', timestamp=None):
    return InboundMessage(text=text, chat_id=chat_id, timestamp=timestamp)


class TestScenarios:
    """End-to-end buffering scenarios with the medical preset."""

    def test_fragment_then_completion(self, orchestrator, clock):
        first = orchestrator.handle(_message('quiero un turno', timestamp=clock.now))

        assert first.action is DecisionAction.WAIT
        assert first.wait_ms == 2000
        assert first.metadata['message_count'] == 1

        clock.advance(2000)
        second = orchestrator.handle(_message('para mañana en la mañana', timestamp=clock.now))

        assert second.is_ready
        assert second.message.final_text == 'quiero un turno para mañana en la mañana'
        assert second.message.intent == 'appointment'
        assert 'mañana' in second.message.entities['date']
        assert second.message.message_count == 2
        assert not second.fallback_used

    def test_complete_greeting_flushes_immediately(self, orchestrator, store):
        decision = orchestrator.handle(_message('Hola doctor'))

        assert decision.is_ready
        assert decision.wait_ms == 0
        assert decision.message.final_text == 'Hola doctor'
        assert decision.message.intent == 'greeting'
        assert decision.message.message_count == 1
        assert len(store) == 0

    def test_open_store_circuit_processes_message_alone(self, make_orchestrator, clock):
        failing_store = Mock(spec=BufferStore)
        failing_store.get.side_effect = ConnectionError('refused')
        engine = make_orchestrator(store=failing_store)

        for _ in range(3):
            engine.handle(_message('quiero'))
        assert engine.buffer_manager.breaker.status is CircuitStatus.OPEN
        failing_store.reset_mock()

        decision = engine.handle(_message('quiero un turno'))

        assert decision.is_ready
        assert decision.fallback_used
        assert decision.message.final_text == 'quiero un turno'
        assert decision.message.message_count == 1
        failing_store.get.assert_not_called()
        failing_store.set_with_ttl.assert_not_called()

    def test_three_fragments_force_flush(self, orchestrator, clock):
        decisions = []
        for text in ('quiero', 'un', 'turno'):
            decisions.append(orchestrator.handle(_message(text, timestamp=clock.now)))
            clock.advance(300)

        assert [d.action for d in decisions] == [DecisionAction.WAIT, DecisionAction.WAIT, DecisionAction.READY]
        assert decisions[2].message.final_text == 'quiero un turno'
        assert decisions[2].message.message_count == 3
        assert orchestrator.get_stats()['forced_flushes'] == 1


class TestHandle:

    @pytest.mark.parametrize('text,chat_id', [
        ('', 'chat-1'),
        ('   ', 'chat-1'),
        ('hola', ''),
        ('hola', None),
    ])
    def test_invalid_messages_rejected(self, orchestrator, text, chat_id):
        with pytest.raises(InvalidMessageError):
            orchestrator.handle(InboundMessage(text=text, chat_id=chat_id))

    def test_wait_window_uses_message_urgency(self, orchestrator):
        # unknown intent -> complex
        assert orchestrator.handle(_message('y el', chat_id='a')).wait_ms == 4000
        # appointment -> urgent
        assert orchestrator.handle(_message('turno', chat_id='b')).wait_ms == 2000

    def test_wait_records_deadline(self, orchestrator, clock):
        orchestrator.handle(_message('quiero'))

        buffer = orchestrator.buffer_manager.peek('5491100000000')
        assert buffer.flush_after == clock.now + 4000

    def test_buffer_bounds_hold_after_every_message(self, orchestrator, clock):
        limit = orchestrator.timing_policy.max_buffer_size(None)
        for index in range(10):
            orchestrator.handle(_message(f"parte {index} y", timestamp=clock.now))
            clock.advance(10)
            buffer = orchestrator.buffer_manager.peek('5491100000000')
            assert buffer is None or len(buffer.entries) < limit

    def test_flush_failure_uses_buffer_from_append(self, make_orchestrator):
        store = InMemoryStore()
        engine = make_orchestrator(store=store)
        engine.handle(_message('quiero'))

        original_delete = store.delete
        store.delete = Mock(side_effect=ConnectionError('gone'))

        decision = engine.handle(_message('un turno para el lunes?'))

        assert decision.is_ready
        assert decision.fallback_used
        assert decision.message.final_text == 'quiero un turno para el lunes?'
        store.delete = original_delete

    def test_oversized_buffer_not_left_in_store_when_flush_fails(self, make_orchestrator):
        store = InMemoryStore()
        engine = make_orchestrator(store=store)
        engine.handle(_message('quiero'))
        engine.buffer_manager.settings = BufferSettings(max_size_kb=1)
        store.delete = Mock(side_effect=ConnectionError('gone'))

        decision = engine.handle(_message('x' * 1100))

        assert decision.is_ready
        assert decision.fallback_used
        assert decision.message.message_count == 2
        assert engine.get_stats()['forced_flushes'] == 1
        # Only the earlier copy without the oversized message is left to expire
        assert engine.buffer_manager.peek('5491100000000').texts == ['quiero']

    def test_stats(self, orchestrator):
        orchestrator.handle(_message('quiero'))
        orchestrator.handle(_message('Hola doctor', chat_id='other'))

        stats = orchestrator.get_stats()

        assert stats['total_messages'] == 2
        assert stats['wait_decisions'] == 1
        assert stats['ready_decisions'] == 1
        assert stats['timing_profile'] == 'balanced'
        assert stats['circuits']['store']['status'] == 'closed'
        assert 'ml' not in stats['circuits']


class TestPoll:

    def test_poll_before_window_waits_for_remaining_time(self, orchestrator, clock):
        orchestrator.handle(_message('quiero'))
        clock.advance(1500)

        decision = orchestrator.poll('5491100000000')

        assert decision.action is DecisionAction.WAIT
        assert decision.wait_ms == 2500

    def test_poll_after_window_flushes(self, orchestrator, clock):
        orchestrator.handle(_message('quiero un turno', timestamp=clock.now))
        clock.advance(2000)

        decision = orchestrator.poll('5491100000000')

        assert decision.is_ready
        assert decision.message.final_text == 'quiero un turno'
        assert orchestrator.poll('5491100000000').action is DecisionAction.IDLE

    def test_newer_message_extends_window(self, orchestrator, clock):
        orchestrator.handle(_message('quiero un turno'))
        clock.advance(1900)
        orchestrator.handle(_message('para'))
        clock.advance(200)

        # The first window has passed but the second message restarted it
        decision = orchestrator.poll('5491100000000')

        assert decision.action is DecisionAction.WAIT
        assert decision.wait_ms == 3800

    def test_poll_without_buffer_is_idle(self, orchestrator):
        decision = orchestrator.poll('nobody')

        assert decision.action is DecisionAction.IDLE
        assert decision.reason == 'no_buffer'

    def test_poll_with_store_down_is_idle(self, make_orchestrator):
        failing_store = Mock(spec=BufferStore)
        failing_store.get.side_effect = ConnectionError('refused')
        engine = make_orchestrator(store=failing_store)

        decision = engine.poll('chat-1')

        assert decision.action is DecisionAction.IDLE
        assert decision.reason == 'store_unavailable'

    def test_explicit_now(self, orchestrator, clock):
        orchestrator.handle(_message('quiero'))

        assert orchestrator.poll('5491100000000', now=clock.now + 4000).is_ready


class TestCancel:

    def test_cancel_removes_buffer(self, orchestrator):
        orchestrator.handle(_message('quiero'))

        assert orchestrator.cancel('5491100000000') is True
        assert orchestrator.poll('5491100000000').action is DecisionAction.IDLE
        assert orchestrator.get_stats()['cancelled_buffers'] == 1

    def test_cancel_without_buffer(self, orchestrator):
        assert orchestrator.cancel('nobody') is False

    def test_cancel_with_store_down(self, make_orchestrator):
        failing_store = Mock(spec=BufferStore)
        failing_store.delete.side_effect = ConnectionError('refused')

        assert make_orchestrator(store=failing_store).cancel('chat-1') is False

    def test_cancel_waits_for_in_flight_append(self, make_orchestrator):
        store = InMemoryStore()
        engine = make_orchestrator(store=store)

        in_set = threading.Event()
        release = threading.Event()
        original_set = store.set_with_ttl

        def slow_set(key, value, ttl_seconds):
            original_set(key, value, ttl_seconds)
            in_set.set()
            release.wait(5)

        store.set_with_ttl = slow_set

        appender = threading.Thread(target=engine.handle, args=(_message('quiero', chat_id='c1'),))
        appender.start()
        assert in_set.wait(5)

        result = {}
        canceller = threading.Thread(target=lambda: result.update(cancelled=engine.cancel('c1')))
        canceller.start()
        canceller.join(0.2)
        # Cancel is blocked behind the append's conversation lock
        assert canceller.is_alive()

        store.set_with_ttl = original_set
        release.set()
        appender.join(5)
        canceller.join(5)

        assert result['cancelled'] is True
        assert engine.buffer_manager.peek('c1') is None


def test_other_industry_preset(make_orchestrator, clock):
    config = EngineConfig.from_dict(load_preset('ecommerce'), profile='aggressive')
    engine = make_orchestrator(config=config)

    first = engine.handle(_message('quiero comprar'))
    assert first.action is DecisionAction.WAIT
    assert first.wait_ms == 3000

    second = engine.handle(_message('zapatillas talle 42'))
    assert second.is_ready
    assert second.message.final_text == 'quiero comprar zapatillas talle 42'
    assert second.message.entities['size'] == ['talle 42']
