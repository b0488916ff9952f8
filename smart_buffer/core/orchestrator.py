"""
Orchestrator: the per-message decision loop.

handle() classifies a message, appends it to the conversation buffer and either
asks the caller to wait or returns the aggregated message. The engine never
runs timers itself: a WAIT decision carries wait_ms and the caller re-invokes
poll() once the window has passed.
"""
import threading
import time
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from smart_buffer.models import (
    BufferEntry,
    ClassificationResult,
    ConversationBuffer,
    Decision,
    InboundMessage,
    now_ms,
)
from smart_buffer.core.buffer_manager import BufferManager, FORCED_REASONS
from smart_buffer.core.message_aggregator import MessageAggregator
from smart_buffer.core.semantic_analyzer import SemanticAnalyzer
from smart_buffer.core.timing_policy import TimingPolicy
from smart_buffer.utils import setup_logger, log_conversation_event, StoreUnavailableError


logger = setup_logger(__name__)


@dataclass
class EngineStats:
    """Counters for the decision engine."""
    total_messages: int = 0
    wait_decisions: int = 0
    ready_decisions: int = 0
    forced_flushes: int = 0
    fallback_decisions: int = 0
    polls: int = 0
    cancelled_buffers: int = 0
    avg_processing_time_ms: float = 0.0


class Orchestrator:
    """Top-level engine entry point used by the webhook controller."""

    def __init__(self,
                 analyzer: SemanticAnalyzer,
                 buffer_manager: BufferManager,
                 timing_policy: TimingPolicy,
                 aggregator: MessageAggregator,
                 clock: Callable[[], int] = now_ms):
        self.analyzer = analyzer
        self.buffer_manager = buffer_manager
        self.timing_policy = timing_policy
        self.aggregator = aggregator
        self._clock = clock

        self.stats = EngineStats()
        self._stats_lock = threading.Lock()

    def handle(self, message: InboundMessage) -> Decision:
        """
        Process an incoming message.

        Args:
            message: Inbound message

        Returns:
            WAIT with the wait window, or READY with the aggregated message

        Raises:
            InvalidMessageError: Missing chat id or empty text
        """
        message.validate()
        started = time.perf_counter()
        conversation_id = message.chat_id

        classification = self.analyzer.classify(message.text)

        try:
            decision = self._buffer_and_decide(message, classification)
        except StoreUnavailableError as e:
            logger.warning(
                f"Store unavailable ({e.message}), processing message immediately",
                extra={'conversation_id': conversation_id},
            )
            decision = self._process_immediately(message, classification)

        self._record(decision, (time.perf_counter() - started) * 1000)
        return decision

    def poll(self, conversation_id: str, now: Optional[int] = None) -> Decision:
        """
        Re-check a conversation after a WAIT window.

        Args:
            conversation_id: Chat identifier
            now: Current epoch ms (defaults to the engine clock)

        Returns:
            READY when the window has passed, WAIT with the remaining time when a
            newer message extended it, IDLE when there is nothing buffered
        """
        now = self._clock() if now is None else now
        with self._stats_lock:
            self.stats.polls += 1

        try:
            with self.buffer_manager.conversation_lock(conversation_id):
                buffer = self.buffer_manager.peek(conversation_id)
                if buffer is None:
                    return Decision.idle(conversation_id, 'no_buffer')

                if buffer.flush_after is not None and buffer.flush_after > now:
                    return Decision.wait(conversation_id, buffer.flush_after - now,
                                         message_count=len(buffer.entries))

                drained = self.buffer_manager.flush(conversation_id)
        except StoreUnavailableError as e:
            logger.warning(f"Poll skipped, store unavailable: {e.message}",
                           extra={'conversation_id': conversation_id})
            return Decision.idle(conversation_id, 'store_unavailable')

        if drained is None:
            return Decision.idle(conversation_id, 'no_buffer')

        decision = Decision.ready(self.aggregator.aggregate(drained))
        with self._stats_lock:
            self.stats.ready_decisions += 1
        return decision

    def cancel(self, conversation_id: str) -> bool:
        """
        Drop a conversation buffer.

        Runs under the same conversation lock as handle(), so a cancel issued while
        an append is in flight takes effect after it.
        """
        try:
            cancelled = self.buffer_manager.cancel(conversation_id)
        except StoreUnavailableError as e:
            logger.warning(f"Cancel failed, store unavailable: {e.message}",
                           extra={'conversation_id': conversation_id})
            return False

        if cancelled:
            with self._stats_lock:
                self.stats.cancelled_buffers += 1
        return cancelled

    def get_stats(self) -> dict:
        """Get engine statistics and circuit states."""
        with self._stats_lock:
            stats = asdict(self.stats)
        stats['circuits'] = self.circuit_states()
        stats['timing_profile'] = self.timing_policy.profile.name
        return stats

    def health(self) -> dict:
        """
        Dependency health for the /health endpoint.

        The engine keeps answering while the store is down (every message is
        processed immediately), so an unreachable store reports 'degraded'.
        """
        circuits = self.circuit_states()
        store_ok = circuits['store']['status'] != 'open' and self.buffer_manager.store.ping()
        return {
            'status': 'healthy' if store_ok else 'degraded',
            'store': 'up' if store_ok else 'down',
            'circuits': circuits,
        }

    def circuit_states(self) -> dict:
        states = {'store': self.buffer_manager.breaker.snapshot().to_dict()}
        if self.analyzer.ml_breaker is not None:
            states['ml'] = self.analyzer.ml_breaker.snapshot().to_dict()
        return states

    def _buffer_and_decide(self, message: InboundMessage, classification: ClassificationResult) -> Decision:
        conversation_id = message.chat_id

        with self.buffer_manager.conversation_lock(conversation_id):
            state = self.buffer_manager.append(
                conversation_id,
                message.text,
                classification,
                timestamp=message.timestamp,
                max_entries=self.timing_policy.max_buffer_size(classification.urgency),
            )
            timing = self.timing_policy.decide(classification.urgency, state)

            if timing.flush_now:
                fallback_used = False
                try:
                    # Size-limited buffers were not saved; flush drops the earlier stored copy
                    drained = self.buffer_manager.flush(conversation_id)
                    buffer = drained if state.stored and drained is not None else state.buffer
                except StoreUnavailableError as e:
                    logger.warning(f"Flush failed ({e.message}), using the buffer read during append",
                                   extra={'conversation_id': conversation_id})
                    buffer = state.buffer
                    fallback_used = True

                if state.reason in FORCED_REASONS:
                    with self._stats_lock:
                        self.stats.forced_flushes += 1
                    log_conversation_event(logger, conversation_id, 'forced_flush', cause=state.reason)

                return Decision.ready(self.aggregator.aggregate(buffer, fallback_used=fallback_used))

            try:
                self.buffer_manager.schedule(state.buffer, self._clock() + timing.wait_ms)
            except StoreUnavailableError as e:
                # The entry is stored; without a deadline the next poll flushes right away
                logger.warning(f"Could not record wait window: {e.message}",
                               extra={'conversation_id': conversation_id})

        return Decision.wait(
            conversation_id,
            timing.wait_ms,
            message_count=len(state.entries),
            intent=classification.intent,
            urgency=classification.urgency.value,
        )

    def _process_immediately(self, message: InboundMessage, classification: ClassificationResult) -> Decision:
        """Fallback path: the current message alone, never queued."""
        buffer = ConversationBuffer(
            conversation_id=message.chat_id,
            created_at=message.timestamp,
            last_updated_at=message.timestamp,
        )
        buffer.append(
            BufferEntry(text=message.text.strip(), timestamp=message.timestamp, entities=classification.entities),
            message.timestamp,
        )
        return Decision.ready(self.aggregator.aggregate(buffer, fallback_used=True))

    def _record(self, decision: Decision, elapsed_ms: float) -> None:
        with self._stats_lock:
            stats = self.stats
            stats.total_messages += 1
            if decision.is_ready:
                stats.ready_decisions += 1
                if decision.fallback_used:
                    stats.fallback_decisions += 1
            else:
                stats.wait_decisions += 1
            stats.avg_processing_time_ms += (elapsed_ms - stats.avg_processing_time_ms) / stats.total_messages
