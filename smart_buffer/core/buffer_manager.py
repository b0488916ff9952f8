"""
Buffer manager for collecting fragments per conversation.
Owns the buffer lifecycle (create, append, flush, cancel) over the backing store.
"""
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Optional

from smart_buffer.models import (
    BufferEntry,
    BufferSettings,
    BufferState,
    ClassificationResult,
    ConversationBuffer,
    now_ms,
)
from smart_buffer.services import BufferStore
from smart_buffer.core.circuit_breaker import CircuitBreaker
from smart_buffer.utils import (
    setup_logger,
    log_conversation_event,
    preview,
    CircuitOpenError,
    StoreUnavailableError,
)


logger = setup_logger(__name__)

# Flush reasons for which append does not write the buffer back
FORCED_REASONS = ('max_size', 'max_bytes')


class _LockEntry:
    """Per-conversation lock plus the number of holders/waiters."""
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class BufferManager:
    """
    Manages per-conversation buffers stored in the backing store.

    Every read-modify-write runs under a lock keyed by conversation id, so two
    messages for the same chat never race while different chats never contend.
    Store calls go through the store circuit breaker; any store problem is
    reported as StoreUnavailableError.
    """

    def __init__(self,
                 store: BufferStore,
                 settings: BufferSettings,
                 breaker: CircuitBreaker,
                 clock: Callable[[], int] = now_ms):
        self.store = store
        self.settings = settings
        self.breaker = breaker
        self._clock = clock
        self._locks: Dict[str, _LockEntry] = {}
        self._locks_lock = threading.Lock()

        logger.info(
            f"Buffer manager initialized - ttl: {settings.ttl_seconds}s, max_size: {settings.max_size}, "
            f"max_size_kb: {settings.max_size_kb}, sliding_ttl: {settings.sliding_ttl}"
        )

    def key_for(self, conversation_id: str) -> str:
        return f"{self.settings.key_prefix}:{conversation_id}"

    @contextmanager
    def conversation_lock(self, conversation_id: str):
        """Re-entrant critical section for one conversation."""
        with self._locks_lock:
            entry = self._locks.get(conversation_id)
            if entry is None:
                entry = self._locks[conversation_id] = _LockEntry()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._locks_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[conversation_id]

    def append(self,
               conversation_id: str,
               text: str,
               classification: ClassificationResult,
               timestamp: Optional[int] = None,
               max_entries: Optional[int] = None) -> BufferState:
        """
        Append a message to the conversation buffer.

        Args:
            conversation_id: Chat identifier
            text: Message text
            classification: Result for this message; COMPLETE forces a flush
            timestamp: Arrival time in epoch ms (defaults to now)
            max_entries: Entry cap for this append, bounded by the configured max size

        Returns:
            BufferState with should_flush set when a flush condition is reached;
            stored is False when a size limit was hit and the buffer was not saved

        Raises:
            StoreUnavailableError: Store circuit is open or the store failed
        """
        limit = min(max_entries or self.settings.max_size, self.settings.max_size)

        with self.conversation_lock(conversation_id):
            now = self._clock()
            buffer = self._load(conversation_id)
            if buffer is None:
                buffer = ConversationBuffer(conversation_id=conversation_id, created_at=now, last_updated_at=now)
                log_conversation_event(logger, conversation_id, 'created')

            buffer.append(
                BufferEntry(
                    text=text.strip(),
                    timestamp=timestamp if timestamp is not None else now,
                    entities=classification.entities,
                ),
                now,
            )
            buffer.flush_after = None

            if len(buffer.entries) >= limit:
                reason = 'max_size'
            elif buffer.size_bytes >= self.settings.max_bytes:
                reason = 'max_bytes'
            elif classification.is_complete:
                reason = 'complete'
            else:
                reason = None

            stored = reason not in FORCED_REASONS
            if stored:
                self._save(buffer, now)

        logger.debug(
            f"Appended '{preview(text)}' to {conversation_id} "
            f"({len(buffer.entries)}/{limit}, {buffer.size_bytes}B, flush={reason})"
        )
        return BufferState(buffer=buffer, should_flush=reason is not None, reason=reason, stored=stored)

    def schedule(self, buffer: ConversationBuffer, flush_after: int) -> None:
        """Record the end of the current wait window on the stored buffer."""
        with self.conversation_lock(buffer.conversation_id):
            buffer.flush_after = flush_after
            self._save(buffer, self._clock())

    def flush(self, conversation_id: str) -> Optional[ConversationBuffer]:
        """
        Remove and return the conversation buffer.

        Returns:
            The drained buffer, or None when no buffer exists

        Raises:
            StoreUnavailableError: Store circuit is open or the store failed
        """
        with self.conversation_lock(conversation_id):
            buffer = self._load(conversation_id)
            if buffer is None:
                return None
            self._guarded(self.store.delete, self.key_for(conversation_id))

        log_conversation_event(logger, conversation_id, 'flushed', entries=len(buffer.entries))
        return buffer

    def cancel(self, conversation_id: str) -> bool:
        """
        Drop the conversation buffer without processing it.

        Returns:
            True if a buffer was deleted
        """
        with self.conversation_lock(conversation_id):
            deleted = self._guarded(self.store.delete, self.key_for(conversation_id))

        if deleted:
            log_conversation_event(logger, conversation_id, 'cancelled')
        return deleted

    def peek(self, conversation_id: str) -> Optional[ConversationBuffer]:
        """Read the current buffer without modifying it."""
        with self.conversation_lock(conversation_id):
            return self._load(conversation_id)

    def get_buffer_status(self, conversation_id: str) -> dict:
        """
        Get status of a conversation buffer.

        Returns:
            Dictionary with buffer status
        """
        buffer = self.peek(conversation_id)
        if buffer is None:
            return {'exists': False, 'message_count': 0, 'size_bytes': 0}

        status = buffer.to_summary()
        status['exists'] = True
        status['ttl'] = self._guarded(self.store.ttl, self.key_for(conversation_id))
        return status

    def _load(self, conversation_id: str) -> Optional[ConversationBuffer]:
        raw = self._guarded(self.store.get, self.key_for(conversation_id))
        if raw is None:
            return None

        try:
            return ConversationBuffer.from_bytes(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable buffer for {conversation_id}: {e}")
            self._guarded(self.store.delete, self.key_for(conversation_id))
            return None

    def _save(self, buffer: ConversationBuffer, now: int) -> None:
        ttl = self.settings.ttl_seconds
        if not self.settings.sliding_ttl:
            elapsed = (now - buffer.created_at) // 1000
            ttl = max(1, ttl - elapsed)
        self._guarded(self.store.set_with_ttl, self.key_for(buffer.conversation_id), buffer.to_bytes(), ttl)

    def _guarded(self, operation, *args):
        try:
            return self.breaker.execute(operation, *args)
        except CircuitOpenError as e:
            raise StoreUnavailableError(f"Store circuit open: {e.message}", details=e.details)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Store operation {getattr(operation, '__name__', operation)} failed: {e}")
            raise StoreUnavailableError(f"Store operation failed: {e}")
