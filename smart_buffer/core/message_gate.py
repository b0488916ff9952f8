"""
Message gate for rapid and redelivered messages.
Sits in front of the orchestrator: per-chat rate limiting and duplicate detection.
"""
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Tuple

from config.settings import RateLimitConfig
from smart_buffer.models import InboundMessage, now_ms
from smart_buffer.utils import setup_logger


logger = setup_logger(__name__)

OK = 'ok'
DUPLICATE_MESSAGE = 'duplicate_message'
RATE_LIMIT_EXCEEDED = 'rate_limit_exceeded'


class _ChatLock:
    """Per-chat lock; dropped from the map when its last user leaves."""
    __slots__ = ('lock', 'users')

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


@dataclass
class GateStats:
    """Statistics for the message gate."""
    total_messages: int = 0
    accepted_messages: int = 0
    duplicate_messages: int = 0
    rate_limited_messages: int = 0


class MessageGate:
    """
    Per-chat admission control.

    - A message with the same text and timestamp as one already seen for the chat
      within the duplicate window is a webhook redelivery and is dropped.
    - More than max_requests accepted messages inside the window are rejected.
    """

    def __init__(self, rate_limit_config: RateLimitConfig, clock: Callable[[], int] = now_ms):
        self.enabled = rate_limit_config.enabled
        self.window_ms = rate_limit_config.window_ms
        self.max_requests = rate_limit_config.max_requests
        self.duplicate_window_ms = rate_limit_config.duplicate_window_ms
        self._clock = clock

        self.chat_timestamps: Dict[str, Deque[int]] = {}
        self.chat_recent: Dict[str, Deque[Tuple[str, int, int]]] = {}  # (text, message ts, seen at)
        self.stats = GateStats()

        self._locks: Dict[str, _ChatLock] = {}
        self._locks_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._last_sweep = clock()

    @contextmanager
    def _chat_lock(self, chat_id: str):
        """Hold the lock for a chat, creating it on first use."""
        with self._locks_lock:
            entry = self._locks.get(chat_id)
            if entry is None:
                entry = self._locks[chat_id] = _ChatLock()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._locks_lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[chat_id]

    def check(self, message: InboundMessage) -> Tuple[bool, str]:
        """
        Decide whether a message may enter the engine.

        Args:
            message: Validated inbound message

        Returns:
            Tuple of (allowed, reason)
        """
        if not self.enabled:
            return True, OK

        chat_id = message.chat_id
        current_time = self._clock()

        with self._chat_lock(chat_id):
            self._clean_old_entries(chat_id, current_time)

            if self._is_duplicate(chat_id, message):
                reason = DUPLICATE_MESSAGE
            elif len(self.chat_timestamps.get(chat_id, ())) >= self.max_requests:
                reason = RATE_LIMIT_EXCEEDED
            else:
                reason = OK
                self.chat_timestamps.setdefault(chat_id, deque()).append(current_time)
                self.chat_recent.setdefault(chat_id, deque()).append(
                    (message.text, message.timestamp, current_time))

        self._record(reason)
        self._sweep(current_time)

        if reason == DUPLICATE_MESSAGE:
            logger.debug(f"Duplicate message ignored for chat {chat_id}")
        elif reason == RATE_LIMIT_EXCEEDED:
            logger.warning(f"Rate limit exceeded for chat {chat_id}")

        return reason == OK, reason

    def get_stats(self) -> GateStats:
        with self._stats_lock:
            return GateStats(**vars(self.stats))

    def _record(self, reason: str) -> None:
        with self._stats_lock:
            self.stats.total_messages += 1
            if reason == OK:
                self.stats.accepted_messages += 1
            elif reason == DUPLICATE_MESSAGE:
                self.stats.duplicate_messages += 1
            else:
                self.stats.rate_limited_messages += 1

    def _sweep(self, current_time: int) -> None:
        """Drop expired history for chats that stopped sending, at most once per window."""
        if current_time - self._last_sweep < self.window_ms:
            return
        self._last_sweep = current_time

        for chat_id in set(self.chat_timestamps) | set(self.chat_recent):
            with self._chat_lock(chat_id):
                self._clean_old_entries(chat_id, current_time)

    def _clean_old_entries(self, chat_id: str, current_time: int) -> None:
        """Remove timestamps older than the rate limit and duplicate windows."""
        timestamps = self.chat_timestamps.get(chat_id)
        if timestamps is not None:
            cutoff_time = current_time - self.window_ms
            while timestamps and timestamps[0] < cutoff_time:
                timestamps.popleft()
            if not timestamps:
                del self.chat_timestamps[chat_id]

        recent = self.chat_recent.get(chat_id)
        if recent is not None:
            cutoff_time = current_time - self.duplicate_window_ms
            while recent and recent[0][2] < cutoff_time:
                recent.popleft()
            if not recent:
                del self.chat_recent[chat_id]

    def _is_duplicate(self, chat_id: str, message: InboundMessage) -> bool:
        """Same text and same gateway timestamp means the webhook was delivered twice."""
        for text, timestamp, _ in self.chat_recent.get(chat_id, ()):
            if text == message.text and timestamp == message.timestamp:
                return True
        return False
