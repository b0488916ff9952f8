"""
Timing policy: wait window or immediate flush.
"""
from dataclasses import dataclass
from enum import Enum

from smart_buffer.models import BufferState, TimingProfile, Urgency
from smart_buffer.utils import setup_logger


logger = setup_logger(__name__)


class TimingAction(str, Enum):
    WAIT = 'WAIT'
    FLUSH_NOW = 'FLUSH_NOW'


@dataclass(frozen=True)
class TimingDecision:
    action: TimingAction
    wait_ms: int = 0

    @property
    def flush_now(self) -> bool:
        return self.action is TimingAction.FLUSH_NOW


class TimingPolicy:
    """Pure mapping from (urgency, buffer state) to a timing decision."""

    def __init__(self, profile: TimingProfile, max_size: int = None):
        self.profile = profile
        self.max_size = max_size

    def max_buffer_size(self, urgency: Urgency) -> int:
        """Entry cap before a forced flush; the profile cap bounded by the buffer limit."""
        if self.max_size is None:
            return self.profile.max_buffer
        return min(self.profile.max_buffer, self.max_size)

    def decide(self, urgency: Urgency, buffer_state: BufferState) -> TimingDecision:
        if buffer_state.should_flush:
            decision = TimingDecision(TimingAction.FLUSH_NOW, 0)
        else:
            decision = TimingDecision(TimingAction.WAIT, self.profile.wait_for(urgency))

        logger.debug(
            f"Timing ({self.profile.name}): urgency={urgency.value} "
            f"entries={len(buffer_state.entries)} reason={buffer_state.reason} -> "
            f"{decision.action.value} {decision.wait_ms}ms"
        )
        return decision
