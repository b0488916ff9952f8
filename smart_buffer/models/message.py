"""
Inbound message, aggregate and decision models.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from smart_buffer.utils.exceptions import InvalidMessageError


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class InboundMessage:
    """Message entity model as delivered by the chat gateway."""
    text: str
    chat_id: str
    timestamp: Optional[int] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = now_ms()

    def validate(self) -> 'InboundMessage':
        """
        Reject messages that cannot be buffered.

        Raises:
            InvalidMessageError: Missing chat id or blank text
        """
        if not isinstance(self.chat_id, str) or not self.chat_id.strip():
            raise InvalidMessageError("Message is missing chatId", details={'field': 'chatId'})
        if not isinstance(self.text, str) or not self.text.strip():
            raise InvalidMessageError("Message text is empty", details={'field': 'text'})
        return self

    @classmethod
    def from_payload(cls, payload: dict) -> 'InboundMessage':
        """
        Build a message from a webhook payload `{text, chatId, timestamp}`.

        Args:
            payload: Decoded JSON body

        Returns:
            Validated InboundMessage

        Raises:
            InvalidMessageError: Payload is not an object or fails validation
        """
        if not isinstance(payload, dict):
            raise InvalidMessageError("Payload must be a JSON object")

        chat_id = payload.get('chatId', payload.get('chat_id', payload.get('conversationId')))
        if chat_id is not None and not isinstance(chat_id, str):
            chat_id = str(chat_id)

        timestamp = payload.get('timestamp')
        if timestamp is not None:
            try:
                timestamp = int(timestamp)
            except (TypeError, ValueError):
                raise InvalidMessageError("timestamp must be epoch milliseconds",
                                          details={'field': 'timestamp'})

        return cls(text=payload.get('text'), chat_id=chat_id, timestamp=timestamp).validate()


@dataclass
class AggregatedMessage:
    """Final, AI-ready text combined from one or more buffered messages."""
    conversation_id: str
    final_text: str
    intent: str
    entities: Dict[str, List[str]]
    urgency: str
    completeness: str
    message_count: int
    aggregation_key: str
    fallback_used: bool = False


class DecisionAction(str, Enum):
    WAIT = 'WAIT'
    READY = 'READY'
    IDLE = 'IDLE'
    IGNORED = 'IGNORED'


@dataclass
class Decision:
    """Outcome of handling a message or polling a conversation."""
    action: DecisionAction
    conversation_id: str
    wait_ms: int = 0
    message: Optional[AggregatedMessage] = None
    reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @property
    def is_ready(self) -> bool:
        return self.action is DecisionAction.READY

    @property
    def fallback_used(self) -> bool:
        return bool(self.message and self.message.fallback_used)

    @classmethod
    def wait(cls, conversation_id: str, wait_ms: int, **metadata) -> 'Decision':
        return cls(action=DecisionAction.WAIT, conversation_id=conversation_id,
                   wait_ms=wait_ms, metadata=metadata)

    @classmethod
    def ready(cls, message: AggregatedMessage) -> 'Decision':
        return cls(action=DecisionAction.READY, conversation_id=message.conversation_id,
                   message=message)

    @classmethod
    def idle(cls, conversation_id: str, reason: str = None) -> 'Decision':
        return cls(action=DecisionAction.IDLE, conversation_id=conversation_id, reason=reason)

    @classmethod
    def ignored(cls, conversation_id: str, reason: str) -> 'Decision':
        return cls(action=DecisionAction.IGNORED, conversation_id=conversation_id, reason=reason)

    def to_dict(self) -> dict:
        """Outbound shape consumed by the AI/automation workflow."""
        data = {'action': self.action.value, 'chatId': self.conversation_id}

        if self.action is DecisionAction.WAIT:
            data['wait_ms'] = self.wait_ms
            data.update(self.metadata)
        elif self.action is DecisionAction.READY:
            message = self.message
            data.update({
                'final_text': message.final_text,
                'intent': message.intent,
                'entities': message.entities,
                'urgency': message.urgency,
                'message_count': message.message_count,
                'aggregation_key': message.aggregation_key,
                'ready_for_ai': True,
                'fallback_used': message.fallback_used,
            })
        elif self.reason:
            data['reason'] = self.reason

        return data
