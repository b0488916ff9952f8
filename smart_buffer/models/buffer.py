"""
Conversation buffer models persisted in the backing store.
"""
import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional


def text_size(text: str) -> int:
    """UTF-8 byte length used for buffer size accounting."""
    return len(text.encode('utf-8'))


@dataclass
class BufferEntry:
    """One buffered message in arrival order."""
    text: str
    timestamp: int
    entities: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {'text': self.text, 'timestamp': self.timestamp, 'entities': self.entities}

    @classmethod
    def from_dict(cls, data: dict) -> 'BufferEntry':
        return cls(
            text=data['text'],
            timestamp=int(data['timestamp']),
            entities={kind: list(values) for kind, values in (data.get('entities') or {}).items()},
        )


@dataclass
class ConversationBuffer:
    """Buffered fragments for a single conversation."""
    conversation_id: str
    entries: List[BufferEntry] = field(default_factory=list)
    created_at: int = 0
    last_updated_at: int = 0
    flush_after: Optional[int] = None
    size_bytes: int = 0

    def append(self, entry: BufferEntry, now: int) -> None:
        """Append an entry and keep size accounting in step."""
        self.entries.append(entry)
        self.size_bytes += text_size(entry.text)
        self.last_updated_at = now

    def recompute_size(self) -> int:
        self.size_bytes = sum(text_size(entry.text) for entry in self.entries)
        return self.size_bytes

    @property
    def texts(self) -> List[str]:
        return [entry.text for entry in self.entries]

    def to_bytes(self) -> bytes:
        payload = {
            'conversation_id': self.conversation_id,
            'entries': [entry.to_dict() for entry in self.entries],
            'created_at': self.created_at,
            'last_updated_at': self.last_updated_at,
            'flush_after': self.flush_after,
            'size_bytes': self.size_bytes,
        }
        return json.dumps(payload, ensure_ascii=False).encode('utf-8')

    @classmethod
    def from_bytes(cls, raw: bytes) -> 'ConversationBuffer':
        """
        Decode a stored buffer.

        Raises:
            ValueError: Payload is not a valid buffer document
        """
        if isinstance(raw, bytes):
            raw = raw.decode('utf-8')
        try:
            data = json.loads(raw)
            buffer = cls(
                conversation_id=data['conversation_id'],
                entries=[BufferEntry.from_dict(item) for item in data['entries']],
                created_at=int(data.get('created_at', 0)),
                last_updated_at=int(data.get('last_updated_at', 0)),
                flush_after=data.get('flush_after'),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed buffer payload: {e}") from e
        if not buffer.entries:
            raise ValueError("Stored buffer has no entries")
        buffer.recompute_size()
        return buffer

    def to_summary(self) -> dict:
        return {
            'conversation_id': self.conversation_id,
            'message_count': len(self.entries),
            'size_bytes': self.size_bytes,
            'created_at': self.created_at,
            'last_updated_at': self.last_updated_at,
            'flush_after': self.flush_after,
        }


@dataclass
class BufferState:
    """Result of an append: the stored buffer and whether it must flush now."""
    buffer: ConversationBuffer
    should_flush: bool
    reason: Optional[str] = None
    # False when a size limit was hit and the buffer was not written back
    stored: bool = True

    @property
    def entries(self) -> List[BufferEntry]:
        return self.buffer.entries
