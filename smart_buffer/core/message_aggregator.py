"""
Message aggregator: combines buffered fragments into one AI-ready message.
"""
import hashlib
from typing import List

from smart_buffer.models import AggregatedMessage, BufferEntry, ConversationBuffer
from smart_buffer.core.semantic_analyzer import SemanticAnalyzer
from smart_buffer.utils import setup_logger, preview


logger = setup_logger(__name__)


def aggregation_key(buffer: ConversationBuffer) -> str:
    """
    Stable digest of a flushed buffer.

    The same entries always produce the same key, so a downstream consumer can
    drop an aggregate delivered twice.
    """
    digest = hashlib.sha256()
    digest.update(buffer.conversation_id.encode('utf-8'))
    for entry in buffer.entries:
        digest.update(b'\x1f')
        digest.update(str(entry.timestamp).encode('ascii'))
        digest.update(b'\x1e')
        digest.update(entry.text.encode('utf-8'))
    return digest.hexdigest()[:32]


class MessageAggregator:
    """Joins entries in arrival order and re-classifies the combined text."""

    def __init__(self, analyzer: SemanticAnalyzer, separator: str = ' '):
        self.analyzer = analyzer
        self.separator = separator

    def combine(self, entries: List[BufferEntry]) -> str:
        """
        Combine buffered entries into a single string.

        Args:
            entries: Entries in arrival order

        Returns:
            Combined text
        """
        parts = []
        for entry in entries:
            text = entry.text.strip()
            if text:
                parts.append(text)
        return self.separator.join(parts)

    def aggregate(self, buffer: ConversationBuffer, fallback_used: bool = False) -> AggregatedMessage:
        """
        Build the final message for a drained buffer.

        Intent and entities come from classifying the combined text, not from the
        per-entry results: "quiero un" + "turno para mañana" only reads as an
        appointment once joined.
        """
        final_text = self.combine(buffer.entries)
        classification = self.analyzer.classify(final_text)

        logger.info(
            f"Aggregated {len(buffer.entries)} message(s) for {buffer.conversation_id}: "
            f"'{preview(final_text, 100)}' intent={classification.intent}"
        )

        return AggregatedMessage(
            conversation_id=buffer.conversation_id,
            final_text=final_text,
            intent=classification.intent,
            entities=classification.entities,
            urgency=classification.urgency.value,
            completeness=classification.completeness.value,
            message_count=len(buffer.entries),
            aggregation_key=aggregation_key(buffer),
            fallback_used=fallback_used,
        )
