"""
Classification result models produced by the semantic analyzer.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


UNKNOWN_INTENT = 'unknown'


class Completeness(str, Enum):
    """Whether a message stands on its own."""
    FRAGMENT = 'fragment'
    COMPLETE = 'complete'


class Urgency(str, Enum):
    """Coarse category selecting the timing window."""
    URGENT = 'urgent'
    SIMPLE = 'simple'
    COMPLEX = 'complex'


def merge_entities(*sources: Optional[Dict[str, List[str]]]) -> Dict[str, List[str]]:
    """
    Merge entity maps keeping first-seen order and dropping duplicates.

    Args:
        sources: Entity maps (kind -> values); None entries are skipped

    Returns:
        New merged entity map
    """
    merged: Dict[str, List[str]] = {}
    for source in sources:
        if not source:
            continue
        for kind, values in source.items():
            bucket = merged.setdefault(kind, [])
            for value in values:
                if value not in bucket:
                    bucket.append(value)
    return merged


@dataclass
class ClassificationResult:
    """Completeness, intent and entities for one piece of text."""
    completeness: Completeness
    intent: str = UNKNOWN_INTENT
    entities: Dict[str, List[str]] = field(default_factory=dict)
    urgency: Urgency = Urgency.COMPLEX
    source: str = 'regex'
    confidence: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return self.completeness is Completeness.COMPLETE

    def to_dict(self) -> dict:
        data = {
            'completeness': self.completeness.value,
            'intent': self.intent,
            'entities': self.entities,
            'urgency': self.urgency.value,
            'source': self.source,
        }
        if self.confidence is not None:
            data['confidence'] = self.confidence
        return data
