"""
Activity Timeline Module

Append-only, hash-chained activity log for plans, investors and investments.
Each event stores the SHA-256 hash of its predecessor, so edits or deletions
in storage show up in `verify_integrity`.
"""

import hashlib
import json
import threading
import uuid
from datetime import datetime, date
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord, utc_now


class TimelineEventType(Enum):
    """Types of timeline events"""
    # Investment events
    INVESTMENT_CREATED = "investment_created"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_OVERDUE = "payment_overdue"
    STATUS_CHANGED = "status_changed"
    NOTE_ADDED = "note_added"
    PAYMENT_UPDATED = "payment_updated"

    # Plan events
    PLAN_CREATED = "plan_created"
    PLAN_UPDATED = "plan_updated"

    # Investor events
    INVESTOR_CREATED = "investor_created"
    INVESTOR_UPDATED = "investor_updated"


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


@dataclass
class TimelineEvent(StorageRecord):
    """Single immutable timeline entry"""
    event_type: TimelineEventType
    entity_type: str            # plan, investor or investment
    entity_id: str
    sequence: int               # Position in the chain, starting at 1
    description: str
    previous_hash: str
    current_hash: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None

    def __post_init__(self):
        self.metadata = _json_safe(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'sequence': self.sequence,
            'description': self.description,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata,
            'user_id': self.user_id
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = self.base_dict()
        result.update({
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'sequence': self.sequence,
            'description': self.description,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash,
            'metadata': self.metadata,
            'user_id': self.user_id
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimelineEvent':
        return cls(
            id=data['id'],
            **cls.parse_timestamps(data),
            event_type=TimelineEventType(data['event_type']),
            entity_type=data['entity_type'],
            entity_id=data['entity_id'],
            sequence=int(data['sequence']),
            description=data.get('description', ''),
            previous_hash=data.get('previous_hash', ''),
            current_hash=data.get('current_hash', ''),
            metadata=data.get('metadata') or {},
            user_id=data.get('user_id')
        )


class ActivityTimeline:
    """
    Hash-chained activity timeline
    """

    def __init__(self, storage: StorageInterface, table_name: str = "timeline_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

    def _load_events(self, filters: Optional[Dict[str, Any]] = None) -> List[TimelineEvent]:
        events = [TimelineEvent.from_dict(data) for data in self.storage.find(self.table_name, filters or {})]
        events.sort(key=lambda event: event.sequence)
        return events

    def _chain_tail(self):
        """Sequence and hash of the most recent event"""
        events = self.storage.load_all(self.table_name)
        if not events:
            return 0, ""
        last = max(events, key=lambda data: int(data['sequence']))
        return int(last['sequence']), last.get('current_hash', "")

    def record(
        self,
        event_type: TimelineEventType,
        entity_type: str,
        entity_id: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> TimelineEvent:
        """
        Append an event to the timeline

        Args:
            event_type: Type of event
            entity_type: Type of entity the event belongs to
            entity_id: ID of the entity
            description: Human-readable description
            metadata: Additional event-specific data
            user_id: ID of the user who initiated the action

        Returns:
            Created TimelineEvent
        """
        with self._lock:
            sequence, previous_hash = self._chain_tail()
            now = utc_now()

            event = TimelineEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                sequence=sequence + 1,
                description=description,
                previous_hash=previous_hash,
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()

            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def events_for(self, entity_type: str, entity_id: str, limit: Optional[int] = None) -> List[TimelineEvent]:
        """Events of one entity, oldest first (the most recent `limit` when given)"""
        events = self._load_events({'entity_type': entity_type, 'entity_id': entity_id})
        if limit:
            events = events[-limit:]
        return events

    def events_by_type(self, event_type: TimelineEventType, limit: Optional[int] = None) -> List[TimelineEvent]:
        events = self._load_events({'event_type': event_type.value})
        if limit:
            events = events[-limit:]
        return events

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify every event hash and the links between consecutive events

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self._load_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result
