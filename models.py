# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Data models for Deadline Bridge - the canonical deadline entity
"""
from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Any, Tuple

from utils.timezone import ensure_utc, parse_timestamp, to_iso


class Priority(Enum):
    """Deadline priority, ordered low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank >= other.rank


_PRIORITY_ORDER = [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]

# Linkage field per integration; a deadline carries at most one of them
LINKAGE_FIELDS = {
    'canvas': 'canvas_assignment_id',
    'blackboard': 'blackboard_content_id',
    'teams': 'teams_assignment_id',
}


@dataclass
class Deadline:
    """A canonical deadline, either manual or linked to one provider item"""

    id: str
    course: str
    task: str
    due_date: datetime
    source_due_date: Optional[datetime] = None
    priority: Priority = Priority.MEDIUM
    completed: bool = False
    canvas_assignment_id: Optional[str] = None
    blackboard_content_id: Optional[str] = None
    teams_assignment_id: Optional[str] = None

    def __post_init__(self):
        self.due_date = ensure_utc(self.due_date)
        self.source_due_date = ensure_utc(self.source_due_date)
        if not isinstance(self.priority, Priority):
            self.priority = Priority(self.priority)

        linked = [name for name in LINKAGE_FIELDS.values() if getattr(self, name)]
        if len(linked) > 1:
            raise ValueError(f"Deadline {self.id} has more than one linkage id: {linked}")

    @property
    def linkage(self) -> Optional[Tuple[str, str]]:
        """(integration, linkage id) for provider-linked deadlines, else None"""
        for integration, name in LINKAGE_FIELDS.items():
            value = getattr(self, name)
            if value:
                return integration, value
        return None

    @property
    def is_provider_linked(self) -> bool:
        return self.linkage is not None

    @property
    def effective_source_due_date(self) -> datetime:
        # Deadlines created before source tracking have no source value
        return self.source_due_date if self.source_due_date is not None else self.due_date

    @property
    def has_user_override(self) -> bool:
        return self.due_date != self.effective_source_due_date

    def with_changes(self, patch: Dict[str, Any]) -> 'Deadline':
        """Return a copy with the patch applied (id is immutable)"""
        allowed = {f.name for f in fields(self)} - {'id'}
        unknown = set(patch) - allowed
        if unknown:
            raise ValueError(f"Unknown deadline fields: {sorted(unknown)}")
        return replace(self, **patch)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'course': self.course,
            'task': self.task,
            'due_date': to_iso(self.due_date),
            'source_due_date': to_iso(self.source_due_date),
            'priority': self.priority.value,
            'completed': self.completed,
            'canvas_assignment_id': self.canvas_assignment_id,
            'blackboard_content_id': self.blackboard_content_id,
            'teams_assignment_id': self.teams_assignment_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Deadline':
        return cls(
            id=data['id'],
            course=data.get('course', ''),
            task=data.get('task', ''),
            due_date=parse_timestamp(data.get('due_date')),
            source_due_date=parse_timestamp(data.get('source_due_date')),
            priority=Priority(data.get('priority', Priority.MEDIUM.value)),
            completed=bool(data.get('completed', False)),
            canvas_assignment_id=data.get('canvas_assignment_id'),
            blackboard_content_id=data.get('blackboard_content_id'),
            teams_assignment_id=data.get('teams_assignment_id'),
        )
