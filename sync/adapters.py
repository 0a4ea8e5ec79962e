# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Provider adapters - how the reconciler reads each provider's raw records
"""
from datetime import datetime
from typing import Any, Dict, Optional

from models import Priority, LINKAGE_FIELDS
from utils.timezone import parse_timestamp

CANVAS_SUBMITTED_STATES = {'submitted', 'graded', 'pending_review'}


def priority_from_points(points: Any) -> Priority:
    """Infer priority from points possible (>=100 high, >=50 medium, else low)"""
    try:
        value = float(points)
    except (TypeError, ValueError):
        return Priority.LOW

    if value >= 100:
        return Priority.HIGH
    if value >= 50:
        return Priority.MEDIUM
    return Priority.LOW


def _as_id(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


class ProviderAdapter:
    """Reads one provider's assignment and course records

    The reconciler never touches raw provider fields directly, so adding a
    provider means adding an adapter, not another reconciler.
    """

    integration = None
    fallback_course_label = 'Unknown Course'

    @property
    def linkage_field(self) -> str:
        return LINKAGE_FIELDS[self.integration]

    def external_id(self, assignment: Dict) -> Optional[str]:
        return _as_id(assignment.get('id'))

    def due_date(self, assignment: Dict) -> Optional[datetime]:
        raise NotImplementedError

    def title(self, assignment: Dict) -> str:
        raise NotImplementedError

    def course_id(self, assignment: Dict) -> Optional[str]:
        raise NotImplementedError

    def course_key(self, course: Dict) -> Optional[str]:
        return _as_id(course.get('id'))

    def course_name(self, course: Dict) -> Optional[str]:
        return course.get('name')

    def default_priority(self, assignment: Dict) -> Priority:
        return Priority.MEDIUM

    def is_submitted(self, assignment: Dict) -> bool:
        return False


class CanvasAdapter(ProviderAdapter):
    integration = 'canvas'

    def due_date(self, assignment):
        return parse_timestamp(assignment.get('due_at'))

    def title(self, assignment):
        return assignment.get('name') or 'Untitled assignment'

    def course_id(self, assignment):
        return _as_id(assignment.get('course_id'))

    def course_name(self, course):
        return course.get('name') or course.get('course_code')

    def default_priority(self, assignment):
        return priority_from_points(assignment.get('points_possible'))

    def is_submitted(self, assignment):
        submission = assignment.get('submission') or {}
        return submission.get('workflow_state') in CANVAS_SUBMITTED_STATES


class BlackboardAdapter(ProviderAdapter):
    integration = 'blackboard'

    def due_date(self, assignment):
        availability = assignment.get('availability') or {}
        adaptive_release = availability.get('adaptiveRelease') or {}
        return parse_timestamp(adaptive_release.get('end'))

    def title(self, assignment):
        return assignment.get('title') or 'Untitled assignment'

    def course_id(self, assignment):
        return _as_id(assignment.get('courseId'))

    def course_name(self, course):
        return course.get('name') or course.get('courseId')

    def default_priority(self, assignment):
        score = assignment.get('score') or {}
        return priority_from_points(score.get('possible'))


class TeamsAdapter(ProviderAdapter):
    integration = 'teams'
    fallback_course_label = 'Teams Class'

    def due_date(self, assignment):
        return parse_timestamp(assignment.get('dueDateTime'))

    def title(self, assignment):
        return assignment.get('displayName') or 'Untitled assignment'

    def course_id(self, assignment):
        return _as_id(assignment.get('classId'))

    def course_name(self, course):
        return course.get('displayName')

    def default_priority(self, assignment):
        grading = assignment.get('grading') or {}
        return priority_from_points(grading.get('maxPoints'))

    def is_submitted(self, assignment):
        status = assignment.get('status')
        return bool(status) and status != 'assigned'


ADAPTERS = {
    'canvas': CanvasAdapter(),
    'blackboard': BlackboardAdapter(),
    'teams': TeamsAdapter(),
}


def get_adapter(integration: str) -> ProviderAdapter:
    try:
        return ADAPTERS[integration]
    except KeyError:
        raise ValueError(f"No adapter for integration: {integration}")
