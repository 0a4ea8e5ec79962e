# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Notification sink - new deadline releases and sync recovery prompts
"""
import logging
import uuid
from collections import deque
from threading import Lock
from typing import Dict, List, Optional, Any

import config
from models import Deadline
from utils.logger import StructuredLogger
from utils.timezone import utc_now, format_display

logger = logging.getLogger(__name__)

NOTIFICATION_PRIORITIES = ('low', 'medium', 'high', 'critical')

INTEGRATION_DISPLAY_NAMES = {
    'canvas': 'Canvas',
    'blackboard': 'Blackboard',
    'teams': 'Teams',
}


def display_name(integration: str) -> str:
    """Human name for an integration id"""
    return INTEGRATION_DISPLAY_NAMES.get(integration, integration.replace('_', ' ').title())


class NotificationCenter:
    """Keeps recent notifications in memory and logs each one"""

    def __init__(self, max_notifications: Optional[int] = None):
        self._notifications = deque(maxlen=max_notifications or config.MAX_NOTIFICATIONS)
        self._lock = Lock()
        self.structured_logger = StructuredLogger(__name__)

    def push_notification(self, source: str, title: str, message: str,
                          priority: str = 'medium', metadata: Optional[Dict[str, Any]] = None) -> Dict:
        """Record a notification; unknown priorities fall back to medium"""
        if priority not in NOTIFICATION_PRIORITIES:
            logger.warning(f"Unknown notification priority '{priority}', using medium")
            priority = 'medium'

        notification = {
            'id': f"notification-{uuid.uuid4().hex[:12]}",
            'source': source,
            'title': title,
            'message': message,
            'priority': priority,
            'timestamp': utc_now().isoformat(),
            'metadata': metadata or {}
        }

        with self._lock:
            self._notifications.append(notification)

        self.structured_logger.log_sync_event('notification_pushed', {
            'source': source,
            'title': title,
            'priority': priority
        })
        return notification

    def get_notifications(self, source: Optional[str] = None) -> List[Dict]:
        """Most recent first"""
        with self._lock:
            items = list(self._notifications)
        if source:
            items = [n for n in items if n['source'] == source]
        return list(reversed(items))


def publish_new_deadline_release_notifications(
    notifier: NotificationCenter,
    user_id: str,
    source_integration: str,
    created_deadlines: List[Deadline]
) -> List[Dict]:
    """Notify about newly released deadlines

    Small batches get one notification per deadline; larger batches (e.g. the
    first sync of a semester) collapse into a single summary.
    """
    if not created_deadlines:
        return []

    name = display_name(source_integration)
    ordered = sorted(created_deadlines, key=lambda d: d.due_date)

    if len(ordered) > config.RELEASE_NOTIFICATION_BATCH_THRESHOLD:
        top_priority = max(d.priority for d in ordered)
        preview = ", ".join(d.task for d in ordered[:3])
        notification = notifier.push_notification(
            source=source_integration,
            title=f"{len(ordered)} new {name} deadlines",
            message=f"Next up: {preview}",
            priority=top_priority.value,
            metadata={'user_id': user_id, 'deadline_ids': [d.id for d in ordered]}
        )
        return [notification]

    published = []
    for deadline in ordered:
        published.append(notifier.push_notification(
            source=source_integration,
            title=f"New {name} deadline: {deadline.task}",
            message=f"{deadline.course} - due {format_display(deadline.due_date)}",
            priority=deadline.priority.value,
            metadata={'user_id': user_id, 'deadline_id': deadline.id}
        ))
    return published


def publish_recovery_prompt(notifier: NotificationCenter, prompt) -> Dict:
    """Route a sync recovery prompt into the notification feed"""
    steps = " ".join(f"{i}. {action}" for i, action in enumerate(prompt.suggested_actions, 1))
    return notifier.push_notification(
        source=prompt.integration,
        title=prompt.title,
        message=f"{prompt.message} {prompt.root_cause_hint} {steps}",
        priority=prompt.severity,
        metadata={'prompt_id': prompt.id, 'failure_count': prompt.failure_count}
    )
