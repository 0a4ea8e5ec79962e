# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Microsoft Teams for Education client (Graph education endpoints)
"""
import logging
from typing import Dict, List, Optional

import config
from providers.base import ProviderClient

logger = logging.getLogger(__name__)


class TeamsClient(ProviderClient):
    """Read-only Graph client for education classes and assignments"""

    name = 'Teams'

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        super().__init__(base_url or config.GRAPH_BASE_URL, token or config.TEAMS_ACCESS_TOKEN)

    def get_courses(self) -> List[Dict]:
        classes = self._get_json('/education/me/classes').get('value', [])
        logger.info(f"📚 Found {len(classes)} Teams classes")
        return classes

    def get_course_assignments(self, course: Dict) -> List[Dict]:
        assignments = self._get_json(
            f"/education/classes/{course['id']}/assignments"
        ).get('value', [])
        for assignment in assignments:
            assignment['classId'] = course['id']
        return assignments
