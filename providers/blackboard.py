# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Blackboard Learn client - enrolled courses and assignment contents
"""
import logging
from typing import Dict, List, Optional

import config
from providers.base import ProviderClient

logger = logging.getLogger(__name__)

ASSIGNMENT_HANDLER = 'resource/x-bb-assignment'


class BlackboardClient(ProviderClient):
    """Read-only Blackboard Learn REST client"""

    name = 'Blackboard'

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        super().__init__(base_url or config.BLACKBOARD_BASE_URL, token or config.BLACKBOARD_API_TOKEN)

    def get_courses(self) -> List[Dict]:
        data = self._get_json('/learn/api/public/v1/users/me/courses', params={
            'availability.available': 'Yes',
            'expand': 'course'
        })
        courses = []
        for membership in data.get('results', []):
            # Memberships embed the course when expanded; fall back to the bare id
            course = membership.get('course') or {'id': membership.get('courseId')}
            if course.get('id'):
                courses.append(course)
        logger.info(f"📚 Found {len(courses)} available Blackboard courses")
        return courses

    def get_course_assignments(self, course: Dict) -> List[Dict]:
        data = self._get_json(
            f"/learn/api/public/v1/courses/{course['id']}/contents",
            params={'contentHandler.id': ASSIGNMENT_HANDLER}
        )
        contents = data.get('results', [])
        for content in contents:
            content['courseId'] = course['id']
        return contents
