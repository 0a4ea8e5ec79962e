# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Canvas LMS client - active courses and their assignments with submission state
"""
import logging
from typing import Dict, List, Optional

import config
from providers.base import ProviderClient

logger = logging.getLogger(__name__)


class CanvasClient(ProviderClient):
    """Read-only Canvas REST client"""

    name = 'Canvas'

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        super().__init__(base_url or config.CANVAS_BASE_URL, token or config.CANVAS_API_TOKEN)

    def _get_paginated(self, endpoint: str, params: Optional[Dict] = None) -> List[Dict]:
        """Follow the Link: rel="next" header until exhausted or MAX_PAGES"""
        url = f"{self.base_url}{endpoint}"
        items = []
        pages = 0

        while url and pages < config.MAX_PAGES:
            response = self._get(url, params=params)
            page = response.json()
            if isinstance(page, list):
                items.extend(page)
            pages += 1

            # The next link already carries the query string
            params = None
            url = response.links.get('next', {}).get('url')

        if url:
            logger.warning(f"⚠️ Stopped Canvas pagination at {config.MAX_PAGES} pages for {endpoint}")

        return items

    def get_courses(self) -> List[Dict]:
        courses = self._get_paginated('/api/v1/courses', params={
            'enrollment_state': 'active',
            'per_page': 100
        })
        logger.info(f"📚 Found {len(courses)} active Canvas courses")
        return courses

    def get_course_assignments(self, course: Dict) -> List[Dict]:
        assignments = self._get_paginated(
            f"/api/v1/courses/{course['id']}/assignments",
            params={'include[]': 'submission', 'per_page': 100}
        )
        for assignment in assignments:
            assignment.setdefault('course_id', course['id'])
        return assignments
