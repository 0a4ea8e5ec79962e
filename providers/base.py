# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Provider Client - shared bearer-token REST plumbing for LMS providers
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

import config
from utils.logger import StructuredLogger
from utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A provider request failed; the message carries the HTTP status when known"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """Credentials or base URL are missing"""
    pass


class ProviderClient:
    """Base class for read-only provider REST clients

    Subclasses implement ``get_courses`` and ``get_course_assignments``;
    ``get_all_assignments`` walks every course and isolates per-course
    failures so one broken course never blocks the rest.
    """

    name = 'provider'

    def __init__(self, base_url: Optional[str], token: Optional[str]):
        self.base_url = (base_url or '').rstrip('/')
        self.token = token or None
        self.session = requests.Session()
        self.structured_logger = StructuredLogger(f"{__name__}.{self.name}")

    def is_configured(self) -> bool:
        return bool(self.token) and bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {(self.token or '').strip()}",
            'Accept': 'application/json'
        }

    def _ensure_configured(self):
        if not self.token:
            raise ProviderNotConfiguredError(f"{self.name} API token not configured (missing)")
        if not self.base_url:
            raise ProviderNotConfiguredError(f"{self.name} base URL not configured (missing)")

    @retry_with_backoff(max_retries=config.MAX_RETRIES, base_delay=config.BASE_DELAY)
    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """GET with retry on transport errors; non-2xx raises ProviderError"""
        self._ensure_configured()

        started = time.monotonic()
        try:
            response = self.session.get(url, headers=self._headers(), params=params,
                                        timeout=config.REQUEST_TIMEOUT)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            self.structured_logger.log_api_call('GET', url, error=str(e))
            raise

        duration_ms = (time.monotonic() - started) * 1000
        self.structured_logger.log_api_call('GET', url, status_code=response.status_code,
                                            duration_ms=duration_ms)

        if not response.ok:
            body = (response.text or '').strip()[:200]
            details = f": {body}" if body else ''
            raise ProviderError(
                f"{self.name} API error for {url}: {response.status_code} {response.reason}{details}",
                status_code=response.status_code
            )

        return response

    def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._get(f"{self.base_url}{endpoint}", params=params).json()

    def get_courses(self) -> List[Dict]:
        raise NotImplementedError

    def get_course_assignments(self, course: Dict) -> List[Dict]:
        raise NotImplementedError

    def get_all_assignments(self, courses: List[Dict]) -> List[Dict]:
        """Fetch assignments for every course, skipping courses that fail"""
        return self._collect_per_course(courses, self.get_course_assignments, 'assignments')

    def _collect_per_course(self, courses: List[Dict], fetch: Callable[[Dict], List[Dict]],
                            label: str) -> List[Dict]:
        collected = []
        for course in courses:
            try:
                collected.extend(fetch(course))
            except (ProviderError, requests.exceptions.RequestException, ValueError) as e:
                logger.error(f"❌ Failed to fetch {self.name} {label} for course {course.get('id')}: {e}")
        logger.info(f"Retrieved {len(collected)} {self.name} {label} from {len(courses)} courses")
        return collected
