# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Auto-healing Policy - exponential backoff plus a circuit breaker for scheduled syncs

The circuit has three states:
- CLOSED: attempts allowed once the backoff window has passed
- OPEN: too many consecutive failures, attempts blocked until reopen time
- HALF_OPEN: reopen time passed, one trial attempt allowed
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Dict, Optional, Any, Tuple

import config
from utils.timezone import utc_now, ensure_utc, to_iso

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Possible states of the circuit breaker"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class SyncAutoHealingPolicy:
    """Decides whether a scheduled sync attempt may run right now"""

    def __init__(
        self,
        integration: str,
        base_backoff_seconds: Optional[int] = None,
        max_backoff_seconds: Optional[int] = None,
        circuit_failure_threshold: Optional[int] = None,
        circuit_open_seconds: Optional[int] = None
    ):
        self.integration = integration
        self.base_backoff_seconds = base_backoff_seconds or config.AUTO_HEAL_BASE_BACKOFF_SECONDS
        self.max_backoff_seconds = max_backoff_seconds or config.AUTO_HEAL_MAX_BACKOFF_SECONDS
        self.circuit_failure_threshold = circuit_failure_threshold or config.CIRCUIT_BREAKER_FAIL_MAX
        self.circuit_open_seconds = circuit_open_seconds or config.CIRCUIT_BREAKER_RESET_TIMEOUT

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._next_attempt_at: Optional[datetime] = None
        self._circuit_open_until: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_skip_reason: Optional[str] = None
        self._lock = Lock()

        # Statistics
        self._skipped_attempts = 0
        self._circuit_opened_count = 0

    def backoff_seconds(self, failures: int) -> int:
        """Backoff after ``failures`` consecutive failures"""
        if failures <= 0:
            return 0
        return min(self.base_backoff_seconds * (2 ** (failures - 1)), self.max_backoff_seconds)

    def _update_state(self, now: datetime):
        if self._state == CircuitState.OPEN and self._circuit_open_until and now >= self._circuit_open_until:
            logger.info(f"{self.integration}: Transitioning from OPEN to HALF_OPEN")
            self._state = CircuitState.HALF_OPEN

    def can_attempt(self, now: Optional[datetime] = None) -> Tuple[bool, Optional[str]]:
        """(allowed, reason) where reason is 'circuit_open' or 'backoff' when blocked"""
        now = ensure_utc(now) or utc_now()
        with self._lock:
            self._update_state(now)
            if self._state == CircuitState.OPEN:
                return False, 'circuit_open'
            if self._next_attempt_at and now < self._next_attempt_at:
                return False, 'backoff'
            return True, None

    def record_success(self, now: Optional[datetime] = None):
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"{self.integration}: Transitioning from {self._state.name} to CLOSED")
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._next_attempt_at = None
            self._circuit_open_until = None
            self._last_error = None

    def record_failure(self, error: Optional[str] = None, now: Optional[datetime] = None):
        now = ensure_utc(now) or utc_now()
        with self._lock:
            self._update_state(now)
            self._consecutive_failures += 1
            self._last_error = error
            self._next_attempt_at = now + timedelta(seconds=self.backoff_seconds(self._consecutive_failures))

            reopen = (
                self._state == CircuitState.HALF_OPEN
                or (self._state == CircuitState.CLOSED
                    and self._consecutive_failures >= self.circuit_failure_threshold)
            )
            if reopen:
                logger.error(
                    f"{self.integration}: {self._consecutive_failures} consecutive failures, "
                    f"opening circuit for {self.circuit_open_seconds}s"
                )
                self._state = CircuitState.OPEN
                self._circuit_opened_count += 1
                self._circuit_open_until = now + timedelta(seconds=self.circuit_open_seconds)

            if self._state == CircuitState.OPEN:
                self._next_attempt_at = max(self._next_attempt_at, self._circuit_open_until)

    def record_skip(self, reason: str):
        with self._lock:
            self._skipped_attempts += 1
            self._last_skip_reason = reason
        logger.info(f"⏭️ Skipping scheduled {self.integration} sync ({reason})")

    @property
    def next_attempt_at(self) -> Optional[datetime]:
        with self._lock:
            return self._next_attempt_at

    def get_state(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = ensure_utc(now) or utc_now()
        with self._lock:
            self._update_state(now)
            return {
                'integration': self.integration,
                'circuit_state': self._state.value,
                'consecutive_failures': self._consecutive_failures,
                'next_attempt_at': to_iso(self._next_attempt_at),
                'circuit_open_until': to_iso(self._circuit_open_until),
                'last_error': self._last_error,
                'skipped_attempts': self._skipped_attempts,
                'last_skip_reason': self._last_skip_reason,
                'circuit_opened_count': self._circuit_opened_count,
            }
