# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Sync Failure Recovery - turn consecutive sync failures into actionable prompts

Each integration moves between three states:
- HEALTHY: no failures since the last success
- DEGRADED: failing, but below the prompt threshold
- ALERTING: at or above the threshold; a prompt is considered on every
  further failure, at most one per distinct failure count
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Dict, List, Optional, Any, Iterable

import config
from notifications import display_name
from utils.logger import StructuredLogger
from utils.timezone import utc_now, ensure_utc, to_iso

logger = logging.getLogger(__name__)

ROOT_CAUSE_AUTH = "Authentication or credentials are invalid."
ROOT_CAUSE_CONFIG = "Integration is not connected or required config is missing."
ROOT_CAUSE_RATE_LIMIT = "Provider rate limit reached."
ROOT_CAUSE_NETWORK = "Network or provider API appears unreachable."
ROOT_CAUSE_UNKNOWN = "Sync failed for an unknown reason."

RETRY_ACTION = "Open Settings > Integrations and run a manual sync retry."
RATE_LIMIT_ACTION = "Wait a few minutes for provider rate limits to reset before retrying."

INTEGRATION_ACTIONS = {
    'canvas': [
        "Verify Canvas API token and base URL are correct.",
        "Check Canvas course scope filters to avoid restricted courses.",
    ],
    'blackboard': [
        "Verify Blackboard API token and Learn base URL are correct.",
        "Confirm the Blackboard REST application is still authorized for your institution.",
    ],
    'teams': [
        "Reconnect Microsoft Teams and verify the education assignment scopes are granted.",
        "Retry Teams sync after reconnecting.",
    ],
}
DEFAULT_ACTIONS = [
    "Reconnect the integration and verify its credentials.",
    "Retry the sync after reconnecting.",
]

NETWORK_TERMS = ('network', 'fetch', 'timeout', 'timed out', 'econn', 'connection')


def _is_rate_limited(lowered: str) -> bool:
    return '429' in lowered or 'rate limit' in lowered


def infer_root_cause(error: str) -> str:
    """Map raw error text to a root cause sentence (first matching category wins)"""
    lowered = (error or '').lower()
    if any(term in lowered for term in ('401', '403', 'unauthorized', 'invalid')):
        return ROOT_CAUSE_AUTH
    if 'not connected' in lowered or 'missing' in lowered:
        return ROOT_CAUSE_CONFIG
    if _is_rate_limited(lowered):
        return ROOT_CAUSE_RATE_LIMIT
    if any(term in lowered for term in NETWORK_TERMS):
        return ROOT_CAUSE_NETWORK
    return ROOT_CAUSE_UNKNOWN


def build_suggested_actions(integration: str, error: str) -> List[str]:
    """Ordered remediation steps: retry, integration specifics, then rate-limit wait"""
    actions = [RETRY_ACTION]
    actions.extend(INTEGRATION_ACTIONS.get(integration, DEFAULT_ACTIONS))
    if _is_rate_limited((error or '').lower()):
        actions.append(RATE_LIMIT_ACTION)
    return actions


class HealthState(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ALERTING = "alerting"


@dataclass
class IntegrationFailureState:
    """Failure streak bookkeeping for one integration"""
    consecutive_failures: int = 0
    first_failure_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_prompt_failure_count: int = 0

    @property
    def health(self) -> HealthState:
        if self.consecutive_failures == 0:
            return HealthState.HEALTHY
        if self.consecutive_failures < config.PROMPT_THRESHOLD:
            return HealthState.DEGRADED
        return HealthState.ALERTING

    def reset(self, synced_at: datetime):
        self.consecutive_failures = 0
        self.first_failure_at = None
        self.last_failure_at = None
        self.last_error = None
        self.last_success_at = synced_at
        self.last_prompt_failure_count = 0


@dataclass
class RecoveryPrompt:
    id: str
    integration: str
    severity: str
    title: str
    message: str
    failure_count: int
    last_error: str
    root_cause_hint: str
    suggested_actions: List[str] = field(default_factory=list)
    is_data_stale: bool = False
    generated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'integration': self.integration,
            'severity': self.severity,
            'title': self.title,
            'message': self.message,
            'failure_count': self.failure_count,
            'last_error': self.last_error,
            'root_cause_hint': self.root_cause_hint,
            'suggested_actions': list(self.suggested_actions),
            'is_data_stale': self.is_data_stale,
            'generated_at': to_iso(self.generated_at),
        }


def stale_minutes_for(integration: str) -> int:
    return config.STALE_MINUTES_BY_INTEGRATION.get(integration, config.DEFAULT_STALE_MINUTES)


def is_data_stale(integration: str, state: IntegrationFailureState, reference: datetime) -> bool:
    """Stale when never synced (while failing) or last success is older than the max age"""
    if state.last_success_at is None:
        return state.consecutive_failures > 0
    max_age = timedelta(minutes=stale_minutes_for(integration))
    return ensure_utc(reference) - state.last_success_at > max_age


class SyncFailureRecoveryTracker:
    """Thread-safe per-integration failure tracker"""

    def __init__(self, integrations: Optional[Iterable[str]] = None):
        self._states: Dict[str, IntegrationFailureState] = {}
        self._lock = Lock()
        self.structured_logger = StructuredLogger(__name__)
        for integration in integrations or []:
            self._states[integration] = IntegrationFailureState()

    def _state(self, integration: str) -> IntegrationFailureState:
        # Caller holds the lock
        if integration not in self._states:
            self._states[integration] = IntegrationFailureState()
        return self._states[integration]

    @property
    def integrations(self) -> List[str]:
        with self._lock:
            return list(self._states)

    def get_state(self, integration: str) -> IntegrationFailureState:
        with self._lock:
            state = self._state(integration)
            return IntegrationFailureState(**vars(state))

    def record_success(self, integration: str, synced_at: Optional[datetime] = None):
        """Reset the failure streak"""
        synced_at = ensure_utc(synced_at) or utc_now()
        with self._lock:
            state = self._state(integration)
            recovered = state.consecutive_failures
            state.reset(synced_at)

        if recovered:
            logger.info(f"✅ {display_name(integration)} sync recovered after {recovered} failures")

    def record_failure(self, integration: str, error: str,
                       failed_at: Optional[datetime] = None) -> Optional[RecoveryPrompt]:
        """Record a failure; returns a prompt when one should be pushed"""
        failed_at = ensure_utc(failed_at) or utc_now()
        error = error or "Unknown sync error"

        with self._lock:
            state = self._state(integration)
            state.consecutive_failures += 1
            state.last_failure_at = failed_at
            state.last_error = error
            if state.first_failure_at is None:
                state.first_failure_at = failed_at

            count = state.consecutive_failures
            if state.health != HealthState.ALERTING:
                logger.warning(f"⚠️ {display_name(integration)} sync failed ({count}): {error}")
                return None

            stale = is_data_stale(integration, state, failed_at)
            should_prompt = stale or count >= config.COMPOUND_FAILURE_THRESHOLD
            if not should_prompt or count <= state.last_prompt_failure_count:
                logger.warning(f"⚠️ {display_name(integration)} sync failed ({count}), no new prompt: {error}")
                return None

            prompt = self._build_prompt(integration, state, failed_at)
            state.last_prompt_failure_count = count

        self.structured_logger.log_sync_event('recovery_prompt', {
            'integration': integration,
            'failure_count': prompt.failure_count,
            'severity': prompt.severity,
            'root_cause': prompt.root_cause_hint,
            'is_data_stale': prompt.is_data_stale
        })
        return prompt

    def get_snapshot(self, reference_time: Optional[datetime] = None) -> Dict[str, Any]:
        """Health of every known integration plus recomputed prompts for dashboards"""
        reference_time = ensure_utc(reference_time) or utc_now()
        prompts = []
        integrations = []

        with self._lock:
            for integration, state in self._states.items():
                integrations.append({
                    'integration': integration,
                    'state': state.health.value,
                    'consecutive_failures': state.consecutive_failures,
                    'first_failure_at': to_iso(state.first_failure_at),
                    'last_failure_at': to_iso(state.last_failure_at),
                    'last_success_at': to_iso(state.last_success_at),
                    'last_error': state.last_error,
                    'is_data_stale': is_data_stale(integration, state, reference_time),
                })
                if state.consecutive_failures >= config.PROMPT_THRESHOLD and state.last_error:
                    prompts.append(self._build_prompt(integration, state, reference_time))

        prompts.sort(key=lambda p: p.failure_count, reverse=True)
        return {
            'generated_at': to_iso(reference_time),
            'prompts': [p.to_dict() for p in prompts[:config.MAX_SNAPSHOT_PROMPTS]],
            'integrations': integrations,
        }

    @staticmethod
    def _build_prompt(integration: str, state: IntegrationFailureState,
                      reference: datetime) -> RecoveryPrompt:
        error = state.last_error or "Unknown sync error"
        stale = is_data_stale(integration, state, reference)
        count = state.consecutive_failures
        name = display_name(integration)

        return RecoveryPrompt(
            id=f"sync-recovery-{integration}-{count}",
            integration=integration,
            severity='high' if stale or count >= config.HIGH_SEVERITY_FAILURES else 'medium',
            title=f"{name} sync needs attention",
            message=f"{name} sync failed {count} times in a row.",
            failure_count=count,
            last_error=error,
            root_cause_hint=infer_root_cause(error),
            suggested_actions=build_suggested_actions(integration, error),
            is_data_stale=stale,
            generated_at=reference,
        )
