"""
Auto-healing policy tests - backoff growth and circuit breaker transitions
"""

import pytest
from datetime import datetime, timedelta
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytz

from sync.auto_healing import SyncAutoHealingPolicy, CircuitState

NOW = datetime(2025, 2, 1, 12, 0, tzinfo=pytz.UTC)


@pytest.fixture
def policy():
    return SyncAutoHealingPolicy(
        'canvas',
        base_backoff_seconds=30,
        max_backoff_seconds=3600,
        circuit_failure_threshold=4,
        circuit_open_seconds=1200
    )


class TestBackoff:

    @pytest.mark.unit
    def test_fresh_policy_allows_attempts(self, policy):
        assert policy.can_attempt(NOW) == (True, None)
        assert policy.get_state(NOW)['circuit_state'] == CircuitState.CLOSED.value

    @pytest.mark.unit
    def test_backoff_doubles_and_caps(self, policy):
        assert [policy.backoff_seconds(n) for n in range(1, 5)] == [30, 60, 120, 240]
        assert policy.backoff_seconds(20) == 3600

    @pytest.mark.unit
    def test_failure_blocks_until_backoff_passes(self, policy):
        policy.record_failure('timeout', NOW)

        assert policy.can_attempt(NOW + timedelta(seconds=10)) == (False, 'backoff')
        assert policy.can_attempt(NOW + timedelta(seconds=30)) == (True, None)
        assert policy.next_attempt_at == NOW + timedelta(seconds=30)

    @pytest.mark.unit
    def test_success_resets(self, policy):
        policy.record_failure('timeout', NOW)
        policy.record_failure('timeout', NOW)
        policy.record_success(NOW)

        state = policy.get_state(NOW)
        assert state['consecutive_failures'] == 0
        assert state['next_attempt_at'] is None
        assert policy.can_attempt(NOW) == (True, None)

    @pytest.mark.unit
    def test_skips_are_counted(self, policy):
        policy.record_skip('backoff')
        policy.record_skip('circuit_open')

        state = policy.get_state(NOW)
        assert state['skipped_attempts'] == 2
        assert state['last_skip_reason'] == 'circuit_open'


class TestCircuit:

    @pytest.mark.unit
    def test_circuit_opens_at_threshold(self, policy):
        for _ in range(4):
            policy.record_failure('401 Unauthorized', NOW)

        state = policy.get_state(NOW)
        assert state['circuit_state'] == 'open'
        assert state['integration'] == 'canvas'
        assert policy.can_attempt(NOW + timedelta(seconds=600)) == (False, 'circuit_open')
        assert policy.next_attempt_at == NOW + timedelta(seconds=1200)

    @pytest.mark.unit
    def test_half_open_after_open_period(self, policy):
        for _ in range(4):
            policy.record_failure('401 Unauthorized', NOW)

        later = NOW + timedelta(seconds=1200)
        assert policy.can_attempt(later) == (True, None)
        assert policy.get_state(later)['circuit_state'] == 'half_open'

    @pytest.mark.unit
    def test_half_open_failure_reopens(self, policy):
        for _ in range(4):
            policy.record_failure('401 Unauthorized', NOW)

        later = NOW + timedelta(seconds=1200)
        policy.can_attempt(later)
        policy.record_failure('401 Unauthorized', later)

        assert policy.get_state(later)['circuit_state'] == 'open'
        assert policy.get_state(later)['circuit_opened_count'] == 2
        assert policy.can_attempt(later + timedelta(seconds=60)) == (False, 'circuit_open')

    @pytest.mark.unit
    def test_half_open_success_closes(self, policy):
        for _ in range(4):
            policy.record_failure('401 Unauthorized', NOW)

        later = NOW + timedelta(seconds=1200)
        policy.can_attempt(later)
        policy.record_success(later)

        assert policy.get_state(later)['circuit_state'] == 'closed'
