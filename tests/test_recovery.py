"""
Sync failure recovery tests - prompt thresholds, staleness and root causes
"""

import pytest
from datetime import datetime, timedelta
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytz

from sync.recovery import (
    SyncFailureRecoveryTracker, HealthState, infer_root_cause, build_suggested_actions,
    ROOT_CAUSE_AUTH, ROOT_CAUSE_CONFIG, ROOT_CAUSE_RATE_LIMIT, ROOT_CAUSE_NETWORK,
    ROOT_CAUSE_UNKNOWN, RETRY_ACTION, RATE_LIMIT_ACTION
)

T0 = datetime(2025, 2, 1, 9, 0, tzinfo=pytz.UTC)


def minutes(n):
    return T0 + timedelta(minutes=n)


@pytest.fixture
def tracker():
    return SyncFailureRecoveryTracker(['canvas', 'blackboard', 'teams'])


class TestPromptEmission:

    @pytest.mark.recovery
    def test_single_failure_never_prompts(self, tracker):
        assert tracker.record_failure('canvas', 'Canvas not connected', T0) is None
        assert tracker.get_state('canvas').health == HealthState.DEGRADED

    @pytest.mark.recovery
    def test_second_failure_without_success_prompts(self, tracker):
        tracker.record_failure('teams', 'Teams not connected: credentials missing', T0)
        prompt = tracker.record_failure('teams', 'Teams not connected: credentials missing', minutes(5))

        assert prompt is not None
        assert prompt.failure_count == 2
        assert 'not connected' in prompt.root_cause_hint
        assert len(prompt.suggested_actions) > 1
        assert prompt.is_data_stale is True
        assert prompt.severity == 'high'
        assert prompt.id == 'sync-recovery-teams-2'
        assert prompt.title == 'Teams sync needs attention'
        assert prompt.message == 'Teams sync failed 2 times in a row.'
        assert tracker.get_state('teams').health == HealthState.ALERTING

    @pytest.mark.recovery
    def test_fresh_data_delays_prompt_until_third_failure(self, tracker):
        tracker.record_success('canvas', T0)

        assert tracker.record_failure('canvas', 'Canvas API error: 401 Unauthorized', minutes(10)) is None
        assert tracker.record_failure('canvas', 'Canvas API error: 401 Unauthorized', minutes(20)) is None

        prompt = tracker.record_failure('canvas', 'Canvas API error: 401 Unauthorized', minutes(30))

        assert prompt is not None
        assert prompt.failure_count == 3
        assert 'authentication' in prompt.root_cause_hint.lower()
        assert prompt.severity == 'medium'
        assert prompt.is_data_stale is False

    @pytest.mark.recovery
    def test_one_prompt_per_failure_count(self, tracker):
        counts = []
        for i in range(6):
            prompt = tracker.record_failure('blackboard', 'connection refused', minutes(i))
            if prompt:
                counts.append(prompt.failure_count)

        assert counts == [2, 3, 4, 5, 6]
        assert len(set(counts)) == len(counts)

    @pytest.mark.recovery
    def test_fourth_failure_is_high_severity(self, tracker):
        tracker.record_success('canvas', T0)
        prompts = [tracker.record_failure('canvas', 'timeout', minutes(i)) for i in range(1, 5)]

        assert prompts[2].severity == 'medium'
        assert prompts[3].severity == 'high'

    @pytest.mark.recovery
    def test_staleness_window_per_integration(self, tracker):
        tracker.record_success('canvas', T0)
        tracker.record_failure('canvas', 'timeout', minutes(170))

        prompt = tracker.record_failure('canvas', 'timeout', minutes(181))

        assert prompt is not None
        assert prompt.is_data_stale is True

    @pytest.mark.recovery
    def test_unknown_integration_uses_daily_window(self, tracker):
        tracker.record_success('moodle', T0)
        tracker.record_failure('moodle', 'boom', minutes(200))

        assert tracker.record_failure('moodle', 'boom', minutes(210)) is None
        assert 'moodle' in tracker.integrations


class TestReset:

    @pytest.mark.recovery
    def test_success_clears_streak(self, tracker):
        tracker.record_failure('teams', 'network down', T0)
        tracker.record_failure('teams', 'network down', minutes(5))
        tracker.record_success('teams', minutes(10))

        snapshot = tracker.get_snapshot(minutes(11))
        teams = next(i for i in snapshot['integrations'] if i['integration'] == 'teams')

        assert teams['consecutive_failures'] == 0
        assert teams['last_error'] is None
        assert teams['first_failure_at'] is None
        assert teams['state'] == 'healthy'
        assert all(p['integration'] != 'teams' for p in snapshot['prompts'])

    @pytest.mark.recovery
    def test_success_is_idempotent(self, tracker):
        tracker.record_success('canvas', T0)
        tracker.record_success('canvas', T0)

        state = tracker.get_state('canvas')
        assert state.consecutive_failures == 0
        assert state.last_success_at == T0

    @pytest.mark.recovery
    def test_new_streak_prompts_again(self, tracker):
        tracker.record_failure('canvas', 'missing token', T0)
        assert tracker.record_failure('canvas', 'missing token', minutes(1)) is not None

        tracker.record_success('canvas', minutes(2))
        tracker.record_failure('canvas', 'missing token', minutes(3))
        tracker.record_failure('canvas', 'missing token', minutes(4))

        assert tracker.record_failure('canvas', 'missing token', minutes(5)).failure_count == 3


class TestSnapshot:

    @pytest.mark.recovery
    def test_lists_all_configured_integrations(self, tracker):
        snapshot = tracker.get_snapshot(T0)

        assert [i['integration'] for i in snapshot['integrations']] == ['canvas', 'blackboard', 'teams']
        assert snapshot['prompts'] == []
        assert snapshot['generated_at'] == T0.isoformat()

    @pytest.mark.recovery
    def test_prompts_sorted_and_not_deduplicated(self, tracker):
        for i in range(2):
            tracker.record_failure('canvas', '401', minutes(i))
        for i in range(4):
            tracker.record_failure('teams', '429 rate limit', minutes(i))

        first = tracker.get_snapshot(minutes(10))
        second = tracker.get_snapshot(minutes(10))

        assert [p['failure_count'] for p in first['prompts']] == [4, 2]
        assert first['prompts'] == second['prompts']
        assert first['prompts'][0]['suggested_actions'][-1] == RATE_LIMIT_ACTION

    @pytest.mark.recovery
    def test_snapshot_capped(self):
        tracker = SyncFailureRecoveryTracker()
        for n in range(8):
            for i in range(2 + n):
                tracker.record_failure(f"lms{n}", 'boom', minutes(i))

        snapshot = tracker.get_snapshot(minutes(30))

        assert len(snapshot['integrations']) == 8
        assert len(snapshot['prompts']) == 6
        assert snapshot['prompts'][0]['failure_count'] == 9


class TestRootCause:

    @pytest.mark.unit
    @pytest.mark.parametrize('error,expected', [
        ('Canvas API error: 401 Unauthorized', ROOT_CAUSE_AUTH),
        ('403 Forbidden', ROOT_CAUSE_AUTH),
        ('invalid_grant', ROOT_CAUSE_AUTH),
        ('Blackboard not connected: credentials missing', ROOT_CAUSE_CONFIG),
        ('429 Too Many Requests', ROOT_CAUSE_RATE_LIMIT),
        ('Rate limit exceeded', ROOT_CAUSE_RATE_LIMIT),
        ('Read timed out', ROOT_CAUSE_NETWORK),
        ('ECONNRESET', ROOT_CAUSE_NETWORK),
        ('Failed to fetch', ROOT_CAUSE_NETWORK),
        ('Max retries exceeded (Caused by NewConnectionError)', ROOT_CAUSE_NETWORK),
        ('something odd', ROOT_CAUSE_UNKNOWN),
        ('', ROOT_CAUSE_UNKNOWN),
    ])
    def test_infer_root_cause(self, error, expected):
        assert infer_root_cause(error) == expected

    @pytest.mark.unit
    def test_auth_wins_over_rate_limit(self):
        assert infer_root_cause('401 and 429') == ROOT_CAUSE_AUTH

    @pytest.mark.unit
    def test_suggested_actions_order(self):
        actions = build_suggested_actions('canvas', 'HTTP 429')

        assert actions[0] == RETRY_ACTION
        assert 'Canvas' in actions[1]
        assert actions[-1] == RATE_LIMIT_ACTION
        assert len(actions) == 4

    @pytest.mark.unit
    def test_suggested_actions_differ_per_integration(self):
        canvas = build_suggested_actions('canvas', 'boom')
        teams = build_suggested_actions('teams', 'boom')
        other = build_suggested_actions('moodle', 'boom')

        assert canvas[0] == teams[0] == other[0] == RETRY_ACTION
        assert canvas[1:] != teams[1:] != other[1:]
        assert len(other) == 3
