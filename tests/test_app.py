"""
HTTP endpoint tests using the Flask test client
"""

import pytest
from datetime import timedelta
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from store.deadline_store import DeadlineStore
from sync.scheduler import SyncScheduler
from utils.timezone import utc_now

USER = 'student-1'


class StaticClient:
    def __init__(self, configured=True):
        self.configured = configured

    def is_configured(self):
        return self.configured

    def get_courses(self):
        return [{'id': 'c-1', 'displayName': 'Biology'}]

    def get_all_assignments(self, courses):
        due = (utc_now() + timedelta(days=2)).replace(microsecond=0)
        return [{'id': 'a-1', 'displayName': 'Lab report', 'dueDateTime': due.isoformat(),
                 'classId': 'c-1', 'status': 'assigned'}]


def client_factory(integration, base_url=None, token=None):
    # Blackboard is left unconfigured to exercise the failure path
    return StaticClient(configured=integration != 'blackboard')


@pytest.fixture
def sync_scheduler():
    return SyncScheduler(
        store=DeadlineStore(),
        user_id=USER,
        integrations=['teams', 'blackboard'],
        client_factory=client_factory
    )


@pytest.fixture
def client(sync_scheduler):
    app = create_app(sync_scheduler)
    app.config['TESTING'] = True
    return app.test_client()


class TestEndpoints:

    @pytest.mark.api
    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'
        assert response.headers['X-Content-Type-Options'] == 'nosniff'

    @pytest.mark.api
    def test_trigger_creates_deadlines(self, client):
        response = client.post('/api/sync/teams/trigger')

        body = response.get_json()
        assert response.status_code == 200
        assert body['success'] is True
        assert body['deadline_bridge']['created'] == 1

        deadlines = client.get('/api/deadlines').get_json()
        assert deadlines['count'] == 1
        assert deadlines['deadlines'][0]['teams_assignment_id'] == 'a-1'
        assert deadlines['deadlines'][0]['course'] == 'Biology'

    @pytest.mark.api
    def test_trigger_unknown_integration(self, client):
        response = client.post('/api/sync/moodle/trigger')

        assert response.status_code == 404

    @pytest.mark.api
    def test_trigger_failure_reports_error(self, client):
        response = client.post('/api/sync/blackboard/trigger', json={})

        assert response.status_code == 502
        assert response.get_json()['error'] == 'Blackboard not connected: credentials missing'

    @pytest.mark.api
    def test_trigger_with_override_credentials(self, client):
        response = client.post('/api/sync/blackboard/trigger',
                               json={'base_url': 'https://bb.test', 'token': 'tok'})

        # Override client is still built by the factory, which leaves Blackboard unconfigured
        assert response.status_code == 502
        assert response.get_json()['trigger'] == 'manual_override'

    @pytest.mark.api
    def test_recovery_snapshot_after_repeated_failures(self, client):
        client.post('/api/sync/blackboard/trigger')
        client.post('/api/sync/blackboard/trigger')

        snapshot = client.get('/api/sync/recovery').get_json()

        assert [i['integration'] for i in snapshot['integrations']] == ['teams', 'blackboard']
        assert snapshot['prompts'][0]['integration'] == 'blackboard'
        assert snapshot['prompts'][0]['failure_count'] == 2

        notifications = client.get('/api/notifications?source=blackboard').get_json()
        assert len(notifications['notifications']) == 1

    @pytest.mark.api
    def test_recovery_rejects_bad_timestamp(self, client):
        response = client.get('/api/sync/recovery?at=yesterday')

        assert response.status_code == 400

    @pytest.mark.api
    def test_status_and_history(self, client):
        client.post('/api/sync/teams/trigger')

        status = client.get('/api/sync/status').get_json()
        history = client.get('/api/history?integration=teams').get_json()

        assert set(status['services']) == {'teams', 'blackboard'}
        assert status['services']['teams']['auto_healing']['circuit_state'] == 'closed'
        assert history['statistics']['total_syncs'] == 1
        assert history['recent_failures'] == []
