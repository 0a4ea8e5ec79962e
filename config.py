# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Environment-based configuration for Deadline Bridge
"""
import os

# Environment Detection
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
DEBUG = ENVIRONMENT == 'development'

# Owner of the synced deadlines
DEFAULT_USER_ID = os.environ.get('DEFAULT_USER_ID', 'default-user')

# Canvas LMS
CANVAS_BASE_URL = os.environ.get('CANVAS_BASE_URL', 'https://canvas.instructure.com')
CANVAS_API_TOKEN = os.environ.get('CANVAS_API_TOKEN', '')

# Blackboard Learn
BLACKBOARD_BASE_URL = os.environ.get('BLACKBOARD_BASE_URL', '')
BLACKBOARD_API_TOKEN = os.environ.get('BLACKBOARD_API_TOKEN', '')

# Microsoft Teams for Education (Graph)
GRAPH_BASE_URL = os.environ.get('GRAPH_BASE_URL', 'https://graph.microsoft.com/v1.0')
TEAMS_ACCESS_TOKEN = os.environ.get('TEAMS_ACCESS_TOKEN', '')

# Integrations to run, in scheduling order
ENABLED_INTEGRATIONS = [
    name.strip()
    for name in os.environ.get('ENABLED_INTEGRATIONS', 'canvas,blackboard,teams').split(',')
    if name.strip()
]

# Application Settings
PORT = int(os.environ.get('PORT', 5000))

# Sync Intervals
SYNC_INTERVAL_MIN = int(os.environ.get('SYNC_INTERVAL_MIN', 30))
STARTUP_DELAY_SECONDS = int(os.environ.get('STARTUP_DELAY_SECONDS', 0))
SCHEDULER_POLL_SECONDS = float(os.environ.get('SCHEDULER_POLL_SECONDS', 1.0))

# Failure Recovery Prompts
PROMPT_THRESHOLD = int(os.environ.get('PROMPT_THRESHOLD', 2))
COMPOUND_FAILURE_THRESHOLD = int(os.environ.get('COMPOUND_FAILURE_THRESHOLD', 3))
HIGH_SEVERITY_FAILURES = int(os.environ.get('HIGH_SEVERITY_FAILURES', 4))
MAX_SNAPSHOT_PROMPTS = int(os.environ.get('MAX_SNAPSHOT_PROMPTS', 6))

# Minutes since last success before an integration's data is stale
STALE_MINUTES_BY_INTEGRATION = {
    'canvas': 180,
    'blackboard': 180,
    'teams': 180,
}
DEFAULT_STALE_MINUTES = 24 * 60

# Auto-healing (backoff + circuit breaker) Settings
AUTO_HEAL_BASE_BACKOFF_SECONDS = int(os.environ.get('AUTO_HEAL_BASE_BACKOFF_SECONDS', 30))
AUTO_HEAL_MAX_BACKOFF_SECONDS = int(os.environ.get('AUTO_HEAL_MAX_BACKOFF_SECONDS', 60 * 60))
CIRCUIT_BREAKER_FAIL_MAX = int(os.environ.get('CIRCUIT_BREAKER_FAIL_MAX', 4))
CIRCUIT_BREAKER_RESET_TIMEOUT = int(os.environ.get('CIRCUIT_BREAKER_RESET_TIMEOUT', 20 * 60))

# Retry Settings (provider HTTP calls)
MAX_RETRIES = int(os.environ.get('MAX_RETRIES', 3))
BASE_DELAY = float(os.environ.get('BASE_DELAY', 1.0))
REQUEST_TIMEOUT = int(os.environ.get('REQUEST_TIMEOUT', 30))
MAX_PAGES = int(os.environ.get('MAX_PAGES', 20))

# Storage
DEADLINE_STORE_FILE = os.environ.get('DEADLINE_STORE_FILE', '')
SYNC_HISTORY_MAX_ENTRIES = int(os.environ.get('SYNC_HISTORY_MAX_ENTRIES', 100))

# Notifications
RELEASE_NOTIFICATION_BATCH_THRESHOLD = int(os.environ.get('RELEASE_NOTIFICATION_BATCH_THRESHOLD', 3))
MAX_NOTIFICATIONS = int(os.environ.get('MAX_NOTIFICATIONS', 200))

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', 'True').lower() == 'true'

# Development Settings
if DEBUG:
    LOG_LEVEL = 'DEBUG'
    SYNC_INTERVAL_MIN = 1  # Faster syncs for development
