# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

import os

# App factory starts the sync services, so exactly one worker may own them
wsgi_app = 'app:create_production_app()'
workers = 1
worker_class = 'gthread'  # Manual triggers can block while a sync finishes
threads = 4
timeout = 300  # A cold sync across every course can be slow
keepalive = 2

bind = f"0.0.0.0:{os.environ.get('PORT', '5000')}"

# Logging
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
accesslog = '-'
errorlog = '-'

preload_app = False

proc_name = 'deadline-bridge'

max_requests = 0
max_requests_jitter = 0
