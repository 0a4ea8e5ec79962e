# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

#!/usr/bin/env python3
"""
Deadline Bridge - status, recovery and manual trigger endpoints
"""
import logging
from typing import Optional

from flask import Flask, jsonify, request

import config
from sync.scheduler import SyncScheduler, UnknownIntegrationError
from sync.service import serialize_result
from utils.logger import configure_logging
from utils.timezone import utc_now, parse_timestamp, format_display

logger = logging.getLogger(__name__)


def create_app(sync_scheduler: Optional[SyncScheduler] = None) -> Flask:
    """Build the Flask app around a scheduler (a fresh one when not given)"""
    app = Flask(__name__)
    scheduler = sync_scheduler or SyncScheduler()
    app.extensions['sync_scheduler'] = scheduler

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Server'] = 'Deadline Bridge'
        return response

    @app.route('/health')
    def health_check():
        """Lightweight health check"""
        return jsonify({
            "status": "ok",
            "timestamp": utc_now().isoformat(),
            "service": "deadline-bridge",
            "scheduler_running": scheduler.is_running()
        }), 200

    @app.route('/api/sync/status')
    def sync_status():
        try:
            status = scheduler.get_status()
            history = status['history']
            if history.get('last_sync'):
                history['last_sync_display'] = format_display(parse_timestamp(history['last_sync']))
            return jsonify(status)
        except Exception as e:
            logger.error(f"❌ Failed to build sync status: {e}")
            return jsonify({"error": str(e)}), 500

    @app.route('/api/sync/recovery')
    def sync_recovery():
        """Recovery snapshot; ?at=<iso> evaluates staleness at another time"""
        reference = None
        if request.args.get('at'):
            reference = parse_timestamp(request.args['at'])
            if reference is None:
                return jsonify({"error": "Invalid 'at' timestamp"}), 400
        return jsonify(scheduler.get_recovery_snapshot(reference))

    @app.route('/api/sync/<integration>/trigger', methods=['POST'])
    def trigger_sync(integration):
        payload = request.get_json(silent=True) or {}
        base_url = payload.get('base_url')
        token = payload.get('token')

        try:
            result = scheduler.trigger(integration, base_url=base_url, token=token)
        except UnknownIntegrationError:
            return jsonify({"error": f"Unknown integration: {integration}"}), 404

        if result is None:
            return jsonify({"error": "No sync result available"}), 503

        body = serialize_result(result)
        return jsonify(body), 200 if result['success'] else 502

    @app.route('/api/deadlines')
    def list_deadlines():
        user_id = request.args.get('user_id') or scheduler.user_id
        include_completed = request.args.get('include_completed', 'true').lower() == 'true'
        deadlines = scheduler.store.get_deadlines(user_id, include_completed=include_completed)
        return jsonify({
            "user_id": user_id,
            "count": len(deadlines),
            "deadlines": [d.to_dict() for d in deadlines]
        })

    @app.route('/api/notifications')
    def list_notifications():
        source = request.args.get('source')
        return jsonify({"notifications": scheduler.notifier.get_notifications(source)})

    @app.route('/api/history')
    def sync_history():
        hours = request.args.get('hours', 24, type=int)
        integration = request.args.get('integration')
        return jsonify({
            "statistics": scheduler.history.get_statistics(hours=hours, integration=integration),
            "recent_failures": scheduler.history.get_recent_failures(integration=integration)
        })

    return app


def create_production_app() -> Flask:
    """Configure logging, start every sync service and return the app"""
    configure_logging()
    sync_scheduler = SyncScheduler()
    sync_scheduler.start_all()
    logger.info(f"🚀 Deadline bridge ready with integrations: {', '.join(sync_scheduler.services)}")
    return create_app(sync_scheduler)


if __name__ == '__main__':
    application = create_production_app()
    logger.info(f"Starting deadline bridge on port {config.PORT}")
    application.run(host='0.0.0.0', port=config.PORT)
