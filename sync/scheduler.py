# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Background Scheduler - owns one sync service per enabled integration
"""
import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, List, Optional, Any

import config
from notifications import NotificationCenter
from store.deadline_store import DeadlineStore
from sync.history import SyncHistory
from sync.recovery import SyncFailureRecoveryTracker
from sync.service import IntegrationSyncService
from utils.timezone import utc_now, format_display

logger = logging.getLogger(__name__)


class UnknownIntegrationError(KeyError):
    pass


class SyncScheduler:
    """Wires every integration service to one store, tracker and notifier"""

    def __init__(
        self,
        store: Optional[DeadlineStore] = None,
        tracker: Optional[SyncFailureRecoveryTracker] = None,
        notifier: Optional[NotificationCenter] = None,
        history: Optional[SyncHistory] = None,
        user_id: Optional[str] = None,
        integrations: Optional[List[str]] = None,
        client_factory: Optional[Callable] = None,
        now_fn: Optional[Callable[[], datetime]] = None
    ):
        integrations = list(integrations if integrations is not None else config.ENABLED_INTEGRATIONS)

        self.store = store or DeadlineStore(config.DEADLINE_STORE_FILE)
        self.tracker = tracker or SyncFailureRecoveryTracker(integrations)
        self.notifier = notifier or NotificationCenter()
        self.history = history or SyncHistory()
        self.user_id = user_id or config.DEFAULT_USER_ID
        self.now_fn = now_fn or utc_now
        self.scheduler_lock = Lock()
        self.scheduler_running = False

        self.services: Dict[str, IntegrationSyncService] = {
            integration: IntegrationSyncService(
                integration,
                store=self.store,
                tracker=self.tracker,
                notifier=self.notifier,
                history=self.history,
                user_id=self.user_id,
                client_factory=client_factory,
                now_fn=self.now_fn
            )
            for integration in integrations
        }

    def get_service(self, integration: str) -> IntegrationSyncService:
        try:
            return self.services[integration]
        except KeyError:
            raise UnknownIntegrationError(integration)

    def start_all(self, interval_minutes: Optional[int] = None):
        """Start every integration's sync loop"""
        with self.scheduler_lock:
            if self.scheduler_running:
                logger.info("Scheduler already running")
                return
            self.scheduler_running = True

        logger.info(f"Starting {len(self.services)} sync services at {format_display(self.now_fn())}...")
        for service in self.services.values():
            service.start(interval_minutes)

    def stop_all(self):
        with self.scheduler_lock:
            self.scheduler_running = False

        for service in self.services.values():
            service.stop()
        logger.info(f"Stopped sync services at {format_display(self.now_fn())}")

    def is_running(self) -> bool:
        with self.scheduler_lock:
            return self.scheduler_running

    def trigger(self, integration: str, base_url: Optional[str] = None,
                token: Optional[str] = None) -> Dict[str, Any]:
        """Manual sync for one integration"""
        return self.get_service(integration).sync_now(base_url=base_url, token=token)

    def get_recovery_snapshot(self, reference_time: Optional[datetime] = None) -> Dict[str, Any]:
        return self.tracker.get_snapshot(reference_time or self.now_fn())

    def get_status(self) -> Dict[str, Any]:
        return {
            'running': self.is_running(),
            'user_id': self.user_id,
            'services': {name: service.get_status() for name, service in self.services.items()},
            'history': self.history.get_statistics(),
            'recent_failures': self.history.get_recent_failures(limit=5),
            'store': self.store.get_stats()
        }
