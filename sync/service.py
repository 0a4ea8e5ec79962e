# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Integration Sync Service - one integration's fetch, reconcile and recover loop
"""
import logging
import math
import threading
import time
from concurrent.futures import Future
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Optional, Any

import schedule

import config
from notifications import (
    NotificationCenter, display_name,
    publish_new_deadline_release_notifications, publish_recovery_prompt
)
from providers import create_client, ProviderClient, ProviderNotConfiguredError
from store.deadline_store import DeadlineStore
from sync.auto_healing import SyncAutoHealingPolicy
from sync.history import SyncHistory
from sync.reconciler import Reconciler
from sync.recovery import SyncFailureRecoveryTracker
from utils.logger import StructuredLogger
from utils.timezone import utc_now, format_display, to_iso

logger = logging.getLogger(__name__)


class IntegrationSyncService:
    """Runs sync cycles for a single integration

    Scheduled ticks run on the service's own thread and are skipped while a
    cycle is in flight or while the auto-healing policy is backing off. A
    manual trigger without override credentials joins the in-flight cycle
    instead of starting a second one; override credentials always run.
    """

    def __init__(
        self,
        integration: str,
        store: DeadlineStore,
        tracker: SyncFailureRecoveryTracker,
        notifier: NotificationCenter,
        history: Optional[SyncHistory] = None,
        user_id: Optional[str] = None,
        client_factory: Optional[Callable[..., ProviderClient]] = None,
        policy: Optional[SyncAutoHealingPolicy] = None,
        now_fn: Optional[Callable[[], datetime]] = None
    ):
        self.integration = integration
        self.name = display_name(integration)
        self.store = store
        self.tracker = tracker
        self.notifier = notifier
        self.history = history or SyncHistory()
        self.user_id = user_id or config.DEFAULT_USER_ID
        self.client_factory = client_factory or create_client
        self.policy = policy or SyncAutoHealingPolicy(integration)
        self.now_fn = now_fn or utc_now
        self.reconciler = Reconciler.for_integration(integration)
        self.structured_logger = StructuredLogger(__name__)

        self.scheduler = schedule.Scheduler()
        self.interval_minutes: Optional[int] = None
        self.last_result: Optional[Dict[str, Any]] = None

        self._stop_event = threading.Event()
        self._in_flight = Lock()
        self._state_lock = Lock()
        self._pending: Optional[Future] = None
        self._retry_job: Optional[schedule.Job] = None
        self._thread: Optional[threading.Thread] = None

    # Lifecycle

    def start(self, interval_minutes: Optional[int] = None):
        """Sync now, then every ``interval_minutes`` on a background thread

        Restarting after ``stop()`` waits for the previous loop thread, and
        any cycle it is still running, to finish before a new one starts.
        """
        while True:
            with self._state_lock:
                previous = self._thread
                if previous is None or not previous.is_alive():
                    self.interval_minutes = interval_minutes or config.SYNC_INTERVAL_MIN
                    self._stop_event.clear()
                    self.scheduler.clear()
                    self.scheduler.every(self.interval_minutes).minutes.do(self.run_scheduled_sync)
                    self._thread = threading.Thread(
                        target=self._run_loop, name=f"sync-{self.integration}", daemon=True
                    )
                    self._thread.start()
                    break
                if not self._stop_event.is_set():
                    logger.info(f"{self.name} sync service already running")
                    return
            # Joined outside the state lock; the finishing cycle needs it
            logger.info(f"⏳ {self.name} waiting for the stopped sync loop to exit")
            previous.join()

        logger.info(f"🚀 {self.name} sync service started - every {self.interval_minutes} minutes")

    def stop(self):
        """Cancel the periodic tick and any pending retry; an in-flight cycle still finishes"""
        self._stop_event.set()
        with self._state_lock:
            self.scheduler.clear()
            self._retry_job = None
        logger.info(f"🛑 {self.name} sync service stopped")

    def is_running(self) -> bool:
        with self._state_lock:
            return (not self._stop_event.is_set()
                    and self._thread is not None and self._thread.is_alive())

    def _run_loop(self):
        if config.STARTUP_DELAY_SECONDS and self._stop_event.wait(config.STARTUP_DELAY_SECONDS):
            return

        self.run_scheduled_sync(trigger='startup')

        while not self._stop_event.is_set():
            try:
                self.scheduler.run_pending()
            except Exception as e:
                # Don't let a job error kill the loop
                logger.error(f"❌ {self.name} scheduler error: {e}")
            self._stop_event.wait(config.SCHEDULER_POLL_SECONDS)

        logger.info(f"{self.name} scheduler loop exited")

    # Triggers

    def run_scheduled_sync(self, trigger: str = 'scheduled') -> Optional[Dict[str, Any]]:
        """Timer entry point; returns None when the tick was skipped"""
        if self._stop_event.is_set():
            return None

        allowed, reason = self.policy.can_attempt(self.now_fn())
        if not allowed:
            self.policy.record_skip(reason)
            return None

        if not self._in_flight.acquire(blocking=False):
            logger.info(f"⏭️ {self.name} sync already in progress - skipping {trigger} tick")
            return None

        try:
            result = self._run_guarded(trigger)
        finally:
            self._in_flight.release()

        if not result['success']:
            self._schedule_retry()
        return result

    def sync_now(self, base_url: Optional[str] = None, token: Optional[str] = None) -> Dict[str, Any]:
        """Manual trigger; override credentials bypass the in-flight guard"""
        if base_url or token:
            client = self.client_factory(self.integration, base_url=base_url, token=token)
            return self._run_cycle('manual_override', client=client)

        if self._in_flight.acquire(blocking=False):
            try:
                return self._run_guarded('manual')
            finally:
                self._in_flight.release()

        with self._state_lock:
            pending = self._pending
        if pending is not None:
            logger.info(f"⏳ {self.name} sync in progress - waiting for its result")
            return pending.result()

        # The in-flight cycle finished between the two checks
        with self._in_flight:
            return self.last_result

    def _run_guarded(self, trigger: str) -> Dict[str, Any]:
        """Run a cycle while holding the in-flight lock, publishing it for joiners"""
        future = Future()
        with self._state_lock:
            self._pending = future
        try:
            result = self._run_cycle(trigger)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._state_lock:
                self._pending = None

    def _schedule_retry(self):
        """One-off retry at the policy's next attempt time if it lands before the next tick"""
        if self._stop_event.is_set() or not self.interval_minutes:
            return

        next_attempt_at = self.policy.next_attempt_at
        if next_attempt_at is None:
            return

        delay = (next_attempt_at - self.now_fn()).total_seconds()
        if not 0 < delay < self.interval_minutes * 60:
            return

        with self._state_lock:
            if self._retry_job is not None:
                return
            self._retry_job = self.scheduler.every(math.ceil(delay)).seconds.do(self._run_retry)

        logger.info(f"🔁 {self.name} retry scheduled in {math.ceil(delay)}s")

    def _run_retry(self):
        with self._state_lock:
            self._retry_job = None
        self.run_scheduled_sync(trigger='retry')
        return schedule.CancelJob

    # Cycle

    def _run_cycle(self, trigger: str, client: Optional[ProviderClient] = None) -> Dict[str, Any]:
        """Fetch, reconcile and record the outcome; never raises"""
        started_at = self.now_fn()
        started = time.monotonic()
        result = {
            'integration': self.integration,
            'trigger': trigger,
            'started_at': started_at,
            'success': False,
            'courses_count': 0,
            'assignments_count': 0,
            'deadline_bridge': None,
            'error': None,
            'prompt': None
        }

        logger.info(f"🔄 Starting {trigger} {self.name} sync at {format_display(started_at)}")

        try:
            client = client or self.client_factory(self.integration)
            if not client.is_configured():
                raise ProviderNotConfiguredError(f"{self.name} not connected: credentials missing")

            courses = client.get_courses()
            assignments = client.get_all_assignments(courses)
            existing = self.store.get_linked_deadlines(self.user_id, self.integration)

            bridge = self.reconciler.reconcile(self.store, self.user_id, courses, assignments, existing)
            publish_new_deadline_release_notifications(
                self.notifier, self.user_id, self.integration, bridge.created_deadlines
            )

            finished_at = self.now_fn()
            self.tracker.record_success(self.integration, finished_at)
            self.policy.record_success(finished_at)

            result.update({
                'success': True,
                'courses_count': len(courses),
                'assignments_count': len(assignments),
                'deadline_bridge': bridge.to_dict()
            })
            logger.info(f"✅ {self.name} sync completed: {len(assignments)} assignments "
                        f"from {len(courses)} courses")

        except Exception as e:
            error = str(e) or type(e).__name__
            finished_at = self.now_fn()
            logger.error(f"❌ {self.name} sync failed: {error}")

            prompt = self.tracker.record_failure(self.integration, error, finished_at)
            self.policy.record_failure(error, finished_at)
            if prompt is not None:
                publish_recovery_prompt(self.notifier, prompt)

            result.update({
                'error': error,
                'prompt': prompt.to_dict() if prompt else None
            })

        result['finished_at'] = finished_at
        result['duration'] = time.monotonic() - started
        self.history.add_entry(result)
        self.last_result = result

        self.structured_logger.log_sync_event(
            'sync_completed' if result['success'] else 'sync_failed',
            {
                'integration': self.integration,
                'trigger': trigger,
                'duration': round(result['duration'], 3),
                'error': result['error'],
                **(result['deadline_bridge'] or {})
            }
        )
        return result

    def get_status(self) -> Dict[str, Any]:
        with self._state_lock:
            retry_pending = self._retry_job is not None
            pending_jobs = len(self.scheduler.jobs)

        last = self.last_result
        return {
            'integration': self.integration,
            'running': self.is_running(),
            'in_flight': self._in_flight.locked(),
            'interval_minutes': self.interval_minutes,
            'scheduled_jobs': pending_jobs,
            'retry_pending': retry_pending,
            'auto_healing': self.policy.get_state(self.now_fn()),
            'last_result': serialize_result(last) if last else None
        }


def serialize_result(result: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of a sync result"""
    serialized = dict(result)
    for key in ('started_at', 'finished_at'):
        serialized[key] = to_iso(result.get(key))
    return serialized
