# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Deadline Store - canonical deadline collection with optional JSON persistence
"""
import json
import logging
import os
import uuid
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Any

from models import Deadline, LINKAGE_FIELDS
from utils.timezone import ensure_utc, utc_now

logger = logging.getLogger(__name__)

STORE_VERSION = '1.0'


class DuplicateLinkageError(ValueError):
    """Raised when a provider linkage id is already used by another deadline"""
    pass


class DeadlineStore:
    """Stores deadlines per user, keyed by opaque id

    Every create/update/delete is independent and keyed by id, so a sync
    cycle interrupted half-way leaves the store consistent and the next
    cycle simply re-diffs against what actually landed.
    """

    def __init__(self, store_file: Optional[str] = None):
        self.store_file = store_file or None
        self._deadlines: Dict[str, Dict[str, Deadline]] = {}  # user_id -> id -> deadline
        self._lock = Lock()
        self._load()

    def _load(self):
        """Load persisted deadlines from disk"""
        if not self.store_file:
            return

        try:
            if os.path.exists(self.store_file):
                with open(self.store_file, 'r') as f:
                    data = json.load(f)
                for user_id, entries in data.get('users', {}).items():
                    self._deadlines[user_id] = {
                        entry['id']: Deadline.from_dict(entry) for entry in entries
                    }
                total = sum(len(items) for items in self._deadlines.values())
                logger.info(f"✅ Loaded {total} deadlines from {self.store_file}")
            else:
                logger.info("No deadline store file found - starting empty")
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to load deadline store: {e}")
            self._deadlines = {}

    def _save(self):
        """Persist deadlines to disk (caller holds the lock)"""
        if not self.store_file:
            return

        data = {
            'users': {
                user_id: [deadline.to_dict() for deadline in items.values()]
                for user_id, items in self._deadlines.items()
            },
            'saved_at': utc_now().isoformat(),
            'store_version': STORE_VERSION
        }
        try:
            tmp_file = f"{self.store_file}.tmp"
            with open(tmp_file, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_file, self.store_file)
        except OSError as e:
            logger.error(f"Failed to save deadline store: {e}")

    def get_deadlines(self, user_id: str, since: Optional[datetime] = None,
                      include_completed: bool = True) -> List[Deadline]:
        """Deadlines for a user, optionally only those due at/after ``since``"""
        since = ensure_utc(since)
        with self._lock:
            items = list(self._deadlines.get(user_id, {}).values())

        result = [
            d for d in items
            if (include_completed or not d.completed)
            and (since is None or d.due_date >= since)
        ]
        return sorted(result, key=lambda d: (d.due_date, d.id))

    def get_deadline(self, user_id: str, deadline_id: str) -> Optional[Deadline]:
        with self._lock:
            return self._deadlines.get(user_id, {}).get(deadline_id)

    def get_linked_deadlines(self, user_id: str, integration: str) -> List[Deadline]:
        """All deadlines of a user linked to one integration, completed ones included"""
        linkage_field = LINKAGE_FIELDS[integration]
        return [
            d for d in self.get_deadlines(user_id, since=None, include_completed=True)
            if getattr(d, linkage_field)
        ]

    def create_deadline(self, user_id: str, fields: Dict[str, Any]) -> Deadline:
        """Create a deadline; raises DuplicateLinkageError on a linkage collision"""
        deadline = Deadline(id=f"deadline-{uuid.uuid4().hex[:12]}", **fields)

        with self._lock:
            user_items = self._deadlines.setdefault(user_id, {})
            self._check_linkage_unique(user_items, deadline)
            user_items[deadline.id] = deadline
            self._save()

        logger.debug(f"➕ Created deadline {deadline.id}: {deadline.task}")
        return deadline

    def update_deadline(self, user_id: str, deadline_id: str, patch: Dict[str, Any]) -> Optional[Deadline]:
        """Apply a partial update; returns the updated deadline or None if missing"""
        with self._lock:
            user_items = self._deadlines.get(user_id, {})
            existing = user_items.get(deadline_id)
            if existing is None:
                logger.warning(f"Update skipped - deadline {deadline_id} not found for {user_id}")
                return None

            updated = existing.with_changes(patch)
            self._check_linkage_unique(user_items, updated)
            user_items[deadline_id] = updated
            self._save()

        logger.debug(f"📝 Updated deadline {deadline_id}: {sorted(patch)}")
        return updated

    def delete_deadline(self, user_id: str, deadline_id: str) -> bool:
        """Delete a deadline; False if it did not exist"""
        with self._lock:
            removed = self._deadlines.get(user_id, {}).pop(deadline_id, None)
            if removed is not None:
                self._save()

        if removed is not None:
            logger.debug(f"🗑️ Deleted deadline {deadline_id}")
        return removed is not None

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'users': len(self._deadlines),
                'deadlines': sum(len(items) for items in self._deadlines.values()),
                'store_file': self.store_file,
                'store_exists': bool(self.store_file) and os.path.exists(self.store_file)
            }

    @staticmethod
    def _check_linkage_unique(user_items: Dict[str, Deadline], candidate: Deadline):
        linkage = candidate.linkage
        if linkage is None:
            return

        integration, linkage_id = linkage
        linkage_field = LINKAGE_FIELDS[integration]
        for other in user_items.values():
            if other.id != candidate.id and getattr(other, linkage_field) == linkage_id:
                raise DuplicateLinkageError(
                    f"{integration} item {linkage_id} is already linked to deadline {other.id}"
                )
