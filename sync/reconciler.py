# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Deadline Reconciler - diff provider assignments against linked deadlines

The conflict policy:
- the provider owns title and course, which are always refreshed
- the user owns the due date once they have edited it; a provider change to
  the due date is only adopted while the deadline still matches the last
  provider value
- a linked deadline whose item is missing from a full snapshot is removed
- submission can mark a deadline completed, never the reverse
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Set, Tuple

from models import Deadline
from store.deadline_store import DeadlineStore, DuplicateLinkageError
from sync.adapters import ProviderAdapter, get_adapter
from utils.logger import StructuredLogger

logger = logging.getLogger(__name__)


@dataclass
class BridgeResult:
    """Outcome of one reconciliation"""
    created: int = 0
    updated: int = 0
    completed: int = 0
    removed: int = 0
    skipped: int = 0
    created_deadlines: List[Deadline] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return self.created + self.updated + self.completed + self.removed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'created': self.created,
            'updated': self.updated,
            'completed': self.completed,
            'removed': self.removed,
            'skipped': self.skipped,
            'created_deadline_ids': [d.id for d in self.created_deadlines],
        }


@dataclass
class ReconcilePlan:
    """Store operations computed from one snapshot, before any are applied"""
    creates: List[Dict[str, Any]] = field(default_factory=list)
    updates: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    completions: List[str] = field(default_factory=list)
    deletes: List[str] = field(default_factory=list)
    # Linkage ids of creates whose item was already submitted
    completed_on_create: Set[str] = field(default_factory=set)
    skipped: int = 0


class Reconciler:
    """Reconciles one integration's snapshot into the deadline store"""

    def __init__(self, adapter: ProviderAdapter):
        self.adapter = adapter
        self.structured_logger = StructuredLogger(__name__)

    @classmethod
    def for_integration(cls, integration: str) -> 'Reconciler':
        return cls(get_adapter(integration))

    @property
    def integration(self) -> str:
        return self.adapter.integration

    def _course_labels(self, courses: List[Dict]) -> Dict[str, str]:
        labels = {}
        for course in courses:
            key = self.adapter.course_key(course)
            name = self.adapter.course_name(course)
            if key and name:
                labels[key] = name
        return labels

    def plan(self, courses: List[Dict], assignments: List[Dict],
             existing_linked: List[Deadline]) -> ReconcilePlan:
        """Compute creates/updates/completions/deletes without touching the store"""
        adapter = self.adapter
        linkage_field = adapter.linkage_field
        course_labels = self._course_labels(courses)

        existing_by_linkage = {}
        for deadline in existing_linked:
            linkage_id = getattr(deadline, linkage_field)
            if linkage_id:
                existing_by_linkage[linkage_id] = deadline

        plan = ReconcilePlan()
        seen = set()

        for assignment in assignments:
            external_id = adapter.external_id(assignment)
            if not external_id:
                logger.debug(f"Skipping {self.integration} record without an id")
                plan.skipped += 1
                continue

            # Recorded before the due date check so dateless items are not deleted
            if external_id in seen:
                plan.skipped += 1
                continue
            seen.add(external_id)

            incoming_due = adapter.due_date(assignment)
            if incoming_due is None:
                plan.skipped += 1
                continue

            course_label = course_labels.get(adapter.course_id(assignment)) or adapter.fallback_course_label
            task = adapter.title(assignment)
            submitted = adapter.is_submitted(assignment)
            existing = existing_by_linkage.get(external_id)

            if existing is None:
                if submitted:
                    plan.completed_on_create.add(external_id)
                plan.creates.append({
                    'course': course_label,
                    'task': task,
                    'due_date': incoming_due,
                    'source_due_date': incoming_due,
                    'priority': adapter.default_priority(assignment),
                    'completed': False,
                    linkage_field: external_id,
                })
                continue

            user_overrode = existing.has_user_override
            source_changed = existing.effective_source_due_date != incoming_due
            next_due = incoming_due if source_changed and not user_overrode else existing.due_date

            patch = {}
            if existing.task != task:
                patch['task'] = task
            if existing.course != course_label:
                patch['course'] = course_label
            if existing.source_due_date != incoming_due:
                patch['source_due_date'] = incoming_due
            if existing.due_date != next_due:
                patch['due_date'] = next_due

            newly_completed = submitted and not existing.completed

            if patch:
                plan.updates.append((existing.id, patch))
            if newly_completed:
                plan.completions.append(existing.id)
            if not patch and not newly_completed:
                plan.skipped += 1

        for linkage_id, deadline in existing_by_linkage.items():
            if linkage_id not in seen:
                plan.deletes.append(deadline.id)

        return plan

    def apply(self, plan: ReconcilePlan, store: DeadlineStore, user_id: str) -> BridgeResult:
        """Apply a plan; each mutation stands alone so a partial apply is safe to redo"""
        result = BridgeResult(skipped=plan.skipped)

        for fields in plan.creates:
            try:
                deadline = store.create_deadline(user_id, fields)
            except DuplicateLinkageError as e:
                # Another cycle linked it first; next cycle sees it as existing
                logger.warning(f"⚠️ {e}")
                result.skipped += 1
                continue
            result.created += 1

            if fields[self.adapter.linkage_field] in plan.completed_on_create:
                completed = store.update_deadline(user_id, deadline.id, {'completed': True})
                if completed is not None:
                    deadline = completed
                    result.completed += 1
            result.created_deadlines.append(deadline)

        for deadline_id, patch in plan.updates:
            if store.update_deadline(user_id, deadline_id, patch) is not None:
                result.updated += 1

        for deadline_id in plan.completions:
            if store.update_deadline(user_id, deadline_id, {'completed': True}) is not None:
                result.completed += 1

        for deadline_id in plan.deletes:
            if store.delete_deadline(user_id, deadline_id):
                result.removed += 1

        return result

    def reconcile(self, store: DeadlineStore, user_id: str, courses: List[Dict],
                  assignments: List[Dict], existing_linked: List[Deadline]) -> BridgeResult:
        """Plan against the given snapshot and apply it"""
        plan = self.plan(courses, assignments, existing_linked)
        result = self.apply(plan, store, user_id)

        if result.total_changes:
            logger.info(
                f"🔄 {self.integration}: {result.created} created, {result.updated} updated, "
                f"{result.completed} completed, {result.removed} removed, {result.skipped} skipped"
            )
        else:
            logger.info(f"✅ {self.integration}: deadlines already in sync ({result.skipped} skipped)")

        self.structured_logger.log_sync_event('reconcile_completed', {
            'integration': self.integration,
            'user_id': user_id,
            **result.to_dict()
        })
        return result
