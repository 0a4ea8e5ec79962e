# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Sync History - Track and analyze deadline sync cycles over time
"""
from datetime import timedelta
from threading import Lock
from typing import Dict, List, Optional
from collections import defaultdict
import statistics

import config
from utils.timezone import utc_now

OPERATION_TYPES = ('created', 'updated', 'completed', 'removed', 'skipped')


class SyncHistory:
    """Keeps the most recent sync results across all integrations"""

    def __init__(self, max_entries: Optional[int] = None):
        self.history: List[Dict] = []
        self.max_entries = max_entries or config.SYNC_HISTORY_MAX_ENTRIES
        self._lock = Lock()

    def add_entry(self, sync_result: Dict):
        """Add a sync result to history"""
        bridge = sync_result.get('deadline_bridge') or {}
        entry = {
            'timestamp': sync_result.get('finished_at') or utc_now(),
            'integration': sync_result.get('integration'),
            'trigger': sync_result.get('trigger'),
            'duration': sync_result.get('duration', 0),
            'success': sync_result.get('success', False),
            'operations': {op: bridge.get(op, 0) for op in OPERATION_TYPES},
            'error': sync_result.get('error')
        }

        with self._lock:
            self.history.append(entry)
            if len(self.history) > self.max_entries:
                self.history.pop(0)

    def _entries(self, integration: Optional[str] = None, hours: Optional[int] = None) -> List[Dict]:
        with self._lock:
            entries = list(self.history)
        if integration:
            entries = [e for e in entries if e['integration'] == integration]
        if hours is not None:
            cutoff_time = utc_now() - timedelta(hours=hours)
            entries = [e for e in entries if e['timestamp'] > cutoff_time]
        return entries

    def get_statistics(self, hours: int = 24, integration: Optional[str] = None) -> Dict:
        """Calculate statistics for the given time period"""
        recent_entries = self._entries(integration, hours)

        if not recent_entries:
            return {
                'period_hours': hours,
                'integration': integration,
                'total_syncs': 0,
                'successful_syncs': 0,
                'failed_syncs': 0,
                'success_rate': 0,
                'average_duration': 0,
                'total_operations': {op: 0 for op in OPERATION_TYPES},
                'last_sync': None,
                'last_successful_sync': None
            }

        successful_syncs = [e for e in recent_entries if e['success']]
        failed_syncs = [e for e in recent_entries if not e['success']]

        durations = [e['duration'] for e in successful_syncs if e['duration'] > 0]
        avg_duration = statistics.mean(durations) if durations else 0

        total_operations = defaultdict(int)
        for entry in successful_syncs:
            for op_type, count in entry['operations'].items():
                total_operations[op_type] += count

        last_sync = recent_entries[-1]
        last_successful = next((e for e in reversed(recent_entries) if e['success']), None)

        duration_percentiles = {}
        if durations:
            duration_percentiles = {
                'p50': statistics.median(durations),
                'p90': self._percentile(durations, 90),
                'min': min(durations),
                'max': max(durations)
            }

        return {
            'period_hours': hours,
            'integration': integration,
            'total_syncs': len(recent_entries),
            'successful_syncs': len(successful_syncs),
            'failed_syncs': len(failed_syncs),
            'success_rate': len(successful_syncs) / len(recent_entries) * 100,
            'average_duration': avg_duration,
            'duration_percentiles': duration_percentiles,
            'total_operations': dict(total_operations),
            'last_sync': last_sync['timestamp'].isoformat(),
            'last_successful_sync': last_successful['timestamp'].isoformat() if last_successful else None
        }

    def get_recent_failures(self, limit: int = 10, integration: Optional[str] = None) -> List[Dict]:
        """Get recent failed syncs, newest first"""
        failures = [
            {
                'timestamp': entry['timestamp'].isoformat(),
                'integration': entry['integration'],
                'error': entry.get('error') or 'Unknown error',
                'duration': entry.get('duration', 0)
            }
            for entry in reversed(self._entries(integration))
            if not entry['success']
        ]
        return failures[:limit]

    def _percentile(self, data: List[float], percentile: int) -> float:
        """Calculate percentile of a list"""
        if not data:
            return 0

        sorted_data = sorted(data)
        index = (percentile / 100) * (len(sorted_data) - 1)

        if index.is_integer():
            return sorted_data[int(index)]
        lower = sorted_data[int(index)]
        upper = sorted_data[int(index) + 1]
        fraction = index - int(index)
        return lower + (upper - lower) * fraction
