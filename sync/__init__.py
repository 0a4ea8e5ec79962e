from sync.reconciler import Reconciler, BridgeResult, ReconcilePlan
from sync.recovery import SyncFailureRecoveryTracker, RecoveryPrompt, HealthState
from sync.auto_healing import SyncAutoHealingPolicy, CircuitState
from sync.service import IntegrationSyncService
from sync.scheduler import SyncScheduler
