"""
Syncer business logic.
"""

from syncer.logic.auth_manager import (
    AuthEvent,
    Authenticated,
    AuthenticationFailed,
    AuthenticationRequired,
    AuthLifecycleManager,
    AuthSession,
    AuthState,
    AuthStateMachine,
    TokensUpdated,
)
from syncer.logic.batch_processor import BatchError, BatchProcessor, BatchResult
from syncer.logic.credential_store import CredentialStore, ProviderSettings, TokenRecord
from syncer.logic.exceptions import (
    AuthenticationExpiredError,
    AuthenticationFailedError,
    ConfigurationMissingError,
    DatabaseConnectionError,
    InvalidAuthTransitionError,
    PersistenceError,
    ProviderAuthorizationError,
    ProviderError,
    RecordValidationError,
    SchedulerNotReadyError,
    SyncError,
)
from syncer.logic.job_queue import JobQueue, SyncJob
from syncer.logic.scheduler import SweepResult, SyncScheduler
from syncer.logic.sync_state import SyncState, SyncStateStore
from syncer.logic.validation import Invalid, Valid, validate_file_record

__all__ = [
    "AuthEvent",
    "Authenticated",
    "AuthenticationFailed",
    "AuthenticationRequired",
    "AuthLifecycleManager",
    "AuthSession",
    "AuthState",
    "AuthStateMachine",
    "TokensUpdated",
    "BatchError",
    "BatchProcessor",
    "BatchResult",
    "CredentialStore",
    "ProviderSettings",
    "TokenRecord",
    "AuthenticationExpiredError",
    "AuthenticationFailedError",
    "ConfigurationMissingError",
    "DatabaseConnectionError",
    "InvalidAuthTransitionError",
    "PersistenceError",
    "ProviderAuthorizationError",
    "ProviderError",
    "RecordValidationError",
    "SchedulerNotReadyError",
    "SyncError",
    "JobQueue",
    "SyncJob",
    "SweepResult",
    "SyncScheduler",
    "SyncState",
    "SyncStateStore",
    "Invalid",
    "Valid",
    "validate_file_record",
]
