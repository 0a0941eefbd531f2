"""notedigest - scheduled digests of workspace notes"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.app import NoteDigest
from .core.models.app import AppConfig, ManagerConfig
from .core.models.store import PostgresConfig
from .core.models.schedule import (
    ScheduleConfig,
    SummaryLength,
    SummaryOptions,
    SummaryStyle,
    validate_new_schedule,
)
from .core.models.delivery import (
    DeliveryFailure,
    DeliveryMethods,
    DeliveryReceipt,
    DeliveryResult,
    EmailDelivery,
    TelegramDelivery,
)
from .core.models.content import ContentItem, Summary, SummaryPriority
from .core.models.execution import DeliveryOutcome, ScheduleExecution, ScheduleStats
from .core.collaborators import (
    ContentSource,
    CredentialProvider,
    DeliverySink,
    Summarizer,
)
from .core.scheduler import (
    ExecutionTracker,
    ScheduleEventBus,
    ScheduleExecutionCompleted,
    ScheduleExecutionStarted,
    ScheduleExecutor,
    ScheduleManager,
    SweepReport,
    compute_next_run,
    compute_schedule_stats,
)
from .core.store import PostgresScheduleStore, ScheduleStore
from .core.types.status import DeliveryChannel, ExecutionStatus, ScheduleFrequency
from .core.errors import (
    AuthExpiredError,
    ConfigurationError,
    ContentFetchError,
    ErrorCode,
    MultipleValidationErrors,
    RateLimitedError,
    ScheduleAlreadyRunningError,
    ScheduleDeniedError,
    ScheduleNotFoundError,
    ScheduleRuntimeError,
    ScheduleValidationError,
    StoreUnavailableError,
    SummarizationError,
    SweepTimeoutError,
    ValidationReport,
)
from .core.types.result import Result, Ok, Err, is_ok, is_err

__all__ = [
    # Core
    'NoteDigest',
    'AppConfig',
    'ManagerConfig',
    'PostgresConfig',
    # Schedules
    'ScheduleConfig',
    'SummaryLength',
    'SummaryOptions',
    'SummaryStyle',
    'ScheduleFrequency',
    'validate_new_schedule',
    # Delivery
    'DeliveryChannel',
    'DeliveryFailure',
    'DeliveryMethods',
    'DeliveryReceipt',
    'DeliveryResult',
    'EmailDelivery',
    'TelegramDelivery',
    # Content
    'ContentItem',
    'Summary',
    'SummaryPriority',
    # Executions
    'DeliveryOutcome',
    'ExecutionStatus',
    'ScheduleExecution',
    'ScheduleStats',
    # Collaborators
    'ContentSource',
    'CredentialProvider',
    'DeliverySink',
    'Summarizer',
    # Engine
    'ExecutionTracker',
    'ScheduleEventBus',
    'ScheduleExecutionCompleted',
    'ScheduleExecutionStarted',
    'ScheduleExecutor',
    'ScheduleManager',
    'SweepReport',
    'compute_next_run',
    'compute_schedule_stats',
    # Store
    'PostgresScheduleStore',
    'ScheduleStore',
    # Errors
    'AuthExpiredError',
    'ConfigurationError',
    'ContentFetchError',
    'ErrorCode',
    'MultipleValidationErrors',
    'RateLimitedError',
    'ScheduleAlreadyRunningError',
    'ScheduleDeniedError',
    'ScheduleNotFoundError',
    'ScheduleRuntimeError',
    'ScheduleValidationError',
    'StoreUnavailableError',
    'SummarizationError',
    'SweepTimeoutError',
    'ValidationReport',
    # Result
    'Result',
    'Ok',
    'Err',
    'is_ok',
    'is_err',
]
