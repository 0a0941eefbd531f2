# notedigest/core/models/app.py
import logging
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from notedigest.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from notedigest.core.models.store import PostgresConfig
from notedigest.core.utils.url import mask_database_url


class ManagerConfig(BaseModel):
    """
    Schedule manager settings.

    Fields:
        - check_interval_seconds: how often the background loop sweeps
        - initial_delay_seconds: wait before the first sweep after start()
        - sweep_timeout_seconds: how long a sweep waits for its executions
        - content/summarize/delivery_timeout_seconds: per-call limits inside
          one execution (None = unlimited); exceeding one is a recorded failure
        - execution_history_limit: executions read when computing stats
        - user_ids: users whose schedules the background loop watches
    """

    model_config = ConfigDict(frozen=True)

    check_interval_seconds: int = Field(default=30, ge=1, le=3600)
    initial_delay_seconds: float = Field(default=5.0, ge=0, le=300)
    sweep_timeout_seconds: float = Field(default=25.0, ge=1, le=600)
    content_timeout_seconds: Optional[float] = Field(default=60.0, gt=0)
    summarize_timeout_seconds: Optional[float] = Field(default=120.0, gt=0)
    delivery_timeout_seconds: Optional[float] = Field(default=30.0, gt=0)
    execution_history_limit: int = Field(default=100, ge=1, le=1000)
    user_ids: list[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_timing(self) -> 'ManagerConfig':
        report = ValidationReport('config')
        if self.sweep_timeout_seconds > self.check_interval_seconds:
            report.add(
                ConfigurationError(
                    message='sweep timeout exceeds check interval',
                    code=ErrorCode.CONFIG_INVALID_MANAGER,
                    notes=[
                        f'sweep_timeout_seconds={self.sweep_timeout_seconds}',
                        f'check_interval_seconds={self.check_interval_seconds}',
                    ],
                    help_text='a sweep must give up before the next one is due',
                )
            )
        if len(self.user_ids) != len(set(self.user_ids)):
            report.add(
                ConfigurationError(
                    message='duplicate user ids',
                    code=ErrorCode.CONFIG_INVALID_MANAGER,
                    notes=[f'user_ids: {self.user_ids}'],
                )
            )
        raise_collected(report)
        return self


class AppConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    store: PostgresConfig
    manager: ManagerConfig = Field(default_factory=ManagerConfig)

    def log_config(self, logger: Optional[logging.Logger] = None) -> None:
        """
        Log the AppConfig in a human-readable format.
        Masks sensitive data like database passwords.

        Args:
            logger: Logger instance to use. If None, uses root logger.
        """
        if logger is None:
            logger = logging.getLogger()

        logger.info('AppConfig:\n%s', self._format_for_logging())

    def _format_for_logging(self) -> str:
        """Internal helper to format the AppConfig for human-readable logging."""
        manager = self.manager
        lines: list[str] = [
            f'  store: {mask_database_url(self.store.database_url)}',
            f'  check_interval: {manager.check_interval_seconds}s',
            f'  sweep_timeout: {manager.sweep_timeout_seconds}s',
            f'  timeouts: content={manager.content_timeout_seconds}s, '
            f'summarize={manager.summarize_timeout_seconds}s, '
            f'delivery={manager.delivery_timeout_seconds}s',
            f'  watched_users: {len(manager.user_ids)}',
        ]
        return '\n'.join(lines)
