"""Tests for schedule, delivery and execution models: validators, defaults, aliases."""

from __future__ import annotations

from datetime import datetime, time as datetime_time, timedelta, timezone

import pytest
from pydantic import ValidationError

from notedigest.core.errors import (
    ErrorCode,
    MultipleValidationErrors,
    ScheduleValidationError,
)
from notedigest.core.models.delivery import (
    DeliveryMethods,
    EmailDelivery,
    TelegramDelivery,
)
from notedigest.core.models.execution import DeliveryOutcome, ScheduleExecution
from notedigest.core.models.schedule import (
    ScheduleConfig,
    SummaryOptions,
    SummaryStyle,
    validate_new_schedule,
)
from notedigest.core.types.status import (
    DeliveryChannel,
    ExecutionStatus,
    ScheduleFrequency,
)
from tests.helpers.fakes import both_channels, make_schedule, utc


# =============================================================================
# ScheduleConfig
# =============================================================================


@pytest.mark.unit
class TestScheduleConfig:
    """Tests for ScheduleConfig construction and model validators."""

    def test_defaults(self) -> None:
        config = make_schedule()

        assert config.is_active is True
        assert config.run_count == 0
        assert config.error_count == 0
        assert config.next_run is None
        assert config.summary_options.content_days == 7
        assert config.summary_options.style == SummaryStyle.EXECUTIVE

    def test_parses_camel_case_document(self) -> None:
        """Documents stored by the dashboard use camelCase keys."""
        config = ScheduleConfig.model_validate(
            {
                'id': 'sched_1',
                'userId': 'user_1',
                'name': 'Weekly digest',
                'isActive': True,
                'frequency': 'weekly',
                'time': '09:30',
                'timezone': 'Europe/Berlin',
                'daysOfWeek': [1, 3],
                'summaryOptions': {'contentDays': 3, 'includeActionItems': False},
                'deliveryMethods': {'telegram': {'enabled': True, 'chatId': '-100'}},
            }
        )

        assert config.user_id == 'user_1'
        assert config.time == datetime_time(9, 30)
        assert config.days_of_week == [1, 3]
        assert config.summary_options.content_days == 3
        assert config.summary_options.include_action_items is False
        assert config.delivery_methods.telegram.chat_id == '-100'

    def test_dumps_camel_case_by_alias(self) -> None:
        dumped = make_schedule().model_dump(by_alias=True, mode='json')

        assert dumped['userId'] == 'user_1'
        assert dumped['deliveryMethods']['telegram']['chatId'] == '12345'
        assert 'runCount' in dumped

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        config = make_schedule(next_run=datetime(2025, 6, 1, 9, 0))

        assert config.next_run == utc(2025, 6, 1, 9, 0)

    def test_aware_datetimes_are_normalized_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        config = make_schedule(last_run=datetime(2025, 6, 1, 11, 0, tzinfo=plus_two))

        assert config.last_run == utc(2025, 6, 1, 9, 0)
        assert config.last_run.tzinfo == timezone.utc

    def test_unknown_timezone_raises(self) -> None:
        with pytest.raises(ScheduleValidationError) as exc_info:
            make_schedule(timezone='Mars/Olympus_Mons')

        assert exc_info.value.code == ErrorCode.SCHEDULE_INVALID_TIMEZONE

    def test_weekly_without_days_raises(self) -> None:
        with pytest.raises(ScheduleValidationError) as exc_info:
            make_schedule(frequency=ScheduleFrequency.WEEKLY)

        assert exc_info.value.code == ErrorCode.SCHEDULE_MISSING_DAYS

    def test_weekly_with_duplicate_days_raises(self) -> None:
        with pytest.raises(ScheduleValidationError) as exc_info:
            make_schedule(frequency=ScheduleFrequency.WEEKLY, days_of_week=[1, 1])

        assert exc_info.value.code == ErrorCode.SCHEDULE_DUPLICATE_DAYS

    def test_day_of_week_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_schedule(frequency=ScheduleFrequency.WEEKLY, days_of_week=[7])

    def test_monthly_without_day_raises(self) -> None:
        with pytest.raises(ScheduleValidationError) as exc_info:
            make_schedule(frequency=ScheduleFrequency.MONTHLY)

        assert exc_info.value.code == ErrorCode.SCHEDULE_MISSING_DAY_OF_MONTH

    @pytest.mark.parametrize('day', [0, 32])
    def test_day_of_month_bounds(self, day: int) -> None:
        with pytest.raises(ValidationError):
            make_schedule(frequency=ScheduleFrequency.MONTHLY, day_of_month=day)

    def test_content_days_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SummaryOptions(content_days=0)


# =============================================================================
# validate_new_schedule
# =============================================================================


@pytest.mark.unit
class TestValidateNewSchedule:
    """Creation-time checks."""

    def test_valid_schedule_passes(self) -> None:
        validate_new_schedule(make_schedule())

    def test_no_delivery_channel_rejected(self) -> None:
        config = make_schedule(delivery_methods=DeliveryMethods())

        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_new_schedule(config)

        assert exc_info.value.code == ErrorCode.SCHEDULE_NO_DELIVERY

    def test_non_numeric_chat_id_rejected(self) -> None:
        config = make_schedule(
            delivery_methods=DeliveryMethods(
                telegram=TelegramDelivery(enabled=True, chat_id='@channel')
            )
        )

        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_new_schedule(config)

        assert exc_info.value.code == ErrorCode.SCHEDULE_INVALID_CHAT_ID

    def test_negative_group_chat_id_accepted(self) -> None:
        config = make_schedule(
            delivery_methods=DeliveryMethods(
                telegram=TelegramDelivery(enabled=True, chat_id='-1001234')
            )
        )

        validate_new_schedule(config)

    def test_custom_without_cron_rejected(self) -> None:
        config = make_schedule(frequency=ScheduleFrequency.CUSTOM)

        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_new_schedule(config)

        assert exc_info.value.code == ErrorCode.SCHEDULE_MISSING_CRON

    def test_content_days_above_30_rejected(self) -> None:
        config = make_schedule(summary_options=SummaryOptions(content_days=45))

        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_new_schedule(config)

        assert exc_info.value.code == ErrorCode.SCHEDULE_INVALID_CONTENT_DAYS

    def test_multiple_problems_are_collected(self) -> None:
        config = make_schedule(
            schedule_id='bad id!',
            name='',
            delivery_methods=DeliveryMethods(),
        )

        with pytest.raises(MultipleValidationErrors) as exc_info:
            validate_new_schedule(config)

        codes = {error.code for error in exc_info.value.report.errors}
        assert codes == {
            ErrorCode.SCHEDULE_INVALID_ID,
            ErrorCode.SCHEDULE_INVALID_NAME,
            ErrorCode.SCHEDULE_NO_DELIVERY,
        }

    def test_name_longer_than_100_rejected(self) -> None:
        with pytest.raises(ScheduleValidationError) as exc_info:
            validate_new_schedule(make_schedule(name='x' * 101))

        assert exc_info.value.code == ErrorCode.SCHEDULE_INVALID_NAME


# =============================================================================
# DeliveryMethods
# =============================================================================


@pytest.mark.unit
class TestDeliveryMethods:
    def test_enabled_channels_in_stable_order(self) -> None:
        assert both_channels().enabled_channels() == [
            DeliveryChannel.TELEGRAM,
            DeliveryChannel.EMAIL,
        ]

    def test_disabled_channels_are_excluded(self) -> None:
        methods = DeliveryMethods(email=EmailDelivery(enabled=True, address='a@b.c'))

        assert methods.enabled_channels() == [DeliveryChannel.EMAIL]

    def test_channel_config_exposes_address(self) -> None:
        methods = both_channels()

        assert methods.channel_config(DeliveryChannel.TELEGRAM).address == '12345'
        assert methods.channel_config(DeliveryChannel.EMAIL).address == 'me@example.com'


# =============================================================================
# ScheduleExecution
# =============================================================================


@pytest.mark.unit
class TestScheduleExecution:
    def test_success_has_no_error(self) -> None:
        execution = ScheduleExecution(
            schedule_id='s',
            user_id='u',
            executed_at=utc(2025, 6, 1),
            status=ExecutionStatus.SUCCESS,
        )

        assert execution.error is None
        assert execution.id.startswith('exec_')

    def test_success_with_error_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ScheduleExecution(
                schedule_id='s',
                user_id='u',
                executed_at=utc(2025, 6, 1),
                status=ExecutionStatus.SUCCESS,
                error='boom',
            )

    @pytest.mark.parametrize('status', [ExecutionStatus.PARTIAL, ExecutionStatus.FAILED])
    def test_non_success_requires_error(self, status: ExecutionStatus) -> None:
        with pytest.raises(ValidationError):
            ScheduleExecution(
                schedule_id='s',
                user_id='u',
                executed_at=utc(2025, 6, 1),
                status=status,
            )

    def test_is_immutable(self) -> None:
        execution = ScheduleExecution(
            schedule_id='s',
            user_id='u',
            executed_at=utc(2025, 6, 1),
            status=ExecutionStatus.FAILED,
            error='boom',
        )

        with pytest.raises(ValidationError):
            execution.status = ExecutionStatus.SUCCESS  # type: ignore[misc]

    def test_delivery_results_dump_with_channel_keys(self) -> None:
        execution = ScheduleExecution(
            schedule_id='s',
            user_id='u',
            executed_at=utc(2025, 6, 1),
            status=ExecutionStatus.PARTIAL,
            error='some deliveries failed',
            delivery_results={
                DeliveryChannel.TELEGRAM: DeliveryOutcome(success=True, message_id='7'),
                DeliveryChannel.EMAIL: DeliveryOutcome(success=False, error='bounced'),
            },
        )

        dumped = execution.model_dump(by_alias=True, mode='json')

        assert dumped['deliveryResults']['telegram'] == {
            'success': True,
            'messageId': '7',
            'error': None,
        }
        assert dumped['deliveryResults']['email']['error'] == 'bounced'
