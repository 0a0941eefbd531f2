# notedigest/core/models/delivery.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing_extensions import TypeAliasType
from notedigest.core.types.result import Result
from notedigest.core.types.status import DeliveryChannel


class TelegramDelivery(BaseModel):
    """Telegram channel settings for a schedule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool = False
    chat_id: Optional[str] = Field(default=None, description='Telegram chat id')

    @property
    def address(self) -> Optional[str]:
        return self.chat_id


class EmailDelivery(BaseModel):
    """Email channel settings for a schedule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool = False
    address: Optional[str] = Field(default=None, description='Recipient address')


ChannelConfig = Union[TelegramDelivery, EmailDelivery]


class DeliveryMethods(BaseModel):
    """Per-channel delivery configuration of a schedule."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    telegram: TelegramDelivery = Field(default_factory=TelegramDelivery)
    email: EmailDelivery = Field(default_factory=EmailDelivery)

    def channel_config(self, channel: DeliveryChannel) -> ChannelConfig:
        match channel:
            case DeliveryChannel.TELEGRAM:
                return self.telegram
            case DeliveryChannel.EMAIL:
                return self.email

    def enabled_channels(self) -> list[DeliveryChannel]:
        """Channels switched on, in a stable order (telegram, email)."""
        return [
            channel
            for channel in DeliveryChannel
            if self.channel_config(channel).enabled
        ]


@dataclass(slots=True, frozen=True)
class DeliveryReceipt:
    """Success payload of a delivery attempt."""

    message_id: str | None = None


@dataclass(slots=True, frozen=True)
class DeliveryFailure:
    """Failure payload of a delivery attempt.

    Fields:
        reason: human-readable description, stored on the execution record
        retryable: whether the sink considers the failure transient
        exception: the original cause (if any)
    """

    reason: str
    retryable: bool = False
    exception: BaseException | None = None


DeliveryResult = TypeAliasType('DeliveryResult', Result[DeliveryReceipt, DeliveryFailure])
