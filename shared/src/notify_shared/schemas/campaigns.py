"""Event notification campaign requests and stored campaign documents."""

import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, model_validator

from notify_shared.enums import CampaignStatus, Channel


class CampaignRecipient(BaseModel):
    user_id: str = Field(min_length=1)
    first_name: str = ""
    last_name: str = ""
    email: EmailStr | None = None
    phone: str | None = None
    preferred_method: Literal["email", "sms", "both"] = "email"

    def wants(self, channel: Channel) -> bool:
        if self.preferred_method == "both":
            return True
        return self.preferred_method == channel.value


class EmailCampaignSettings(BaseModel):
    enabled: bool = True
    generate_qr: bool = False
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)


class SmsCampaignSettings(BaseModel):
    enabled: bool = True
    generate_pin: bool = False
    body: str = Field(min_length=1)


class CampaignRequest(BaseModel):
    """Payload of ``POST /events/<event_id>/campaigns``.

    ``subject`` and ``body`` are Jinja templates rendered per recipient
    with ``first_name``, ``last_name``, ``event_id``, ``pin_code`` and
    ``qr_token``.
    """

    tenant_id: str | None = None
    email: EmailCampaignSettings | None = None
    sms: SmsCampaignSettings | None = None
    recipients: list[CampaignRecipient] = Field(min_length=1)
    pin_ttl_minutes: int = Field(default=60, gt=0)
    qr_ttl_hours: int = Field(default=24, gt=0)

    @model_validator(mode="after")
    def _check_channels(self) -> "CampaignRequest":
        if not self.channels:
            raise ValueError("At least one of 'email' or 'sms' must be enabled")
        return self

    @property
    def channels(self) -> list[Channel]:
        channels = []
        if self.email is not None and self.email.enabled:
            channels.append(Channel.EMAIL)
        if self.sms is not None and self.sms.enabled:
            channels.append(Channel.SMS)
        return channels


class CampaignStats(BaseModel):
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    pin_codes_generated: int = 0
    qr_codes_generated: int = 0


class CampaignDocument(CampaignRequest):
    event_id: str
    status: CampaignStatus = CampaignStatus.QUEUED
    stats: CampaignStats = Field(default_factory=CampaignStats)
    created_at: datetime.datetime
    completed_at: datetime.datetime | None = None
