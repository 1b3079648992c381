import datetime

from pydantic import BaseModel, Field

from notify_shared.enums import AccessCodeKind


class AccessCode(BaseModel):
    """A one-time PIN or QR token granting event entry."""

    id: str
    event_id: str
    user_id: str
    kind: AccessCodeKind
    code: str
    expires_at: datetime.datetime
    is_used: bool = False
    used_at: datetime.datetime | None = None
    used_by: str | None = None
    created_at: datetime.datetime

    def is_valid(self, now: datetime.datetime) -> bool:
        return not self.is_used and now <= self.expires_at

    def is_expired(self, now: datetime.datetime) -> bool:
        return now > self.expires_at


class PinValidationRequest(BaseModel):
    code: str = Field(pattern=r"^\d{6}$")
    user_id: str | None = None


class QrValidationRequest(BaseModel):
    token: str = Field(min_length=1)
    user_id: str | None = None
