"""Provider configuration documents and admin payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from notify_shared.enums import AvailabilityStatus


class RateLimitSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_per_minute: int = Field(gt=0)


class ProviderConfig(BaseModel):
    """Configuration of one provider, loaded from any resolution tier.

    Frozen: a provider instance is bound to the config it was built from,
    and picking up changes means reloading the instance.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    name: str
    priority: int = 1
    is_active: bool = True
    availability_status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    config: dict[str, Any] = Field(default_factory=dict)
    rate_limit: RateLimitSettings | None = None

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "ProviderConfig":
        return cls.model_validate({**data, "id": data.get("id", doc_id)})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ProviderConfigCreate(BaseModel):
    type: str = Field(min_length=1)
    name: str = Field(min_length=1)
    priority: int = Field(default=1, ge=0)
    is_active: bool = True
    config: dict[str, Any] = Field(default_factory=dict)
    rate_limit: RateLimitSettings | None = None


class ProviderConfigUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    priority: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    availability_status: AvailabilityStatus | None = None
    config: dict[str, Any] | None = None
    rate_limit: RateLimitSettings | None = None
