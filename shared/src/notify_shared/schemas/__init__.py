from notify_shared.schemas.access_codes import (
    AccessCode,
    PinValidationRequest,
    QrValidationRequest,
)
from notify_shared.schemas.campaigns import (
    CampaignDocument,
    CampaignRecipient,
    CampaignRequest,
    CampaignStats,
    EmailCampaignSettings,
    SmsCampaignSettings,
)
from notify_shared.schemas.providers import (
    ProviderConfig,
    ProviderConfigCreate,
    ProviderConfigUpdate,
    RateLimitSettings,
)

__all__ = [
    "AccessCode",
    "PinValidationRequest",
    "QrValidationRequest",
    "CampaignDocument",
    "CampaignRecipient",
    "CampaignRequest",
    "CampaignStats",
    "EmailCampaignSettings",
    "SmsCampaignSettings",
    "ProviderConfig",
    "ProviderConfigCreate",
    "ProviderConfigUpdate",
    "RateLimitSettings",
]
