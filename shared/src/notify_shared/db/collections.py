"""Document collection names.

Collections are created implicitly by the first write, so these constants
are the single source of truth for collection paths.
"""

from notify_shared.enums import Channel

COLLECTION_TENANTS = "tenants"
COLLECTION_EMAIL_PROVIDERS = "email_providers"
COLLECTION_SMS_PROVIDERS = "sms_providers"
COLLECTION_ACCESS_CODES = "access_codes"
COLLECTION_CAMPAIGNS = "campaigns"

_PROVIDER_COLLECTIONS = {
    Channel.EMAIL: COLLECTION_EMAIL_PROVIDERS,
    Channel.SMS: COLLECTION_SMS_PROVIDERS,
}


def tenant_collection(tenant_id: str, name: str) -> str:
    """Path of a sub-collection under one tenant document."""
    return f"{COLLECTION_TENANTS}/{tenant_id}/{name}"


def provider_collection(channel: str, tenant_id: str | None = None) -> str:
    """Global or tenant-scoped provider config collection for *channel*."""
    name = _PROVIDER_COLLECTIONS[Channel(channel)]
    if tenant_id is None:
        return name
    return tenant_collection(tenant_id, name)
