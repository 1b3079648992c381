import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

from flask import Blueprint, Response, current_app, jsonify, request
from pydantic import BaseModel, ValidationError
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from notify_shared.access_codes import ValidationOutcome
from notify_shared.db.collections import COLLECTION_CAMPAIGNS
from notify_shared.db.store import DocumentStore
from notify_shared.enums import CampaignStatus, Channel
from notify_shared.errors import (
    ConfigNotFoundError,
    DuplicateError,
    InvalidMessageError,
    InvalidRecipientError,
    NotFoundError,
    NotificationError,
    ProviderConfigError,
    ProviderUnavailableError,
    RateLimitExceededError,
    UnsupportedProviderTypeError,
)
from notify_shared.schemas.access_codes import PinValidationRequest, QrValidationRequest
from notify_shared.schemas.campaigns import CampaignDocument, CampaignRequest
from notify_shared.schemas.providers import (
    ProviderConfig,
    ProviderConfigCreate,
    ProviderConfigUpdate,
)

from dispatch_worker.context import DispatchContext
from dispatch_worker.provider_admin import ProviderConfigService
from dispatch_worker.providers.base import Provider

from api_gateway.publisher import TaskPublisher

logger = logging.getLogger(__name__)

bp = Blueprint("gateway", __name__)

_STATUS_BY_ERROR: tuple[tuple[type[NotificationError], int], ...] = (
    (NotFoundError, 404),
    (ConfigNotFoundError, 404),
    (DuplicateError, 409),
    (UnsupportedProviderTypeError, 400),
    (ProviderConfigError, 400),
    (InvalidRecipientError, 400),
    (InvalidMessageError, 400),
    (RateLimitExceededError, 429),
    (ProviderUnavailableError, 503),
)

_SECRET_MARKERS = ("key", "secret", "token", "password")

M = TypeVar("M", bound=BaseModel)


def _error(message: str, status: int, **extra: Any) -> tuple[Response, int]:
    body: dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


def _context() -> DispatchContext:
    return current_app.extensions["dispatch_context"]


def _parse_body(model: type[M]) -> M | tuple[Response, int]:
    body = request.get_json(silent=True)
    if body is None:
        return _error("Request body must be valid JSON", 400)
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        return _error(
            "Payload validation failed",
            400,
            details=exc.errors(include_url=False, include_context=False),
        )


def _parse_channel(value: str) -> Channel | None:
    try:
        return Channel(value)
    except ValueError:
        return None


def _mask_settings(settings: dict[str, Any]) -> dict[str, Any]:
    masked: dict[str, Any] = {}
    for key, value in settings.items():
        if isinstance(value, dict):
            masked[key] = _mask_settings(value)
        elif value and any(marker in key.lower() for marker in _SECRET_MARKERS):
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def _config_body(config: ProviderConfig, source: str | None = None) -> dict[str, Any]:
    body = config.to_document()
    body["config"] = _mask_settings(config.config)
    if source is not None:
        body["source"] = source
    return body


def _provider_body(provider: Provider) -> dict[str, Any]:
    stats = provider.get_stats()
    return {
        "id": provider.id,
        "type": provider.type,
        "name": provider.name,
        "priority": provider.priority,
        "is_active": provider.is_active,
        "availability_status": provider.availability_status.value,
        "ready": provider.is_ready,
        "stats": {
            "sent": stats.sent,
            "failed": stats.failed,
            "total_cost": stats.total_cost,
            "last_used_at": stats.last_used_at.isoformat() if stats.last_used_at else None,
        },
    }


def _validation_response(outcome: ValidationOutcome) -> tuple[Response, int]:
    if not outcome.valid:
        return jsonify({
            "valid": False,
            "reason": outcome.reason,
            "message": outcome.message,
        }), 422
    return jsonify({
        "valid": True,
        "message": outcome.message,
        "code_id": outcome.code_id,
        "user_id": outcome.user_id,
    }), 200


@bp.errorhandler(NotificationError)
def _notification_error(exc: NotificationError) -> tuple[Response, int]:
    status = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        502,
    )
    if status >= 500:
        logger.warning("Request failed", extra={"code": exc.code, "error": exc.message})
    body = exc.to_dict()
    return _error(body.pop("error"), status, **body)


# Campaigns ---------------------------------------------------------------


@bp.post("/events/<event_id>/campaigns")
def create_campaign(event_id: str) -> tuple[Response, int]:
    parsed = _parse_body(CampaignRequest)
    if isinstance(parsed, tuple):
        return parsed

    campaign = CampaignDocument.model_validate({
        **parsed.model_dump(),
        "event_id": event_id,
        "created_at": datetime.now(timezone.utc),
    })

    with _context().session_factory() as session:
        store = DocumentStore(session)
        campaign_id = store.add(COLLECTION_CAMPAIGNS, campaign.model_dump(mode="json"))
        session.commit()

        publisher: TaskPublisher = current_app.extensions["task_publisher"]
        try:
            publisher.enqueue_campaign(campaign_id)
        except Exception:
            logger.exception("Failed to enqueue campaign", extra={"campaign_id": campaign_id})
            store.update(COLLECTION_CAMPAIGNS, campaign_id, {"status": CampaignStatus.FAILED.value})
            session.commit()
            return _error("Task broker unavailable", 503, campaign_id=campaign_id)

    logger.info(
        "Campaign accepted",
        extra={
            "campaign_id": campaign_id,
            "event_id": event_id,
            "tenant_id": campaign.tenant_id,
            "recipients": len(campaign.recipients),
        },
    )
    return jsonify({
        "status": "accepted",
        "campaign_id": campaign_id,
        "recipients": len(campaign.recipients),
    }), 202


@bp.get("/events/<event_id>/campaigns/<campaign_id>")
def get_campaign(event_id: str, campaign_id: str) -> tuple[Response, int]:
    with _context().session_factory() as session:
        data = DocumentStore(session).get(COLLECTION_CAMPAIGNS, campaign_id)

    if data is None or data.get("event_id") != event_id:
        return _error("Campaign not found", 404)

    campaign = CampaignDocument.model_validate(data)
    return jsonify({
        "campaign_id": campaign_id,
        "event_id": event_id,
        "status": campaign.status.value,
        "stats": campaign.stats.model_dump(),
        "created_at": campaign.created_at.isoformat(),
        "completed_at": campaign.completed_at.isoformat() if campaign.completed_at else None,
    }), 200


# Access codes ------------------------------------------------------------


@bp.post("/events/<event_id>/qrcode/validate")
def validate_qr_code(event_id: str) -> tuple[Response, int]:
    parsed = _parse_body(QrValidationRequest)
    if isinstance(parsed, tuple):
        return parsed
    outcome = _context().access_codes.validate_qr(event_id, parsed.token, parsed.user_id)
    return _validation_response(outcome)


@bp.post("/events/<event_id>/pin/validate")
def validate_pin_code(event_id: str) -> tuple[Response, int]:
    parsed = _parse_body(PinValidationRequest)
    if isinstance(parsed, tuple):
        return parsed
    outcome = _context().access_codes.validate_pin(event_id, parsed.code, parsed.user_id)
    return _validation_response(outcome)


# Providers ---------------------------------------------------------------


@bp.get("/providers/<channel>")
def list_available_providers(channel: str) -> tuple[Response, int]:
    parsed = _parse_channel(channel)
    if parsed is None:
        return _error("Unknown channel", 404, channel=channel)

    tenant_id = request.args.get("tenant_id")
    providers = _context().notifications.available_providers(parsed, tenant_id)
    return jsonify({
        "channel": parsed.value,
        "tenant_id": tenant_id,
        "providers": [_provider_body(p) for p in providers],
    }), 200


@bp.post("/providers/<channel>/test")
def test_providers(channel: str) -> tuple[Response, int]:
    parsed = _parse_channel(channel)
    if parsed is None:
        return _error("Unknown channel", 404, channel=channel)

    results = _context().notifications.test_all_providers(
        parsed, request.args.get("tenant_id")
    )
    return jsonify({"results": results, "healthy": bool(results) and all(results.values())}), 200


@bp.post("/providers/<channel>/reload")
def reload_providers(channel: str) -> tuple[Response, int]:
    parsed = _parse_channel(channel)
    if parsed is None:
        return _error("Unknown channel", 404, channel=channel)

    provider_type = request.args.get("type")
    registry = _context().registry_for(parsed)
    if provider_type is None:
        registry.reload_all_providers()
    else:
        registry.constructor_for(provider_type)
        registry.reload_provider(provider_type)

    publisher: TaskPublisher = current_app.extensions["task_publisher"]
    try:
        publisher.broadcast_reload(parsed.value, provider_type=provider_type)
    except Exception:
        logger.exception("Failed to broadcast provider reload", extra={"channel": parsed.value})
        return _error("Task broker unavailable", 503)

    return jsonify({"status": "reloaded", "channel": parsed.value, "type": provider_type}), 200


# Tenant provider configuration -------------------------------------------


@bp.get("/tenants/<tenant_id>/providers/<channel>")
def list_tenant_providers(tenant_id: str, channel: str) -> tuple[Response, int]:
    parsed = _parse_channel(channel)
    if parsed is None:
        return _error("Unknown channel", 404, channel=channel)

    admin: ProviderConfigService = current_app.extensions["provider_admin"]
    configs = admin.list_providers(parsed, tenant_id)
    return jsonify({
        "tenant_id": tenant_id,
        "channel": parsed.value,
        "providers": [_config_body(config, source) for source, config in configs],
    }), 200


@bp.post("/tenants/<tenant_id>/providers/<channel>")
def create_tenant_provider(tenant_id: str, channel: str) -> tuple[Response, int]:
    parsed_channel = _parse_channel(channel)
    if parsed_channel is None:
        return _error("Unknown channel", 404, channel=channel)
    parsed = _parse_body(ProviderConfigCreate)
    if isinstance(parsed, tuple):
        return parsed

    admin: ProviderConfigService = current_app.extensions["provider_admin"]
    config = admin.create_provider(parsed_channel, tenant_id, parsed)
    return jsonify(_config_body(config, "tenant")), 201


@bp.patch("/tenants/<tenant_id>/providers/<channel>/<provider_id>")
def update_tenant_provider(
    tenant_id: str, channel: str, provider_id: str
) -> tuple[Response, int]:
    parsed_channel = _parse_channel(channel)
    if parsed_channel is None:
        return _error("Unknown channel", 404, channel=channel)
    parsed = _parse_body(ProviderConfigUpdate)
    if isinstance(parsed, tuple):
        return parsed

    admin: ProviderConfigService = current_app.extensions["provider_admin"]
    config = admin.update_provider(parsed_channel, tenant_id, provider_id, parsed)
    return jsonify(_config_body(config, "tenant")), 200


@bp.delete("/tenants/<tenant_id>/providers/<channel>/<provider_id>")
def delete_tenant_provider(
    tenant_id: str, channel: str, provider_id: str
) -> tuple[str, int] | tuple[Response, int]:
    parsed_channel = _parse_channel(channel)
    if parsed_channel is None:
        return _error("Unknown channel", 404, channel=channel)

    admin: ProviderConfigService = current_app.extensions["provider_admin"]
    admin.delete_provider(parsed_channel, tenant_id, provider_id)
    return "", 204


# Health ------------------------------------------------------------------


@bp.get("/health")
def health() -> tuple[Response, int]:
    checks: dict[str, str] = {}

    try:
        with _context().session_factory() as session:
            session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        checks["database"] = "unreachable"

    redis_client: Redis | None = current_app.extensions["redis_client"]
    if redis_client is not None:
        try:
            redis_client.ping()
            checks["redis"] = "ok"
        except RedisError:
            logger.warning("Redis health check failed", exc_info=True)
            checks["redis"] = "unreachable"

    healthy = all(value == "ok" for value in checks.values())
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "checks": checks,
    }), 200 if healthy else 503
