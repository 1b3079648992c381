from unittest.mock import MagicMock

from flask.testing import FlaskClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from notify_shared.db.collections import COLLECTION_CAMPAIGNS, provider_collection
from notify_shared.db.store import DocumentStore
from notify_shared.schemas.providers import ProviderConfig

from dispatch_worker.context import DispatchContext
from dispatch_worker.rate_limiter import RateLimiter
from dispatch_worker.registry import ProviderRegistry
from dispatch_worker.resolver import ProviderConfigResolver
from dispatch_worker.service import NotificationService

from services.dispatch_worker.tests.fakes import FakeEmailProvider


def _campaign_payload(**overrides: object) -> dict:
    payload: dict = {
        "tenant_id": "acme",
        "email": {"subject": "Welcome {{ first_name }}", "body": "<p>See you!</p>"},
        "recipients": [
            {"user_id": "u1", "first_name": "Ada", "email": "ada@example.com"},
            {"user_id": "u2", "first_name": "Bob", "email": "bob@example.com"},
        ],
    }
    payload.update(overrides)
    return payload


def _tenant_provider(**overrides: object) -> dict:
    payload: dict = {
        "type": "alpha",
        "name": "Acme Alpha",
        "priority": 0,
        "config": {"from_email": "events@acme.example", "api_key": "SG.secret"},
    }
    payload.update(overrides)
    return payload


class TestCreateCampaign:
    """POST /events/<event_id>/campaigns endpoint."""

    def test_returns_202_and_enqueues(
        self, client: FlaskClient, mock_publisher: MagicMock, db_session: Session
    ) -> None:
        resp = client.post("/events/evt-1/campaigns", json=_campaign_payload())

        assert resp.status_code == 202
        data = resp.get_json()
        assert data["status"] == "accepted"
        assert data["recipients"] == 2
        mock_publisher.enqueue_campaign.assert_called_once_with(data["campaign_id"])

        stored = DocumentStore(db_session).get(COLLECTION_CAMPAIGNS, data["campaign_id"])
        assert stored["event_id"] == "evt-1"
        assert stored["status"] == "queued"

    def test_no_json_body_returns_400(self, client: FlaskClient) -> None:
        resp = client.post(
            "/events/evt-1/campaigns", data="not json", content_type="text/plain"
        )

        assert resp.status_code == 400
        assert "JSON" in resp.get_json()["error"]

    def test_no_channel_returns_400(
        self, client: FlaskClient, mock_publisher: MagicMock
    ) -> None:
        resp = client.post("/events/evt-1/campaigns", json=_campaign_payload(email=None))

        assert resp.status_code == 400
        assert resp.get_json()["details"]
        mock_publisher.enqueue_campaign.assert_not_called()

    def test_bad_recipient_email_returns_400(self, client: FlaskClient) -> None:
        resp = client.post(
            "/events/evt-1/campaigns",
            json=_campaign_payload(recipients=[{"user_id": "u1", "email": "nope"}]),
        )

        assert resp.status_code == 400

    def test_broker_down_returns_503_and_marks_failed(
        self, client: FlaskClient, mock_publisher: MagicMock, db_session: Session
    ) -> None:
        mock_publisher.enqueue_campaign.side_effect = ConnectionError("broker down")

        resp = client.post("/events/evt-1/campaigns", json=_campaign_payload())

        assert resp.status_code == 503
        campaign_id = resp.get_json()["campaign_id"]
        stored = DocumentStore(db_session).get(COLLECTION_CAMPAIGNS, campaign_id)
        assert stored["status"] == "failed"


class TestGetCampaign:
    def test_returns_status(self, client: FlaskClient) -> None:
        campaign_id = client.post(
            "/events/evt-1/campaigns", json=_campaign_payload()
        ).get_json()["campaign_id"]

        resp = client.get(f"/events/evt-1/campaigns/{campaign_id}")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "queued"
        assert data["stats"]["sent"] == 0
        assert data["completed_at"] is None

    def test_other_event_returns_404(self, client: FlaskClient) -> None:
        campaign_id = client.post(
            "/events/evt-1/campaigns", json=_campaign_payload()
        ).get_json()["campaign_id"]

        assert client.get(f"/events/evt-2/campaigns/{campaign_id}").status_code == 404

    def test_unknown_returns_404(self, client: FlaskClient) -> None:
        assert client.get("/events/evt-1/campaigns/missing").status_code == 404


class TestAccessCodeValidation:
    def test_valid_pin(self, client: FlaskClient, context: DispatchContext) -> None:
        code = context.access_codes.create_pin("evt-1", "u1")

        resp = client.post("/events/evt-1/pin/validate", json={"code": code.code})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["valid"] is True
        assert data["user_id"] == "u1"

    def test_pin_reuse_returns_422(self, client: FlaskClient, context: DispatchContext) -> None:
        code = context.access_codes.create_pin("evt-1", "u1")
        client.post("/events/evt-1/pin/validate", json={"code": code.code})

        resp = client.post("/events/evt-1/pin/validate", json={"code": code.code})

        assert resp.status_code == 422
        assert resp.get_json()["reason"] == "already_used"

    def test_malformed_pin_returns_400(self, client: FlaskClient) -> None:
        resp = client.post("/events/evt-1/pin/validate", json={"code": "12ab"})

        assert resp.status_code == 400

    def test_valid_qr(self, client: FlaskClient, context: DispatchContext) -> None:
        code = context.access_codes.create_qr("evt-1", "u1")

        resp = client.post(
            "/events/evt-1/qrcode/validate", json={"token": code.code, "user_id": "scanner"}
        )

        assert resp.status_code == 200
        assert resp.get_json()["code_id"] == code.id

    def test_unknown_qr_returns_422(self, client: FlaskClient) -> None:
        resp = client.post("/events/evt-1/qrcode/validate", json={"token": "nope"})

        assert resp.status_code == 422
        assert resp.get_json()["reason"] == "not_found"


class TestProviders:
    def test_lists_active_providers(self, client: FlaskClient) -> None:
        resp = client.get("/providers/email")

        assert resp.status_code == 200
        providers = resp.get_json()["providers"]
        assert [p["type"] for p in providers] == ["alpha", "beta"]
        assert providers[0]["ready"] is True
        assert providers[0]["stats"]["sent"] == 0

    def test_listing_leaves_rate_limit_quota_alone(
        self, client: FlaskClient, context: DispatchContext, session_factory: MagicMock
    ) -> None:
        limiter = MagicMock(spec=RateLimiter)
        limiter.check.return_value = True
        limited = ProviderConfig(
            id="alpha-static",
            type="alpha",
            name="Alpha",
            rate_limit={"max_per_minute": 2},
            config={"from_email": "noreply@example.com"},
        )
        context.email_registry = ProviderRegistry(
            "email",
            ProviderConfigResolver(session_factory, "email", {"alpha": limited}),
            {"alpha": FakeEmailProvider},
            provider_kwargs={"rate_limiter": limiter},
        )
        context.notifications = NotificationService(context.email_registry, context.sms_registry)

        for _ in range(3):
            resp = client.get("/providers/email")
            assert resp.get_json()["providers"][0]["ready"] is True

        limiter.check.assert_not_called()

    def test_unknown_channel_returns_404(self, client: FlaskClient) -> None:
        assert client.get("/providers/fax").status_code == 404

    def test_connection_tests(self, client: FlaskClient, context: DispatchContext) -> None:
        context.email_registry.get_provider("beta").probe_ok = False

        resp = client.post("/providers/email/test")

        assert resp.status_code == 200
        assert resp.get_json() == {"results": {"alpha": True, "beta": False}, "healthy": False}

    def test_reload_single_type(
        self, client: FlaskClient, context: DispatchContext, mock_publisher: MagicMock
    ) -> None:
        before = context.email_registry.get_provider("alpha")

        resp = client.post("/providers/email/reload?type=alpha")

        assert resp.status_code == 200
        assert context.email_registry.get_provider("alpha") is not before
        mock_publisher.broadcast_reload.assert_called_once_with("email", provider_type="alpha")

    def test_reload_unknown_type_returns_400(self, client: FlaskClient) -> None:
        resp = client.post("/providers/email/reload?type=pigeon")

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "unsupported_provider_type"

    def test_reload_broadcast_failure_returns_503(
        self, client: FlaskClient, mock_publisher: MagicMock
    ) -> None:
        mock_publisher.broadcast_reload.side_effect = ConnectionError("broker down")

        assert client.post("/providers/sms/reload").status_code == 503


class TestTenantProviders:
    def test_create_masks_secrets(
        self, client: FlaskClient, mock_publisher: MagicMock
    ) -> None:
        resp = client.post("/tenants/acme/providers/email", json=_tenant_provider())

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["source"] == "tenant"
        assert data["config"]["api_key"] == "***"
        assert data["config"]["from_email"] == "events@acme.example"
        mock_publisher.broadcast_reload.assert_called_once_with("email", "acme")

    def test_created_provider_used_for_tenant(
        self, client: FlaskClient, context: DispatchContext
    ) -> None:
        client.post("/tenants/acme/providers/email", json=_tenant_provider())

        provider = context.email_registry.get_provider_for_tenant("alpha", "acme")

        assert provider.from_email == "events@acme.example"

    def test_duplicate_returns_409(self, client: FlaskClient) -> None:
        client.post("/tenants/acme/providers/email", json=_tenant_provider())

        resp = client.post("/tenants/acme/providers/email", json=_tenant_provider())

        assert resp.status_code == 409

    def test_missing_required_settings_returns_400(self, client: FlaskClient) -> None:
        resp = client.post(
            "/tenants/acme/providers/email", json=_tenant_provider(config={"api_key": "x"})
        )

        assert resp.status_code == 400
        assert "from_email" in resp.get_json()["error"]

    def test_list_merges_global(self, client: FlaskClient, db_session: Session) -> None:
        DocumentStore(db_session).set(
            provider_collection("email"),
            "global-beta",
            {"type": "beta", "name": "Beta", "priority": 3, "config": {"password": "pw"}},
        )
        client.post("/tenants/acme/providers/email", json=_tenant_provider())

        resp = client.get("/tenants/acme/providers/email")

        providers = resp.get_json()["providers"]
        assert [(p["type"], p["source"]) for p in providers] == [
            ("alpha", "tenant"),
            ("beta", "global"),
        ]
        assert providers[1]["config"]["password"] == "***"

    def test_update(self, client: FlaskClient) -> None:
        provider_id = client.post(
            "/tenants/acme/providers/email", json=_tenant_provider()
        ).get_json()["id"]

        resp = client.patch(
            f"/tenants/acme/providers/email/{provider_id}", json={"is_active": False}
        )

        assert resp.status_code == 200
        assert resp.get_json()["is_active"] is False

    def test_update_unknown_returns_404(self, client: FlaskClient) -> None:
        resp = client.patch("/tenants/acme/providers/email/missing", json={"priority": 2})

        assert resp.status_code == 404

    def test_delete(self, client: FlaskClient, mock_publisher: MagicMock) -> None:
        provider_id = client.post(
            "/tenants/acme/providers/email", json=_tenant_provider()
        ).get_json()["id"]

        resp = client.delete(f"/tenants/acme/providers/email/{provider_id}")

        assert resp.status_code == 204
        assert mock_publisher.broadcast_reload.call_count == 2
        assert client.delete(f"/tenants/acme/providers/email/{provider_id}").status_code == 404


class TestHealth:
    def test_healthy(self, client: FlaskClient) -> None:
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.get_json() == {
            "status": "healthy",
            "checks": {"database": "ok", "redis": "ok"},
        }

    def test_redis_down(self, client: FlaskClient, mock_redis: MagicMock) -> None:
        mock_redis.ping.side_effect = RedisConnectionError("refused")

        resp = client.get("/health")

        assert resp.status_code == 503
        assert resp.get_json()["checks"]["redis"] == "unreachable"

    def test_database_down(self, client: FlaskClient, session_factory: MagicMock) -> None:
        session_factory.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        resp = client.get("/health")

        assert resp.status_code == 503
        assert resp.get_json()["checks"]["database"] == "unreachable"
