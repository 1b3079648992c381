"""One-time PIN and QR access codes for event entry."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from notify_shared.db.collections import COLLECTION_ACCESS_CODES
from notify_shared.db.store import DocumentStore
from notify_shared.enums import AccessCodeKind
from notify_shared.schemas.access_codes import AccessCode

logger = logging.getLogger(__name__)

DEFAULT_PIN_TTL_MINUTES = 60
DEFAULT_QR_TTL_HOURS = 24
_PIN_GENERATION_ATTEMPTS = 10

_LABELS = {AccessCodeKind.PIN: "PIN code", AccessCodeKind.QR: "QR code"}


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    valid: bool
    message: str
    reason: str | None = None
    code_id: str | None = None
    user_id: str | None = None


def generate_pin() -> str:
    """Six random digits, never starting with zero."""
    return str(100000 + secrets.randbelow(900000))


def generate_qr_token() -> str:
    return secrets.token_urlsafe(24)


class AccessCodeService:
    """Creates, validates and sweeps access codes.

    A code is valid iff it has not been used and ``now <= expires_at``.
    Validation consumes the code.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create_pin(
        self,
        event_id: str,
        user_id: str,
        ttl_minutes: int = DEFAULT_PIN_TTL_MINUTES,
        *,
        now: datetime | None = None,
    ) -> AccessCode:
        now = now or datetime.now(timezone.utc)
        with self._session_factory() as session:
            store = DocumentStore(session)
            code = self._unique_pin(store, event_id)
            access_code = self._save(
                store,
                AccessCodeKind.PIN,
                event_id,
                user_id,
                code,
                now + timedelta(minutes=ttl_minutes),
                now,
            )
            session.commit()
        return access_code

    def create_qr(
        self,
        event_id: str,
        user_id: str,
        ttl_hours: int = DEFAULT_QR_TTL_HOURS,
        *,
        now: datetime | None = None,
    ) -> AccessCode:
        now = now or datetime.now(timezone.utc)
        with self._session_factory() as session:
            store = DocumentStore(session)
            access_code = self._save(
                store,
                AccessCodeKind.QR,
                event_id,
                user_id,
                generate_qr_token(),
                now + timedelta(hours=ttl_hours),
                now,
            )
            session.commit()
        return access_code

    def validate_pin(
        self,
        event_id: str,
        code: str,
        used_by: str | None = None,
        *,
        now: datetime | None = None,
    ) -> ValidationOutcome:
        return self._validate(AccessCodeKind.PIN, event_id, code, used_by, now)

    def validate_qr(
        self,
        event_id: str,
        token: str,
        used_by: str | None = None,
        *,
        now: datetime | None = None,
    ) -> ValidationOutcome:
        return self._validate(AccessCodeKind.QR, event_id, token, used_by, now)

    def sweep_expired(
        self, now: datetime | None = None, chunk_size: int = 100
    ) -> int:
        """Delete every expired code in batches of *chunk_size*.

        Returns the number of deleted codes.
        """
        now = now or datetime.now(timezone.utc)
        deleted = 0
        with self._session_factory() as session:
            store = DocumentStore(session)
            expired_ids = []
            for doc_id, data in store.query(COLLECTION_ACCESS_CODES):
                try:
                    access_code = AccessCode.model_validate(data)
                except ValidationError:
                    logger.warning(
                        "Skipping malformed access code",
                        extra={"code_id": doc_id},
                    )
                    continue
                if access_code.is_expired(now):
                    expired_ids.append(doc_id)

            for start in range(0, len(expired_ids), chunk_size):
                batch = store.batch()
                for doc_id in expired_ids[start:start + chunk_size]:
                    batch.delete(COLLECTION_ACCESS_CODES, doc_id)
                deleted += batch.commit()

        logger.info("Expired access codes swept", extra={"deleted": deleted})
        return deleted

    def _unique_pin(self, store: DocumentStore, event_id: str) -> str:
        for _ in range(_PIN_GENERATION_ATTEMPTS):
            candidate = generate_pin()
            clash = store.query(
                COLLECTION_ACCESS_CODES,
                [
                    ("event_id", "==", event_id),
                    ("kind", "==", AccessCodeKind.PIN.value),
                    ("code", "==", candidate),
                    ("is_used", "==", False),
                ],
                limit=1,
            )
            if not clash:
                return candidate
        raise RuntimeError(f"Could not generate a unique PIN for event {event_id}")

    @staticmethod
    def _save(
        store: DocumentStore,
        kind: AccessCodeKind,
        event_id: str,
        user_id: str,
        code: str,
        expires_at: datetime,
        now: datetime,
    ) -> AccessCode:
        doc_id = f"{event_id}_{user_id}_{kind.value}"
        access_code = AccessCode(
            id=doc_id,
            event_id=event_id,
            user_id=user_id,
            kind=kind,
            code=code,
            expires_at=expires_at,
            created_at=now,
        )
        store.set(COLLECTION_ACCESS_CODES, doc_id, access_code.model_dump(mode="json"))
        logger.info(
            "Access code created",
            extra={"code_id": doc_id, "kind": kind.value, "event_id": event_id},
        )
        return access_code

    def _validate(
        self,
        kind: AccessCodeKind,
        event_id: str,
        code: str,
        used_by: str | None,
        now: datetime | None,
    ) -> ValidationOutcome:
        now = now or datetime.now(timezone.utc)
        label = _LABELS[kind]
        with self._session_factory() as session:
            store = DocumentStore(session)
            matches = store.query(
                COLLECTION_ACCESS_CODES,
                [
                    ("event_id", "==", event_id),
                    ("kind", "==", kind.value),
                    ("code", "==", code),
                ],
                order_by="created_at",
                descending=True,
            )
            if not matches:
                return ValidationOutcome(
                    valid=False, reason="not_found", message=f"{label} not found"
                )

            # A reissued PIN may share its digits with an old, consumed one.
            doc_id, data = next(
                ((i, d) for i, d in matches if not d.get("is_used")), matches[0]
            )
            access_code = AccessCode.model_validate(data)
            log_ctx = {"code_id": doc_id, "kind": kind.value, "event_id": event_id}

            if access_code.is_used:
                logger.info("Access code reuse rejected", extra=log_ctx)
                return ValidationOutcome(
                    valid=False,
                    reason="already_used",
                    message=f"{label} already used",
                    code_id=doc_id,
                    user_id=access_code.user_id,
                )
            if access_code.is_expired(now):
                return ValidationOutcome(
                    valid=False,
                    reason="expired",
                    message=f"{label} expired",
                    code_id=doc_id,
                    user_id=access_code.user_id,
                )

            consumed = store.update_if(
                COLLECTION_ACCESS_CODES,
                doc_id,
                {"is_used": False},
                {
                    "is_used": True,
                    "used_at": now.isoformat(),
                    "used_by": used_by or access_code.user_id,
                },
            )
            if consumed is None:
                logger.info("Access code consumed by a concurrent validation", extra=log_ctx)
                return ValidationOutcome(
                    valid=False,
                    reason="already_used",
                    message=f"{label} already used",
                    code_id=doc_id,
                    user_id=access_code.user_id,
                )
            session.commit()

        logger.info("Access code validated", extra=log_ctx)
        return ValidationOutcome(
            valid=True,
            message=f"{label} valid",
            code_id=doc_id,
            user_id=access_code.user_id,
        )
