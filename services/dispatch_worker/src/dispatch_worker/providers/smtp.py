"""Plain SMTP email provider (self-hosted relays, local development)."""

import logging
import smtplib
from collections.abc import Iterator
from contextlib import contextmanager
from email.message import EmailMessage as MimeMessage
from email.utils import make_msgid

from notify_shared.errors import ProviderTimeoutError, VendorError

from dispatch_worker.providers.base import EmailMessage, EmailProvider, SendResult

logger = logging.getLogger(__name__)


class SmtpProvider(EmailProvider):
    """Sends through an SMTP relay.

    Settings: ``host``, ``port`` (587), ``secure`` (implicit TLS, usually
    port 465), ``use_tls`` (STARTTLS, default on), ``username``, ``password``.
    """

    required_config = ("host", "from_email")
    cost_per_message = 0.0

    @contextmanager
    def _connect(self) -> Iterator[smtplib.SMTP]:
        """Open an authenticated session; the socket is closed on any failure."""
        host = self.settings["host"]
        port = int(self.settings.get("port", 587))
        secure = bool(self.settings.get("secure"))
        if secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(host, port, timeout=self._timeout)
        else:
            server = smtplib.SMTP(host, port, timeout=self._timeout)
        with server:
            if not secure and self.settings.get("use_tls", True):
                server.starttls()
            username = self.settings.get("username")
            if username:
                server.login(username, self.settings.get("password", ""))
            yield server

    def build_mime(self, message: EmailMessage, message_id: str) -> MimeMessage:
        mime = MimeMessage()
        mime["Message-ID"] = message_id
        mime["From"] = self.formatted_from
        mime["To"] = ", ".join(message.to)
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        mime["Subject"] = message.subject
        reply_to = self.default_reply_to(message)
        if reply_to:
            mime["Reply-To"] = reply_to

        mime.set_content(message.text or "")
        if message.html:
            mime.add_alternative(message.html, subtype="html")
        for attachment in message.attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            mime.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return mime

    def send(self, message: EmailMessage) -> SendResult:
        domain = self.from_email.rpartition("@")[2] or None
        message_id = make_msgid(domain=domain)
        mime = self.build_mime(message, message_id)
        recipients = [*message.to, *message.cc, *message.bcc]

        try:
            with self._connect() as server:
                server.send_message(mime, to_addrs=recipients)
        except smtplib.SMTPAuthenticationError as exc:
            raise self.auth_failure(f"smtp authentication failed: {exc.smtp_error!r}") from exc
        except TimeoutError as exc:
            raise ProviderTimeoutError(
                f"smtp timed out after {self._timeout}s", provider_type=self.type
            ) from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise VendorError(f"smtp send failed: {exc}", provider_type=self.type) from exc

        logger.info(
            "Email sent",
            extra={"provider_id": self.id, "message_id": message_id, "recipients": len(recipients)},
        )
        return SendResult(
            success=True,
            provider_id=self.id,
            message_id=message_id,
            cost=self.estimate_cost(message),
        )

    def _probe(self) -> bool:
        with self._connect() as server:
            code, _ = server.noop()
        return code == 250
