"""HTTP email providers: SendGrid, Mailgun and Resend."""

import base64
import logging
import uuid
from typing import Any

from dispatch_worker.providers.base import EmailMessage, EmailProvider, SendResult

logger = logging.getLogger(__name__)


def _b64(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def _reply_id(body: Any) -> str | None:
    return body.get("id") if isinstance(body, dict) else None


class SendGridProvider(EmailProvider):
    required_config = ("api_key", "from_email")
    cost_per_message = 0.0006

    DEFAULT_BASE_URL = "https://api.sendgrid.com/v3"

    @property
    def _base_url(self) -> str:
        return self.settings.get("base_url", self.DEFAULT_BASE_URL)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings['api_key']}"}

    def _payload(self, message: EmailMessage) -> dict[str, Any]:
        personalization: dict[str, Any] = {"to": [{"email": a} for a in message.to]}
        if message.cc:
            personalization["cc"] = [{"email": a} for a in message.cc]
        if message.bcc:
            personalization["bcc"] = [{"email": a} for a in message.bcc]
        if message.template_data:
            personalization["dynamic_template_data"] = message.template_data

        sender: dict[str, str] = {"email": self.from_email}
        if self.from_name:
            sender["name"] = self.from_name

        payload: dict[str, Any] = {
            "personalizations": [personalization],
            "from": sender,
            "subject": message.subject,
        }
        content = []
        if message.text:
            content.append({"type": "text/plain", "value": message.text})
        if message.html:
            content.append({"type": "text/html", "value": message.html})
        if content:
            payload["content"] = content
        if message.template_id:
            payload["template_id"] = message.template_id
        reply_to = self.default_reply_to(message)
        if reply_to:
            payload["reply_to"] = {"email": reply_to}
        if message.attachments:
            payload["attachments"] = [
                {
                    "content": _b64(a.content),
                    "filename": a.filename,
                    "type": a.content_type,
                }
                for a in message.attachments
            ]
        return payload

    def send(self, message: EmailMessage) -> SendResult:
        response = self._http_request(
            "POST",
            f"{self._base_url}/mail/send",
            headers=self._headers,
            json=self._payload(message),
        )
        message_id = response.headers.get("X-Message-Id") or f"sendgrid-{uuid.uuid4().hex}"
        logger.info(
            "Email sent",
            extra={"provider_id": self.id, "message_id": message_id, "recipients": len(message.to)},
        )
        return SendResult(
            success=True,
            provider_id=self.id,
            message_id=message_id,
            cost=self.estimate_cost(message),
        )

    def _probe(self) -> bool:
        response = self._http_request("GET", f"{self._base_url}/scopes", headers=self._headers)
        return response.status_code == 200


class MailgunProvider(EmailProvider):
    required_config = ("api_key", "domain", "from_email")
    cost_per_message = 0.0008

    DEFAULT_BASE_URL = "https://api.mailgun.net/v3"

    @property
    def _base_url(self) -> str:
        return self.settings.get("base_url", self.DEFAULT_BASE_URL)

    @property
    def _auth(self) -> tuple[str, str]:
        return ("api", self.settings["api_key"])

    def send(self, message: EmailMessage) -> SendResult:
        data: dict[str, Any] = {
            "from": self.formatted_from,
            "to": list(message.to),
            "subject": message.subject,
        }
        if message.cc:
            data["cc"] = list(message.cc)
        if message.bcc:
            data["bcc"] = list(message.bcc)
        if message.text:
            data["text"] = message.text
        if message.html:
            data["html"] = message.html
        if message.template_id:
            data["template"] = message.template_id
        reply_to = self.default_reply_to(message)
        if reply_to:
            data["h:Reply-To"] = reply_to

        files = [
            ("attachment", (a.filename, a.content, a.content_type))
            for a in message.attachments
        ]
        response = self._http_request(
            "POST",
            f"{self._base_url}/{self.settings['domain']}/messages",
            auth=self._auth,
            data=data,
            files=files or None,
        )
        message_id = _reply_id(self._json_body(response)) or f"mailgun-{uuid.uuid4().hex}"
        logger.info(
            "Email sent",
            extra={"provider_id": self.id, "message_id": message_id, "recipients": len(message.to)},
        )
        return SendResult(
            success=True,
            provider_id=self.id,
            message_id=message_id,
            cost=self.estimate_cost(message),
        )

    def _probe(self) -> bool:
        response = self._http_request(
            "GET",
            f"{self._base_url}/domains/{self.settings['domain']}",
            auth=self._auth,
        )
        return response.status_code == 200


class ResendProvider(EmailProvider):
    required_config = ("api_key", "from_email")
    cost_per_message = 0.0004

    DEFAULT_BASE_URL = "https://api.resend.com"

    @property
    def _base_url(self) -> str:
        return self.settings.get("base_url", self.DEFAULT_BASE_URL)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings['api_key']}"}

    def send(self, message: EmailMessage) -> SendResult:
        payload: dict[str, Any] = {
            "from": self.formatted_from,
            "to": list(message.to),
            "subject": message.subject,
        }
        if message.cc:
            payload["cc"] = list(message.cc)
        if message.bcc:
            payload["bcc"] = list(message.bcc)
        if message.html:
            payload["html"] = message.html
        if message.text:
            payload["text"] = message.text
        reply_to = self.default_reply_to(message)
        if reply_to:
            payload["reply_to"] = reply_to
        if message.attachments:
            payload["attachments"] = [
                {"filename": a.filename, "content": _b64(a.content)}
                for a in message.attachments
            ]

        response = self._http_request(
            "POST", f"{self._base_url}/emails", headers=self._headers, json=payload
        )
        message_id = _reply_id(self._json_body(response)) or f"resend-{uuid.uuid4().hex}"
        logger.info(
            "Email sent",
            extra={"provider_id": self.id, "message_id": message_id, "recipients": len(message.to)},
        )
        return SendResult(
            success=True,
            provider_id=self.id,
            message_id=message_id,
            cost=self.estimate_cost(message),
        )

    def _probe(self) -> bool:
        response = self._http_request("GET", f"{self._base_url}/domains", headers=self._headers)
        return response.status_code == 200
