"""Generic HTTP SMS gateway configured entirely from provider settings.

Settings::

    url                 endpoint receiving one request per recipient
    method              HTTP method (POST)
    headers             static headers
    auth                {"type": "bearer", "token": ...}
                        {"type": "basic", "username": ..., "password": ...}
                        {"type": "header", "name": ..., "value": ...}
    payload_format      "json" or "form"
    payload_template    field -> Jinja template over ``to``, ``text``, ``sender``
    response_mapping    see ResponseMapping
    health_url          optional GET endpoint for test_connection
"""

import logging
from typing import Any

from pydantic import ValidationError

from notify_shared.errors import ProviderConfigError, VendorError
from notify_shared.schemas.providers import ProviderConfig

from dispatch_worker.providers.base import SmsMessage, SmsProvider
from dispatch_worker.providers.response_mapping import ResponseMapping
from dispatch_worker.renderer import render_template

logger = logging.getLogger(__name__)

DEFAULT_PAYLOAD_TEMPLATE = {
    "to": "{{ to }}",
    "message": "{{ text }}",
    "from": "{{ sender }}",
}


class CustomApiSmsProvider(SmsProvider):
    required_config = ("url",)
    cost_per_message = 0.01

    def __init__(self, config: ProviderConfig, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        try:
            self._mapping = ResponseMapping.model_validate(
                self.settings.get("response_mapping", {})
            )
        except ValidationError as exc:
            raise ProviderConfigError(
                f"Invalid response_mapping for {config.id}: {exc.errors(include_url=False)}",
                provider_type=config.type,
            ) from exc
        if self.settings.get("payload_format", "json") not in ("json", "form"):
            raise ProviderConfigError(
                "payload_format must be 'json' or 'form'", provider_type=config.type
            )

    def _auth_kwargs(self) -> dict[str, Any]:
        auth = self.settings.get("auth") or {}
        kind = auth.get("type")
        headers = dict(self.settings.get("headers") or {})
        kwargs: dict[str, Any] = {}
        if kind == "bearer":
            headers["Authorization"] = f"Bearer {auth['token']}"
        elif kind == "basic":
            kwargs["auth"] = (auth["username"], auth.get("password", ""))
        elif kind == "header":
            headers[auth["name"]] = auth["value"]
        kwargs["headers"] = headers
        return kwargs

    def build_payload(self, phone: str, message: SmsMessage) -> dict[str, str]:
        template = self.settings.get("payload_template") or DEFAULT_PAYLOAD_TEMPLATE
        context = {"to": phone, "text": message.text, "sender": message.sender or self.sender}
        return {field: render_template(value, context) for field, value in template.items()}

    def _send_one(self, phone: str, message: SmsMessage) -> str:
        payload = self.build_payload(phone, message)
        body_kwarg = "json" if self.settings.get("payload_format", "json") == "json" else "data"
        response = self._http_request(
            self.settings.get("method", "POST"),
            self.settings["url"],
            **{body_kwarg: payload},
            **self._auth_kwargs(),
        )
        body = self._json_body(response)
        message_id = self._mapping.message_id(body)
        if not self._mapping.is_success(body) or message_id is None:
            detail = self._mapping.error(body) or "response did not match success mapping"
            raise VendorError(f"custom_api error: {detail}", provider_type=self.type)

        logger.info("SMS sent", extra={"provider_id": self.id, "message_id": message_id})
        return message_id

    def _probe(self) -> bool:
        health_url = self.settings.get("health_url")
        if not health_url:
            return True
        response = self._http_request("GET", health_url, **self._auth_kwargs())
        return response.is_success
