"""HTTP SMS providers: Twilio and Vonage."""

import logging

from notify_shared.errors import RateLimitExceededError, VendorError

from dispatch_worker.providers.base import SmsMessage, SmsProvider

logger = logging.getLogger(__name__)


class TwilioProvider(SmsProvider):
    required_config = ("account_sid", "auth_token", "from_number")
    cost_per_message = 0.0075

    DEFAULT_BASE_URL = "https://api.twilio.com/2010-04-01"

    @property
    def _account_url(self) -> str:
        base = self.settings.get("base_url", self.DEFAULT_BASE_URL)
        return f"{base}/Accounts/{self.settings['account_sid']}"

    @property
    def _auth(self) -> tuple[str, str]:
        return (self.settings["account_sid"], self.settings["auth_token"])

    def _send_one(self, phone: str, message: SmsMessage) -> str:
        response = self._http_request(
            "POST",
            f"{self._account_url}/Messages.json",
            auth=self._auth,
            data={
                "To": phone,
                "From": message.sender or self.sender,
                "Body": message.text,
            },
        )
        sid = self._json_field(response, "sid")
        logger.info("SMS sent", extra={"provider_id": self.id, "message_id": sid})
        return sid

    def _probe(self) -> bool:
        response = self._http_request("GET", f"{self._account_url}.json", auth=self._auth)
        body = self._json_body(response)
        return isinstance(body, dict) and body.get("status") == "active"


# Vonage reports errors in the body with HTTP 200; these status values
# mean bad credentials and throttling respectively.
_VONAGE_AUTH_STATUSES = frozenset({"4", "8", "9"})
_VONAGE_THROTTLED = "1"


class VonageProvider(SmsProvider):
    required_config = ("api_key", "api_secret", "from_number")
    cost_per_message = 0.0068

    DEFAULT_BASE_URL = "https://rest.nexmo.com"

    @property
    def _base_url(self) -> str:
        return self.settings.get("base_url", self.DEFAULT_BASE_URL)

    def _send_one(self, phone: str, message: SmsMessage) -> str:
        response = self._http_request(
            "POST",
            f"{self._base_url}/sms/json",
            data={
                "api_key": self.settings["api_key"],
                "api_secret": self.settings["api_secret"],
                "from": message.sender or self.sender,
                "to": phone.lstrip("+"),
                "text": message.text,
            },
        )
        result = self._json_field(response, "messages", 0)
        if not isinstance(result, dict):
            raise VendorError("vonage response has no message status", provider_type=self.type)
        status = str(result.get("status"))
        if status != "0":
            detail = result.get("error-text", "unknown error")
            if status in _VONAGE_AUTH_STATUSES:
                raise self.auth_failure(f"vonage rejected credentials: {detail}")
            if status == _VONAGE_THROTTLED:
                raise RateLimitExceededError(
                    f"vonage throttled the request: {detail}", provider_type=self.type
                )
            raise VendorError(
                f"vonage error {status}: {detail}", provider_type=self.type
            )

        message_id = result.get("message-id")
        if not message_id:
            raise VendorError("vonage response has no message-id", provider_type=self.type)
        logger.info("SMS sent", extra={"provider_id": self.id, "message_id": message_id})
        return message_id

    def _probe(self) -> bool:
        response = self._http_request(
            "GET",
            f"{self._base_url}/account/get-balance",
            params={
                "api_key": self.settings["api_key"],
                "api_secret": self.settings["api_secret"],
            },
        )
        body = self._json_body(response)
        return isinstance(body, dict) and "value" in body
