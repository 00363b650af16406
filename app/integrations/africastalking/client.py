"""Africa's Talking bulk SMS client."""

from typing import List, Optional

import requests

from infrastructure.configuration.integrations.sms import SmsSettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_http_error

logger = get_module_logger()

SANDBOX_USERNAME = "sandbox"
SANDBOX_URL = "https://api.sandbox.africastalking.com/version1/messaging"


class AfricasTalkingClient:
    """Sends one SMS request (up to the batch size) to Africa's Talking.

    Args:
        settings: SmsSettings with username, API key and sender id
        session: Optional requests session (tests inject a mock)
    """

    def __init__(
        self,
        settings: SmsSettings,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    @property
    def url(self) -> str:
        if self.settings.AFRICASTALKING_USERNAME == SANDBOX_USERNAME:
            return SANDBOX_URL
        return self.settings.AFRICASTALKING_API_URL

    def send(
        self, numbers: List[str], message: str, use_sender_id: bool = True
    ) -> OperationResult:
        """Send ``message`` to ``numbers`` in one request.

        ``use_sender_id=False`` omits the sender id, for networks that reject it.

        Returns:
            OperationResult
            - Success: data is the list of per-recipient entries
              ({"number", "status", "statusCode", "messageId", "cost"})
            - Transient/permanent: the whole request failed
            - Unavailable: missing configuration or rejected credentials
        """
        if not self.is_configured:
            return OperationResult.unavailable("Africa's Talking is not configured")

        form = {
            "username": self.settings.AFRICASTALKING_USERNAME,
            "to": ",".join(numbers),
            "message": message,
        }
        if use_sender_id and self.settings.AFRICASTALKING_SENDER_ID:
            form["from"] = self.settings.AFRICASTALKING_SENDER_ID

        try:
            response = self.session.post(
                self.url,
                data=form,
                headers={
                    "apiKey": self.settings.AFRICASTALKING_API_KEY,
                    "Accept": "application/json",
                },
                timeout=self.settings.SMS_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            return classify_http_error(exc, provider="africastalking")

        if response.status_code == 401:
            logger.error("africastalking_credentials_rejected")
            return OperationResult.unavailable("Africa's Talking rejected credentials")

        try:
            response.raise_for_status()
            body = response.json()
        except requests.HTTPError as exc:
            return classify_http_error(exc, provider="africastalking")
        except ValueError:
            return OperationResult.transient_error(
                f"Africa's Talking returned a non-JSON body: {response.text[:200]}",
                error_code="BAD_RESPONSE",
            )

        data = body.get("SMSMessageData", {})
        recipients = data.get("Recipients")
        if recipients is None:
            return OperationResult.transient_error(
                data.get("Message") or "Africa's Talking response had no recipients",
                error_code="BAD_RESPONSE",
            )
        return OperationResult.success(data=recipients, message=data.get("Message", "ok"))

    def health_check(self) -> OperationResult:
        if not self.is_configured:
            return OperationResult.unavailable("Africa's Talking is not configured")
        return OperationResult.success(message="Africa's Talking configured")
