"""GC Notify client for notification emails."""

import calendar
import time
from typing import Any, Dict, Optional

import jwt
import requests

from infrastructure.configuration.integrations.notify import NotifySettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_http_error

logger = get_module_logger()

EMAIL_PATH = "/v2/notifications/email"


# generate the epoch seconds for the jwt token
def epoch_seconds():
    return calendar.timegm(time.gmtime())


def create_jwt_token(secret, client_id):
    """
    Generate a JWT Token for the Notify API

    Tokens have a header consisting of:
    {
        "typ": "JWT",
        "alg": "HS256"
    }

    Parameters:
    secret: API key secret used to sign the token
    client_id: Service id of the sending service

    Claims are:
    iss: service id
    iat: epoch seconds for the token (UTC)

    Returns a JWT token for this request
    """
    if not secret:
        logger.error("jwt_token_creation_failed", error="Missing secret key")
        raise ValueError("Missing secret key")
    if not client_id:
        logger.error("jwt_token_creation_failed", error="Missing client id")
        raise ValueError("Missing client id")

    headers = {"typ": "JWT", "alg": "HS256"}

    claims = {"iss": client_id, "iat": epoch_seconds()}
    t = jwt.encode(payload=claims, key=secret, headers=headers)
    if isinstance(t, str):
        return t
    else:
        return t.decode()


class NotifyClient:
    """Sends templated emails through GC Notify.

    Stateless apart from its settings; one instance is shared by all workers.

    Args:
        settings: NotifySettings with service id, secret, URL and template
        session: Optional requests session (tests inject a mock)
    """

    def __init__(
        self,
        settings: NotifySettings,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    def _authorization_header(self) -> Dict[str, str]:
        token = create_jwt_token(
            secret=self.settings.NOTIFY_API_KEY_SECRET,
            client_id=self.settings.NOTIFY_SERVICE_ID,
        )
        return {
            "Authorization": "Bearer {}".format(token),
            "Content-Type": "application/json",
        }

    def send_email(
        self,
        email_address: str,
        personalisation: Dict[str, Any],
        reference: Optional[str] = None,
    ) -> OperationResult:
        """POST one email to GC Notify.

        Returns:
            OperationResult
            - Success: data={"id": "<notify id>"} on HTTP 201
            - Permanent: HTTP 400 (bad address, bad personalisation)
            - Transient: HTTP 429, 5xx, timeouts, connection errors
            - Unavailable: missing configuration or rejected credentials
        """
        if not self.is_configured:
            return OperationResult.unavailable("GC Notify is not configured")

        payload: Dict[str, Any] = {
            "email_address": email_address,
            "template_id": self.settings.NOTIFY_EMAIL_TEMPLATE_ID,
            "personalisation": personalisation,
        }
        if reference:
            payload["reference"] = reference

        url = self.settings.NOTIFY_API_URL.rstrip("/") + EMAIL_PATH
        try:
            response = self.session.post(
                url,
                json=payload,
                headers=self._authorization_header(),
                timeout=self.settings.NOTIFY_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            return classify_http_error(exc, provider="notify")

        if response.status_code == 201:
            body = response.json()
            return OperationResult.success(
                data={"id": body.get("id")}, message="Email accepted by GC Notify"
            )

        if response.status_code == 400:
            return OperationResult.permanent_error(
                f"GC Notify rejected email: {response.text[:200]}",
                error_code="BAD_REQUEST",
            )

        if response.status_code in (401, 403):
            logger.error("notify_credentials_rejected", status=response.status_code)
            return OperationResult.unavailable(
                f"GC Notify rejected credentials ({response.status_code})"
            )

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            return classify_http_error(exc, provider="notify")
        return OperationResult.transient_error(
            f"Unexpected GC Notify response ({response.status_code})",
            error_code="UNEXPECTED_RESPONSE",
        )

    def health_check(self) -> OperationResult:
        if not self.is_configured:
            return OperationResult.unavailable("GC Notify is not configured")
        return OperationResult.success(message="GC Notify configured")
