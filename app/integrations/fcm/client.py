"""Firebase Cloud Messaging HTTP v1 client.

Authenticates with a service account through google-auth and talks to the
FCM v1 send endpoint and the Instance ID API (topic subscriptions) with
requests.
"""

import json
import threading
from typing import Any, Dict, List, Optional

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from infrastructure.configuration.integrations.fcm import FcmSettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult, classify_http_error

logger = get_module_logger()

FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
TOPIC_BATCH_SIZE = 1000

# FCM v1 error codes that mean the token will never work again
UNREGISTERED_CODES = frozenset({"UNREGISTERED", "SENDER_ID_MISMATCH"})
TRANSIENT_CODES = frozenset({"QUOTA_EXCEEDED", "UNAVAILABLE", "INTERNAL"})


def _fcm_error(response: requests.Response) -> Dict[str, str]:
    """Pull status, errorCode and message out of an FCM error body."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return {"status": "", "code": "", "message": response.text[:200]}
    code = ""
    for detail in error.get("details", []):
        if detail.get("errorCode"):
            code = detail["errorCode"]
            break
    return {
        "status": error.get("status", ""),
        "code": code or error.get("status", ""),
        "message": error.get("message", ""),
    }


class FcmClient:
    """Client for the FCM HTTP v1 API.

    The OAuth access token is cached and refreshed under a lock; everything
    else is stateless, so one instance is shared by all dispatcher workers.

    Args:
        settings: FcmSettings with project id and service account credentials
        session: Optional requests session (tests inject a mock)
    """

    def __init__(
        self,
        settings: FcmSettings,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self._credentials = None
        self._lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    def _load_credentials(self):
        if self.settings.FCM_CREDENTIALS_JSON:
            info = json.loads(self.settings.FCM_CREDENTIALS_JSON)
            return service_account.Credentials.from_service_account_info(
                info, scopes=FCM_SCOPES
            )
        return service_account.Credentials.from_service_account_file(
            self.settings.FCM_CREDENTIALS_FILE, scopes=FCM_SCOPES
        )

    def _access_token(self) -> str:
        with self._lock:
            if self._credentials is None:
                self._credentials = self._load_credentials()
            if not self._credentials.valid:
                self._credentials.refresh(GoogleAuthRequest())
            return self._credentials.token

    def _auth_headers(self) -> Optional[Dict[str, str]]:
        try:
            token = self._access_token()
        except (GoogleAuthError, ValueError, OSError) as exc:
            logger.error("fcm_credentials_unavailable", error=str(exc))
            return None
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; UTF-8",
        }

    def send(self, message: Dict[str, Any], validate_only: bool = False) -> OperationResult:
        """Send one FCM v1 message (token or topic target).

        Returns:
            OperationResult
            - Success: data={"name": "projects/.../messages/..."}
            - Permanent: UNREGISTERED or invalid token, data={"invalid_token": True};
              other INVALID_ARGUMENT errors, data={"invalid_token": False}
            - Transient: QUOTA_EXCEEDED, UNAVAILABLE, INTERNAL, 429, 5xx, timeouts
            - Unavailable: missing configuration or rejected credentials
        """
        if not self.is_configured:
            return OperationResult.unavailable("FCM is not configured")
        headers = self._auth_headers()
        if headers is None:
            return OperationResult.unavailable("FCM credentials could not be loaded")

        url = (
            f"{self.settings.FCM_API_URL.rstrip('/')}/v1/projects/"
            f"{self.settings.FCM_PROJECT_ID}/messages:send"
        )
        body: Dict[str, Any] = {"message": message}
        if validate_only:
            body["validate_only"] = True

        try:
            response = self.session.post(
                url,
                json=body,
                headers=headers,
                timeout=self.settings.FCM_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            return classify_http_error(exc, provider="fcm")

        if response.status_code == 200:
            return OperationResult.success(
                data={"name": response.json().get("name")}, message="Message accepted"
            )
        return self._classify_send_error(response)

    def _classify_send_error(self, response: requests.Response) -> OperationResult:
        error = _fcm_error(response)
        code = error["code"]
        message = error["message"] or f"FCM error ({response.status_code})"

        if code in UNREGISTERED_CODES or response.status_code == 404:
            return OperationResult.permanent_error(
                message, error_code="UNREGISTERED", data={"invalid_token": True}
            )

        if code == "INVALID_ARGUMENT":
            invalid_token = "token" in message.lower()
            return OperationResult.permanent_error(
                message,
                error_code="INVALID_ARGUMENT",
                data={"invalid_token": invalid_token},
            )

        if response.status_code == 401 or code == "THIRD_PARTY_AUTH_ERROR":
            logger.error("fcm_credentials_rejected", error_code=code)
            return OperationResult.unavailable(message)

        if code in TRANSIENT_CODES:
            return OperationResult.transient_error(message, error_code=code)

        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            return classify_http_error(exc, provider="fcm")
        return OperationResult.transient_error(message, error_code=code or "UNKNOWN")

    def _topic_request(self, action: str, tokens: List[str], topic: str) -> OperationResult:
        if not self.is_configured:
            return OperationResult.unavailable("FCM is not configured")
        headers = self._auth_headers()
        if headers is None:
            return OperationResult.unavailable("FCM credentials could not be loaded")
        headers["access_token_auth"] = "true"

        url = f"{self.settings.FCM_IID_URL.rstrip('/')}/iid/v1:{action}"
        success_count = 0
        errors: List[Dict[str, Any]] = []
        for offset in range(0, len(tokens), TOPIC_BATCH_SIZE):
            chunk = tokens[offset : offset + TOPIC_BATCH_SIZE]
            try:
                response = self.session.post(
                    url,
                    json={"to": f"/topics/{topic}", "registration_tokens": chunk},
                    headers=headers,
                    timeout=self.settings.FCM_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
            except requests.RequestException as exc:
                return classify_http_error(exc, provider="fcm")

            for index, result in enumerate(response.json().get("results", [])):
                if result.get("error"):
                    errors.append(
                        {"index": offset + index, "reason": result["error"]}
                    )
                else:
                    success_count += 1

        return OperationResult.success(
            data={
                "success_count": success_count,
                "failure_count": len(errors),
                "errors": errors,
            },
            message=f"Topic {action} completed",
        )

    def subscribe(self, tokens: List[str], topic: str) -> OperationResult:
        return self._topic_request("batchAdd", tokens, topic)

    def unsubscribe(self, tokens: List[str], topic: str) -> OperationResult:
        return self._topic_request("batchRemove", tokens, topic)

    def health_check(self) -> OperationResult:
        """Configured and able to mint an access token."""
        if not self.is_configured:
            return OperationResult.unavailable("FCM is not configured")
        if self._auth_headers() is None:
            return OperationResult.unavailable("FCM credentials could not be loaded")
        return OperationResult.success(message="FCM credentials valid")
