"""Map requests and botocore exceptions onto ``OperationResult``.

The push, SMS and email clients share ``classify_http_error``; the DynamoDB
store and directory share ``classify_aws_error``. Keeping the mapping here
means every channel agrees on what counts as retryable.

Usage:
    try:
        response = session.post(url, json=body, timeout=15)
        response.raise_for_status()
    except requests.RequestException as exc:
        return classify_http_error(exc, provider="fcm")
"""

from typing import Optional

import requests
from botocore.exceptions import ClientError

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

DEFAULT_RETRY_AFTER = 60

# botocore error code -> (status, our error code, message)
_AWS_ERRORS: dict[str, tuple[OperationStatus, str, str]] = {
    "ThrottlingException": (
        OperationStatus.TRANSIENT_ERROR,
        "RATE_LIMITED",
        "AWS API throttled",
    ),
    "ProvisionedThroughputExceededException": (
        OperationStatus.TRANSIENT_ERROR,
        "RATE_LIMITED",
        "AWS API throttled",
    ),
    "ConditionalCheckFailedException": (
        OperationStatus.PERMANENT_ERROR,
        "CONDITION_FAILED",
        "Conditional update rejected",
    ),
    "AccessDeniedException": (
        OperationStatus.UNAUTHORIZED,
        "FORBIDDEN",
        "AWS API access denied",
    ),
    "ResourceNotFoundException": (
        OperationStatus.NOT_FOUND,
        "NOT_FOUND",
        "AWS resource not found",
    ),
    "ValidationException": (
        OperationStatus.PERMANENT_ERROR,
        "INVALID_REQUEST",
        "AWS validation error: ValidationException",
    ),
}


def _retry_after(response: Optional[requests.Response]) -> int:
    value = response.headers.get("Retry-After") if response is not None else None
    try:
        return int(value) if value else DEFAULT_RETRY_AFTER
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER


def classify_http_error(exc: Exception, provider: str = "provider") -> OperationResult:
    """Classify an exception raised while calling a delivery provider.

    Timeouts and errors without a response (resets, DNS) are transient. An
    ``HTTPError`` carrying a response is classified by its status code.
    """
    if isinstance(exc, requests.Timeout):
        return OperationResult.transient_error(
            f"{provider} request timed out", error_code="TIMEOUT"
        )

    response = getattr(exc, "response", None)
    if isinstance(exc, requests.HTTPError) and response is not None:
        return classify_http_status(response, provider)

    return OperationResult.transient_error(
        f"{provider} connection error: {type(exc).__name__}: {exc}",
        error_code="CONNECTION_ERROR",
    )


def classify_http_status(
    response: requests.Response, provider: str = "provider"
) -> OperationResult:
    """Classify a non-2xx provider response.

    429 and 5xx are transient, 401/403 unauthorized, 404 not found, and any
    other 4xx is permanent.
    """
    code = response.status_code

    if code == 429:
        return OperationResult.transient_error(
            f"{provider} rate limited",
            error_code="RATE_LIMITED",
            retry_after=_retry_after(response),
        )
    if code >= 500:
        return OperationResult.transient_error(
            f"{provider} server error ({code})", error_code="SERVER_ERROR"
        )
    if code in (401, 403):
        return OperationResult.error(
            OperationStatus.UNAUTHORIZED,
            f"{provider} rejected credentials ({code})",
            error_code="UNAUTHORIZED",
        )
    if code == 404:
        return OperationResult.error(
            OperationStatus.NOT_FOUND,
            f"{provider} resource not found",
            error_code="NOT_FOUND",
        )
    return OperationResult.permanent_error(
        f"{provider} client error ({code}): {response.text[:200]}",
        error_code="HTTP_ERROR",
    )


def classify_aws_error(exc: Exception) -> OperationResult:
    """Classify a boto3 exception.

    Codes we do not recognise are treated as transient, as the AWS SDKs do.
    """
    if not isinstance(exc, ClientError):
        return OperationResult.transient_error(
            f"AWS connection error: {type(exc).__name__}: {exc}",
            error_code="CONNECTION_ERROR",
        )

    aws_code = (exc.response or {}).get("Error", {}).get("Code", "Unknown")
    if aws_code in ("InvalidParameterException", "BadRequestException"):
        aws_code = "ValidationException"

    known = _AWS_ERRORS.get(aws_code)
    if known is None:
        return OperationResult.transient_error(
            f"AWS client error: {aws_code}", error_code="AWS_CLIENT_ERROR"
        )

    status, error_code, message = known
    retry_after = DEFAULT_RETRY_AFTER if error_code == "RATE_LIMITED" else None
    return OperationResult.error(
        status, message, error_code=error_code, retry_after=retry_after
    )
