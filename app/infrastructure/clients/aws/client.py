"""boto3 call execution with retries and ``OperationResult`` mapping.

Throttling and connection failures are retried with exponential backoff.
Rejected conditional writes are returned at once, carrying the AWS error code,
because for the notification store they mean another worker won the claim.
"""

import time
from typing import Any, Optional

import boto3  # type: ignore
from botocore.client import BaseClient  # type: ignore
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore
import structlog

from infrastructure.operations.classifiers import classify_aws_error
from infrastructure.operations.result import OperationResult

logger = structlog.get_logger()

CONDITION_FAILED_CODES = (
    "ConditionalCheckFailedException",
    "TransactionCanceledException",
)


def get_boto3_client(
    service_name: str,
    region_name: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> BaseClient:
    """Build a boto3 client on a dedicated session.

    boto3 sessions are not thread safe, clients are; callers share the client.
    """
    session = boto3.Session(region_name=region_name)
    if endpoint_url:
        return session.client(service_name, endpoint_url=endpoint_url)
    return session.client(service_name)


def backoff_delay(attempt: int, backoff_factor: float = 0.5) -> float:
    return backoff_factor * (2**attempt)


def _result_from_client_error(exc: ClientError) -> OperationResult:
    error = exc.response.get("Error", {})
    code = error.get("Code")
    message = error.get("Message", str(exc))
    if code in CONDITION_FAILED_CODES:
        return OperationResult.permanent_error(message=message, error_code=code)

    classified = classify_aws_error(exc)
    classified.message = message
    return classified


def call_with_retries(
    client: BaseClient,
    method: str,
    max_retries: int = 3,
    backoff_factor: float = 0.5,
    **kwargs: Any,
) -> OperationResult:
    """Invoke ``client.<method>(**kwargs)`` and wrap the outcome.

    Returns:
        ``OperationResult.success`` with the raw response as data, or the
        classified failure of the last attempt.
    """
    operation = f"{client.meta.service_model.service_name}.{method}"
    result = OperationResult.permanent_error(message="not attempted")

    for attempt in range(max_retries + 1):
        try:
            response = getattr(client, method)(**kwargs)
            return OperationResult.success(data=response, message=f"{operation} ok")
        except ClientError as exc:
            result = _result_from_client_error(exc)
            if result.error_code in CONDITION_FAILED_CODES:
                logger.debug("aws_condition_failed", operation=operation)
                return result
        except BotoCoreError as exc:
            result = classify_aws_error(exc)

        if not result.is_transient or attempt == max_retries:
            break
        delay = backoff_delay(attempt, backoff_factor)
        logger.warning(
            "aws_api_retry",
            operation=operation,
            attempt=attempt + 1,
            error_code=result.error_code,
            delay=delay,
        )
        time.sleep(delay)

    logger.error(
        "aws_api_failed",
        operation=operation,
        error_code=result.error_code,
        error=result.message,
    )
    return result
