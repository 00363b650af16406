"""Uniform results for store and provider calls, plus error classifiers.

``classify_http_error`` and ``classify_aws_error`` turn exceptions raised by
requests and boto3 into an ``OperationResult`` with the right status.
"""

from infrastructure.operations.classifiers import (
    classify_aws_error,
    classify_http_error,
    classify_http_status,
)
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    "OperationResult",
    "OperationStatus",
    "classify_aws_error",
    "classify_http_error",
    "classify_http_status",
]
