"""FastAPI routes for notifications."""

from typing import NoReturn, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

from api.dependencies.rate_limits import default_rate_limit, get_limiter
from api.v1.schemas.notifications import (
    BatchSummaryResponse,
    BulkNotificationCreatedResponse,
    BulkNotificationRequest,
    ChannelHealthResponse,
    ComponentHealth,
    DeliveryStatsResponse,
    DispatchStatsResponse,
    MarkAllReadResponse,
    NotificationCreatedResponse,
    NotificationListResponse,
    NotificationResponse,
    RescheduleRequest,
    UnreadCountResponse,
)
from infrastructure.logging import get_module_logger
from infrastructure.notifications.errors import (
    InvalidSelectorError,
    NoRecipientsError,
    NotificationAccessError,
    NotificationError,
    NotificationNotFoundError,
)
from infrastructure.notifications.models import NotificationContent, NotificationSpec
from infrastructure.services import NotificationServiceDep

logger = get_module_logger()
router = APIRouter(prefix="/notifications", tags=["Notifications"])
limiter = get_limiter()


def _raise_http(error: NotificationError) -> NoReturn:
    """Map domain errors to HTTP errors."""
    if isinstance(error, NotificationNotFoundError):
        raise HTTPException(status_code=404, detail=str(error)) from error
    if isinstance(error, NotificationAccessError):
        raise HTTPException(status_code=403, detail=str(error)) from error
    if isinstance(error, (NoRecipientsError, InvalidSelectorError)):
        raise HTTPException(status_code=400, detail=str(error)) from error
    logger.error("notification_request_failed", error=str(error))
    raise HTTPException(status_code=400, detail=str(error)) from error


@router.post(
    "",
    response_model=NotificationCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create notification",
)
@limiter.limit(default_rate_limit)
def create_notification(
    request: Request,  # pylint: disable=unused-argument
    spec: NotificationSpec,
    service: NotificationServiceDep,
) -> NotificationCreatedResponse:
    """Create a notification for one member; delivery happens asynchronously."""
    record_id = service.create_notification(spec)
    return NotificationCreatedResponse(id=record_id)


@router.post(
    "/bulk",
    response_model=BulkNotificationCreatedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create bulk notification",
)
@limiter.limit(default_rate_limit)
def create_bulk_notification(
    request: Request,  # pylint: disable=unused-argument
    body: BulkNotificationRequest,
    service: NotificationServiceDep,
) -> BulkNotificationCreatedResponse:
    """Fan a notification out to every member matched by the selector.

    Raises:
        HTTPException: 400 if the selector is invalid or matches nobody
    """
    content = NotificationContent.model_validate(body.model_dump(exclude={"selector"}))
    try:
        batch_id = service.create_bulk_notification(content, body.selector)
    except NotificationError as e:
        logger.warning("bulk_notification_rejected", selector=body.selector, error=str(e))
        _raise_http(e)
    return BulkNotificationCreatedResponse(batch_id=batch_id)


@router.get("/stats", response_model=DeliveryStatsResponse, summary="Delivery stats")
@limiter.limit(default_rate_limit)
def get_delivery_stats(
    request: Request,  # pylint: disable=unused-argument
    service: NotificationServiceDep,
) -> DeliveryStatsResponse:
    return DeliveryStatsResponse(**service.get_delivery_stats())


@router.get("/health", response_model=ChannelHealthResponse, summary="Channel health")
@limiter.limit("50/minute")
def get_channel_health(
    request: Request,  # pylint: disable=unused-argument
    service: NotificationServiceDep,
) -> ChannelHealthResponse:
    """Health of the store and each delivery gateway."""
    components = {
        name: ComponentHealth.from_result(result)
        for name, result in service.channel_health().items()
    }
    return ChannelHealthResponse(
        healthy=all(component.healthy for component in components.values()),
        components=components,
    )


@router.post("/dispatch", response_model=DispatchStatsResponse, summary="Run dispatch")
@limiter.limit("6/minute")
def run_dispatch(
    request: Request,  # pylint: disable=unused-argument
    service: NotificationServiceDep,
) -> DispatchStatsResponse:
    """Run one dispatch cycle now instead of waiting for the scheduler."""
    stats = service.run_due_dispatch()
    logger.info("manual_dispatch_completed", **stats)
    return DispatchStatsResponse(**stats)


@router.get(
    "/batches/{batch_id}",
    response_model=BatchSummaryResponse,
    summary="Bulk send summary",
)
@limiter.limit(default_rate_limit)
def get_batch(
    request: Request,  # pylint: disable=unused-argument
    batch_id: str,
    service: NotificationServiceDep,
) -> BatchSummaryResponse:
    try:
        return BatchSummaryResponse(**service.get_batch_summary(batch_id))
    except NotificationError as e:
        _raise_http(e)


@router.get(
    "/users/{user_id}",
    response_model=NotificationListResponse,
    summary="List member notifications",
)
@limiter.limit(default_rate_limit)
def list_for_recipient(
    request: Request,  # pylint: disable=unused-argument
    user_id: str,
    service: NotificationServiceDep,
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False),
) -> NotificationListResponse:
    records = service.list_for_recipient(user_id, limit=limit, unread_only=unread_only)
    return NotificationListResponse.from_records(records)


@router.get(
    "/users/{user_id}/unread-count",
    response_model=UnreadCountResponse,
    summary="Unread count",
)
@limiter.limit(default_rate_limit)
def get_unread_count(
    request: Request,  # pylint: disable=unused-argument
    user_id: str,
    service: NotificationServiceDep,
) -> UnreadCountResponse:
    return UnreadCountResponse(
        user_id=user_id, unread_count=service.get_unread_count(user_id)
    )


@router.put(
    "/users/{user_id}/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all read",
)
@limiter.limit(default_rate_limit)
def mark_all_read(
    request: Request,  # pylint: disable=unused-argument
    user_id: str,
    service: NotificationServiceDep,
) -> MarkAllReadResponse:
    return MarkAllReadResponse(user_id=user_id, marked_read=service.mark_all_read(user_id))


@router.get("/{record_id}", response_model=NotificationResponse, summary="Get notification")
@limiter.limit(default_rate_limit)
def get_notification(
    request: Request,  # pylint: disable=unused-argument
    record_id: str,
    service: NotificationServiceDep,
) -> NotificationResponse:
    try:
        return NotificationResponse.from_record(service.get_notification(record_id))
    except NotificationError as e:
        _raise_http(e)


@router.put("/{record_id}/read", response_model=NotificationResponse, summary="Mark read")
@limiter.limit(default_rate_limit)
def mark_read(
    request: Request,  # pylint: disable=unused-argument
    record_id: str,
    service: NotificationServiceDep,
    user_id: Optional[str] = Query(None, description="Acting member; must be the recipient"),
) -> NotificationResponse:
    try:
        return NotificationResponse.from_record(service.mark_read(record_id, user_id))
    except NotificationError as e:
        _raise_http(e)


@router.put(
    "/{record_id}/reschedule",
    response_model=NotificationResponse,
    summary="Reschedule notification",
)
@limiter.limit(default_rate_limit)
def reschedule(
    request: Request,  # pylint: disable=unused-argument
    record_id: str,
    body: RescheduleRequest,
    service: NotificationServiceDep,
) -> NotificationResponse:
    try:
        record = service.reschedule(record_id, body.scheduled_for)
    except NotificationError as e:
        _raise_http(e)
    return NotificationResponse.from_record(record)


@router.put(
    "/{record_id}/archive",
    response_model=NotificationResponse,
    summary="Archive notification",
)
@limiter.limit(default_rate_limit)
def archive(
    request: Request,  # pylint: disable=unused-argument
    record_id: str,
    service: NotificationServiceDep,
) -> NotificationResponse:
    try:
        return NotificationResponse.from_record(service.archive(record_id))
    except NotificationError as e:
        _raise_http(e)
