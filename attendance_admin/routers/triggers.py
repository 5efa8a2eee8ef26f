from fastapi import APIRouter, Depends

from attendance_admin.schemas import (
    CheckRequestUpdatedEvent,
    DocumentCreatedEvent,
    PushTokenRequest,
    PushTokenResponse,
    TriggerResponse,
)
from attendance_admin.services.notification_triggers import (
    handle_check_request_created,
    handle_check_request_updated,
    handle_line_manager_created,
    store_push_token,
)
from attendance_admin.services.push_notifications import (
    NotificationDispatcher,
    get_dispatcher,
    get_push_public_config,
)
from attendance_admin.store import DocumentStore, get_store

router = APIRouter(tags=["triggers"])


def _trigger_response(delivered: bool | None) -> TriggerResponse:
    return TriggerResponse(handled=delivered is not None, delivered=delivered)


@router.post("/api/triggers/check-requests/{request_id}/created", response_model=TriggerResponse)
def check_request_created(
    request_id: str,
    payload: DocumentCreatedEvent,
    store: DocumentStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> TriggerResponse:
    delivered = handle_check_request_created(store, dispatcher, request_id=request_id, data=payload.data)
    return _trigger_response(delivered)


@router.post("/api/triggers/check-requests/{request_id}/updated", response_model=TriggerResponse)
def check_request_updated(
    request_id: str,
    payload: CheckRequestUpdatedEvent,
    store: DocumentStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> TriggerResponse:
    delivered = handle_check_request_updated(
        store,
        dispatcher,
        request_id=request_id,
        before=payload.before,
        after=payload.after,
    )
    return _trigger_response(delivered)


@router.post("/api/triggers/line-managers/created", response_model=TriggerResponse)
def line_manager_created(
    payload: DocumentCreatedEvent,
    store: DocumentStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> TriggerResponse:
    delivered = handle_line_manager_created(store, dispatcher, data=payload.data)
    return _trigger_response(delivered)


@router.post("/api/push/tokens", response_model=PushTokenResponse)
def register_push_token(
    payload: PushTokenRequest,
    store: DocumentStore = Depends(get_store),
) -> PushTokenResponse:
    return PushTokenResponse(**store_push_token(store, user_id=payload.user_id, token=payload.token))


@router.get("/api/push/config")
def push_config() -> dict:
    return get_push_public_config()
