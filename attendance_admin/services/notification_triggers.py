"""Reactions to document changes that end in a push notification.

Each handler receives the changed document data and the injected
:class:`~attendance_admin.services.push_notifications.NotificationDispatcher`.
Handlers never raise: a missing token, an unknown status or a failed lookup is
logged and the handler returns ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from attendance_admin.errors import ApiError
from attendance_admin.models import PUSH_TOKENS_COLLECTION, CheckRequestStatus, CheckRequestType
from attendance_admin.services.identifiers import as_text, manager_id_candidates
from attendance_admin.services.push_notifications import NotificationDispatcher, PushMessage
from attendance_admin.store import SERVER_TIMESTAMP, DocumentStore, join_path

logger = logging.getLogger("attendance_admin.triggers")

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
ANDROID_CHANNEL_ID = "check_requests_channel"
ANDROID_HINTS: dict[str, Any] = {
    "priority": "high",
    "notification": {
        "sound": "default",
        "priority": "high",
        "channel_id": ANDROID_CHANNEL_ID,
    },
}
APNS_HINTS: dict[str, Any] = {
    "payload": {
        "aps": {
            "sound": "default",
            "badge": 1,
            "content_available": True,
            "interruption_level": "time-sensitive",
        }
    }
}

TYPE_REQUEST_UPDATE = "check_out_request_update"
TYPE_NEW_REQUEST = "new_check_out_request"


def describe_request_type(request_type: Any) -> tuple[str, str, str]:
    """``(request_type, "Check-In"/"Check-Out", "check in"/"check out")``."""
    value = as_text(request_type).strip() or CheckRequestType.CHECK_OUT.value
    display = "Check-In" if value == CheckRequestType.CHECK_IN.value else "Check-Out"
    return value, display, value.replace("-", " ", 1)


def lookup_push_token(store: DocumentStore, user_id: str) -> Any | None:
    if not user_id:
        return None
    snapshot = store.get(join_path(PUSH_TOKENS_COLLECTION, user_id))
    if not snapshot.exists:
        logger.info("push_token_missing", extra={"user_id": user_id})
        return None
    token = snapshot.get("token")
    if not token:
        logger.info("push_token_empty", extra={"user_id": user_id})
        return None
    return token


def build_status_message(request_id: str, request: Mapping[str, Any], token: Any) -> PushMessage | None:
    status = as_text(request.get("status"))
    request_type, display, phrase = describe_request_type(request.get("requestType"))
    if status == CheckRequestStatus.APPROVED.value:
        title = f"{display} Request Approved"
        body = f"Your request to {phrase} has been approved."
    elif status == CheckRequestStatus.REJECTED.value:
        title = f"{display} Request Rejected"
        body = f"Your request to {phrase} has been rejected."
    else:
        return None

    return PushMessage(
        title=title,
        body=body,
        token=token,
        data={
            "type": TYPE_REQUEST_UPDATE,
            "requestId": request_id,
            "status": status,
            "employeeId": as_text(request.get("employeeId")),
            "requestType": request_type,
            "message": as_text(request.get("responseMessage")),
            "click_action": CLICK_ACTION,
        },
        android=ANDROID_HINTS,
        apns=APNS_HINTS,
    )


def build_new_request_message(request_id: str, request: Mapping[str, Any], token: Any) -> PushMessage:
    request_type, display, phrase = describe_request_type(request.get("requestType"))
    employee_name = as_text(request.get("employeeName"))
    return PushMessage(
        title=f"New {display} Request",
        body=f"{employee_name} has requested to {phrase} from an offsite location.",
        token=token,
        data={
            "type": TYPE_NEW_REQUEST,
            "requestId": request_id,
            "employeeId": as_text(request.get("employeeId")),
            "employeeName": employee_name,
            "locationName": as_text(request.get("locationName")),
            "requestType": request_type,
            "click_action": CLICK_ACTION,
        },
        android=ANDROID_HINTS,
        apns=APNS_HINTS,
    )


def handle_check_request_updated(
    store: DocumentStore,
    dispatcher: NotificationDispatcher,
    *,
    request_id: str,
    before: Mapping[str, Any],
    after: Mapping[str, Any],
) -> bool | None:
    if after.get("status") == before.get("status"):
        logger.info("check_request_status_unchanged", extra={"request_id": request_id})
        return None

    try:
        employee_id = as_text(after.get("employeeId")).strip()
        token = lookup_push_token(store, employee_id)
        if token is None:
            return None

        message = build_status_message(request_id, after, token)
        if message is None:
            logger.info(
                "check_request_status_unknown",
                extra={"request_id": request_id, "status": after.get("status")},
            )
            return None

        logger.info("check_request_update_notify", extra={"request_id": request_id, "employee_id": employee_id})
        return dispatcher.send(message)
    except Exception:
        logger.exception("check_request_update_notify_failed", extra={"request_id": request_id})
        return None


def handle_check_request_created(
    store: DocumentStore,
    dispatcher: NotificationDispatcher,
    *,
    request_id: str,
    data: Mapping[str, Any],
) -> bool | None:
    candidates = manager_id_candidates(data.get("lineManagerId"))
    if not candidates:
        logger.info("check_request_without_manager", extra={"request_id": request_id})
        return None

    try:
        for manager_id in candidates:
            try:
                token = lookup_push_token(store, manager_id)
            except Exception:
                logger.warning(
                    "manager_token_lookup_failed",
                    exc_info=True,
                    extra={"request_id": request_id, "manager_id": manager_id},
                )
                continue
            if token is None:
                continue

            logger.info("check_request_new_notify", extra={"request_id": request_id, "manager_id": manager_id})
            return dispatcher.send(build_new_request_message(request_id, data, token))

        logger.info(
            "manager_token_missing",
            extra={"request_id": request_id, "manager_ids": ", ".join(candidates)},
        )
        return None
    except Exception:
        logger.exception("check_request_new_notify_failed", extra={"request_id": request_id})
        return None


def store_push_token(store: DocumentStore, *, user_id: str, token: Any) -> dict[str, bool]:
    user_id = (user_id or "").strip()
    if not user_id or not token:
        raise ApiError(
            status_code=422,
            code="INVALID_ARGUMENT",
            message="User ID and token are required.",
        )

    try:
        store.set(
            join_path(PUSH_TOKENS_COLLECTION, user_id),
            {"token": token, "updatedAt": SERVER_TIMESTAMP},
        )
    except Exception as exc:
        logger.exception("push_token_store_failed", extra={"user_id": user_id})
        raise ApiError(status_code=500, code="INTERNAL", message=str(exc)) from exc
    return {"success": True}


def manager_topic(manager_id: str) -> str:
    return f"manager_{manager_id}"


def handle_line_manager_created(
    store: DocumentStore,
    dispatcher: NotificationDispatcher,
    *,
    data: Mapping[str, Any],
) -> bool | None:
    manager_id = as_text(data.get("managerId")).strip()
    if not manager_id:
        logger.info("line_manager_without_manager_id")
        return None

    try:
        token = lookup_push_token(store, manager_id)
        if token is None:
            return None
        topic = manager_topic(manager_id)
        subscribed = dispatcher.subscribe_to_topic(token, topic)
        logger.info("manager_topic_subscription", extra={"topic": topic, "subscribed": subscribed})
        return subscribed
    except Exception:
        logger.exception("manager_topic_subscription_failed", extra={"manager_id": manager_id})
        return None
