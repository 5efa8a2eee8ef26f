from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from fastapi import Depends
from pywebpush import WebPushException, webpush

from attendance_admin.errors import ApiError
from attendance_admin.models import PUSH_TOPICS_COLLECTION
from attendance_admin.settings import get_settings, is_push_enabled
from attendance_admin.store import SERVER_TIMESTAMP, DocumentStore, get_store, join_path

logger = logging.getLogger("attendance_admin.push")

TOPIC_MEMBERS_SUBCOLLECTION = "members"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PushMessage:
    title: str
    body: str
    token: Any
    data: dict[str, str] = field(default_factory=dict)
    android: dict[str, Any] = field(default_factory=dict)
    apns: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "data": dict(self.data),
            "android": self.android,
            "apns": self.apns,
            "ts_utc": _utcnow().isoformat(),
        }


class NotificationDispatcher(Protocol):
    def send(self, message: PushMessage) -> bool: ...

    def subscribe_to_topic(self, token: Any, topic: str) -> bool: ...


def get_push_public_config() -> dict[str, Any]:
    settings = get_settings()
    enabled = is_push_enabled()
    return {
        "enabled": enabled,
        "vapid_public_key": settings.push_vapid_public_key if enabled else None,
    }


def parse_subscription(token: Any) -> dict[str, Any]:
    subscription = token
    if isinstance(token, str):
        try:
            subscription = json.loads(token)
        except ValueError as exc:
            raise ApiError(
                status_code=422,
                code="INVALID_PUSH_SUBSCRIPTION",
                message="Push token is not a subscription object.",
            ) from exc
    if not isinstance(subscription, dict):
        raise ApiError(
            status_code=422,
            code="INVALID_PUSH_SUBSCRIPTION",
            message="Push token is not a subscription object.",
        )

    endpoint = str(subscription.get("endpoint") or "").strip()
    keys = subscription.get("keys")
    if not isinstance(keys, dict):
        raise ApiError(
            status_code=422,
            code="INVALID_PUSH_SUBSCRIPTION",
            message="Subscription keys are missing.",
        )
    p256dh = str(keys.get("p256dh") or "").strip()
    auth = str(keys.get("auth") or "").strip()
    if not endpoint or not p256dh or not auth:
        raise ApiError(
            status_code=422,
            code="INVALID_PUSH_SUBSCRIPTION",
            message="Subscription payload is incomplete.",
        )
    return {"endpoint": endpoint, "keys": {"p256dh": p256dh, "auth": auth}}


def _token_key(token: Any) -> str:
    if isinstance(token, str):
        return token
    return json.dumps(token, sort_keys=True, default=str)


class WebPushDispatcher:
    """Delivers :class:`PushMessage` objects as VAPID web push notifications.

    Web push has no server side topics, so topic membership is kept in the
    document store under ``push_topics/{topic}/members``.
    """

    def __init__(self, store: DocumentStore | None = None) -> None:
        self._store = store

    def send(self, message: PushMessage) -> bool:
        if not is_push_enabled():
            logger.warning("push_not_configured", extra={"title": message.title})
            return False

        try:
            subscription = parse_subscription(message.token)
        except ApiError as exc:
            logger.warning("push_invalid_token", extra={"reason": exc.message})
            return False

        settings = get_settings()
        try:
            webpush(
                subscription_info=subscription,
                data=json.dumps(message.payload()),
                vapid_private_key=settings.push_vapid_private_key,
                vapid_claims={"sub": settings.push_vapid_subject},
                ttl=settings.push_ttl_seconds,
            )
        except WebPushException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            logger.warning(
                "push_send_failed",
                extra={"endpoint": subscription["endpoint"], "status_code": status_code, "error": str(exc)},
            )
            return False

        logger.info("push_sent", extra={"endpoint": subscription["endpoint"], "title": message.title})
        return True

    def subscribe_to_topic(self, token: Any, topic: str) -> bool:
        if self._store is None:
            logger.warning("push_topic_store_missing", extra={"topic": topic})
            return False
        member_id = hashlib.sha256(_token_key(token).encode("utf-8")).hexdigest()[:32]
        self._store.set(
            join_path(PUSH_TOPICS_COLLECTION, topic, TOPIC_MEMBERS_SUBCOLLECTION, member_id),
            {"token": token, "subscribedAt": SERVER_TIMESTAMP},
        )
        logger.info("push_topic_subscribed", extra={"topic": topic})
        return True

    def send_to_topic(
        self,
        topic: str,
        *,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        members = []
        if self._store is not None:
            members = self._store.query(join_path(PUSH_TOPICS_COLLECTION, topic, TOPIC_MEMBERS_SUBCOLLECTION))

        sent = 0
        failed = 0
        for member in members:
            ok = self.send(PushMessage(title=title, body=body, token=member.get("token"), data=data or {}))
            if ok:
                sent += 1
            else:
                failed += 1
        return {
            "topic": topic,
            "total_targets": len(members),
            "sent": sent,
            "failed": failed,
        }


def get_dispatcher(store: DocumentStore = Depends(get_store)) -> NotificationDispatcher:
    return WebPushDispatcher(store)
