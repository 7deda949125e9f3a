"""
Notification Service
User-facing push messages (Expo push API via httpx).

Notifications are fire-and-forget: a delivery failure is logged and never
propagates to the job or request that triggered it.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from owninstead.infrastructure.db.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

WEEKLY_REVIEW = "weekly_review"
ORDER_SUBMITTED = "order_submitted"
ORDER_FILLED = "order_filled"
ORDER_FAILED = "order_failed"
STREAK_BONUS = "streak_bonus"


def _money(value: Any) -> str:
    return f"${Decimal(str(value)):.2f}"


TEMPLATES: Dict[str, Callable[[Mapping[str, Any]], Tuple[str, str]]] = {
    WEEKLY_REVIEW: lambda p: (
        "Weekly Review Ready",
        f"You saved {_money(p['total_savings'])} this week! Tap to review and invest.",
    ),
    ORDER_SUBMITTED: lambda p: (
        "Investment Order Placed",
        f"Your {_money(p['amount'])} {p['symbol']} order has been submitted.",
    ),
    ORDER_FILLED: lambda p: (
        "Investment Complete",
        f"Your {_money(p['amount'])} {p['symbol']} order has been filled.",
    ),
    ORDER_FAILED: lambda p: (
        "Investment Failed",
        "There was an issue with your investment order. Tap to learn more.",
    ),
    STREAK_BONUS: lambda p: (
        f"{p['weeks']} Week Streak!",
        f"You're on fire! Enjoy a {p['bonus_percent']}% bonus on this week's investment.",
    ),
}


def render(kind: str, params: Optional[Mapping[str, Any]] = None) -> Tuple[str, str]:
    """Title and body for a notification kind"""
    template = TEMPLATES.get(kind)
    if template is None:
        raise ValueError(f"Unknown notification kind: {kind}")
    return template(params or {})


def _json_safe(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {k: str(v) if isinstance(v, Decimal) else v for k, v in (params or {}).items()}


def is_expo_push_token(token: Optional[str]) -> bool:
    return bool(token) and (
        token.startswith("ExponentPushToken[") or token.startswith("ExpoPushToken[")
    )


class Notifier(Protocol):
    async def notify(self, user_id: str, kind: str, params: Optional[Mapping[str, Any]] = None) -> None:
        ...


class LoggingNotifier:
    """Notifier used when push delivery is disabled"""

    async def notify(self, user_id: str, kind: str, params: Optional[Mapping[str, Any]] = None) -> None:
        try:
            title, body = render(kind, params)
        except (KeyError, ValueError) as exc:
            logger.error("Notification render failed | user=%s | kind=%s | %s", user_id, kind, exc)
            return
        logger.info("Notification | user=%s | %s | %s", user_id, title, body)


class PushNotificationService:
    """
    Expo push delivery

    Looks the push token up in its own session so callers need not hold one.
    A DeviceNotRegistered response clears the stored token.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        push_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.push_url = push_url
        self.timeout = timeout
        self._transport = transport

    async def notify(self, user_id: str, kind: str, params: Optional[Mapping[str, Any]] = None) -> None:
        try:
            await self._send(user_id, kind, params)
        except Exception as exc:
            logger.error("Push notification failed | user=%s | kind=%s | %s", user_id, kind, exc)

    async def _send(self, user_id: str, kind: str, params: Optional[Mapping[str, Any]]) -> bool:
        title, body = render(kind, params)

        async with self.session_factory() as session:
            profile = await ProfileRepository(session).get(user_id)

        token = profile.push_token if profile else None
        if not token:
            logger.info("Push skipped (no token) | user=%s | kind=%s", user_id, kind)
            return False
        if not is_expo_push_token(token):
            logger.warning("Push skipped (invalid token format) | user=%s", user_id)
            return False

        message = {
            "to": token,
            "title": title,
            "body": body,
            "data": {**_json_safe(params), "type": kind},
            "sound": "default",
            "channelId": "default",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                self.push_url,
                json=message,
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            result = resp.json().get("data") or {}

        if result.get("status") == "error":
            logger.error(
                "Push rejected | user=%s | kind=%s | %s",
                user_id,
                kind,
                result.get("message"),
            )
            if (result.get("details") or {}).get("error") == "DeviceNotRegistered":
                async with self.session_factory() as session:
                    await ProfileRepository(session).clear_push_token(user_id)
                    await session.commit()
                logger.info("Cleared invalid push token | user=%s", user_id)
            return False

        logger.info("Push sent | user=%s | kind=%s", user_id, kind)
        return True
