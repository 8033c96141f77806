"""Per-user notification log."""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models import (
    NOTIFY_DEVICE_LIMIT,
    NOTIFY_EXPIRED,
    NOTIFY_EXPIRY_WARNING,
    NOTIFY_PAYMENT_FAILED,
    NOTIFY_PAYMENT_SUCCESS,
    VALID_NOTIFICATION_TYPES,
    Notification,
)

logger = logging.getLogger(__name__)


def _money(amount) -> str:
    return f"{Decimal(amount):.2f}"


class NotificationService:
    """Writes and reads notifications through an injected session.

    ``build`` stages a row inside the caller's transaction; ``notify`` (and
    the typed helpers) commit on their own and never raise on store errors.
    """

    def __init__(self, session, currency: str = "ETB"):
        self.session = session
        self.currency = currency

    def build(
        self, user_id: int, type_: str, title: str, message: str, data: Optional[dict] = None
    ) -> Notification:
        if type_ not in VALID_NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {type_}")
        notification = Notification(
            user_id=user_id,
            type=type_,
            title=title,
            message=message,
            data=json.dumps(data) if data is not None else None,
        )
        self.session.add(notification)
        return notification

    def notify(
        self, user_id: int, type_: str, title: str, message: str, data: Optional[dict] = None
    ) -> Optional[Notification]:
        try:
            notification = self.build(user_id, type_, title, message, data)
            self.session.commit()
            return notification
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("Failed to store %s notification for user %s", type_, user_id)
            return None

    # -- typed messages ----------------------------------------------------

    def expiry_warning_args(self, user_id: int, days_left: int, plan_name: str) -> tuple:
        return (
            user_id,
            NOTIFY_EXPIRY_WARNING,
            "Subscription Expiring Soon",
            f"Your {plan_name} subscription will expire in {days_left} days. "
            "Please renew to continue using all features.",
            {"daysLeft": days_left, "planName": plan_name},
        )

    def expired_args(self, user_id: int, plan_name: str, default_plan_name: str) -> tuple:
        return (
            user_id,
            NOTIFY_EXPIRED,
            "Subscription Expired",
            f"Your {plan_name} subscription has expired. "
            f"You have been moved to the {default_plan_name} plan.",
            {"planName": plan_name},
        )

    def device_limit_args(self, user_id: int, current_limit: int, disabled: int) -> tuple:
        return (
            user_id,
            NOTIFY_DEVICE_LIMIT,
            "Device Limit Exceeded",
            f"You have exceeded your device limit of {current_limit}. "
            "Some devices have been disabled. Please upgrade your plan.",
            {"currentLimit": current_limit, "disabledDevices": disabled},
        )

    def payment_success(self, user_id: int, plan_name: str, amount) -> Optional[Notification]:
        return self.notify(
            user_id,
            NOTIFY_PAYMENT_SUCCESS,
            "Payment Successful",
            f"Your payment of {_money(amount)} {self.currency} for {plan_name} plan "
            "has been processed successfully.",
            {"planName": plan_name, "amount": float(amount)},
        )

    def payment_failed(self, user_id: int, plan_name: str, amount) -> Optional[Notification]:
        return self.notify(
            user_id,
            NOTIFY_PAYMENT_FAILED,
            "Payment Failed",
            f"Your payment of {_money(amount)} {self.currency} for {plan_name} plan "
            "could not be processed. Please try again.",
            {"planName": plan_name, "amount": float(amount)},
        )

    def expiry_warning(self, user_id: int, days_left: int, plan_name: str):
        return self.notify(*self.expiry_warning_args(user_id, days_left, plan_name))

    # -- reads -------------------------------------------------------------

    def list_for_user(self, user_id: int, limit: int = 20) -> list[Notification]:
        return (
            self.session.query(Notification)
            .filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def unread_count(self, user_id: int) -> int:
        return self.session.query(Notification).filter_by(user_id=user_id, is_read=False).count()

    def mark_read(self, notification_id: int, user_id: int) -> bool:
        result = self.session.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
        )
        self.session.commit()
        return result.rowcount > 0

    def mark_all_read(self, user_id: int) -> int:
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        self.session.commit()
        return result.rowcount
