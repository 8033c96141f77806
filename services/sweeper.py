"""Daily subscription expiration sweep."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from models import NOTIFY_EXPIRY_WARNING, Device, Notification, SubscriptionPlan, User
from services.billing import get_default_plan
from services.notifications import NotificationService
from utils import as_utc, utc_now

logger = logging.getLogger("cron")


@dataclass
class SweepReport:
    expired: int = 0
    warned: int = 0
    devices_disabled: int = 0
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "expired": self.expired,
            "warned": self.warned,
            "devicesDisabled": self.devices_disabled,
            "errors": len(self.errors),
        }


class ExpirationSweeper:
    """Moves expired users to the default plan and sends expiry warnings.

    Each user is handled in its own transaction, so a user is either still on
    the old plan or fully on the default plan with its notifications. Running
    the sweep again on the same local day changes nothing.
    """

    def __init__(
        self,
        session,
        notifications: NotificationService,
        default_plan_name: str = "Free",
        tz_name: str = "Africa/Addis_Ababa",
        warning_days: int = 3,
    ):
        self.session = session
        self.notifications = notifications
        self.default_plan_name = default_plan_name
        self.tz = ZoneInfo(tz_name)
        self.warning_days = warning_days

    def _local_day_start(self, now: datetime) -> datetime:
        local = now.astimezone(self.tz)
        start = datetime.combine(local.date(), time.min, tzinfo=self.tz)
        return start.astimezone(timezone.utc)

    def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = as_utc(now) or utc_now()
        report = SweepReport()
        default_plan = get_default_plan(self.session, self.default_plan_name)
        if default_plan is None:
            logger.error("Default plan %r not found, sweep aborted", self.default_plan_name)
            report.errors.append("default plan missing")
            return report

        logger.info("Expiration sweep started at %s", now.isoformat())
        expired_ids = [
            row.id
            for row in self.session.query(User.id)
            .filter(
                User.subscription_id != default_plan.id,
                User.subscription_expiry.isnot(None),
                User.subscription_expiry <= now,
            )
            .order_by(User.id)
        ]
        for user_id in expired_ids:
            try:
                disabled = self._expire_user(user_id, default_plan, now)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.exception("Failed to expire subscription of user %s", user_id)
                report.errors.append(f"user {user_id}: {e}")
                continue
            if disabled is not None:
                report.expired += 1
                report.devices_disabled += disabled

        report.warned = self._send_warnings(default_plan, now)
        logger.info(
            "Expiration sweep finished: %s expired, %s warned, %s devices disabled",
            report.expired,
            report.warned,
            report.devices_disabled,
        )
        return report

    def _expire_user(self, user_id: int, default_plan: SubscriptionPlan, now: datetime) -> Optional[int]:
        """Demote one user; returns disabled device count or None if skipped."""
        user = self.session.get(User, user_id)
        if user is None:
            return None
        old_plan = user.subscription
        old_plan_name = old_plan.name if old_plan else "current"

        result = self.session.execute(
            update(User)
            .where(
                User.id == user_id,
                User.subscription_id == user.subscription_id,
                User.subscription_expiry == user.subscription_expiry,
                User.subscription_id != default_plan.id,
                User.subscription_expiry <= now,
            )
            .values(subscription_id=default_plan.id, subscription_expiry=None, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            self.session.rollback()
            logger.info("User %s renewed during sweep, skipped", user_id)
            return None

        self.notifications.build(
            *self.notifications.expired_args(user_id, old_plan_name, default_plan.name)
        )

        active = (
            self.session.query(Device)
            .filter_by(user_id=user_id, is_active=True)
            .order_by(Device.created_at.asc(), Device.id.asc())
            .all()
        )
        excess = active[default_plan.device_limit:]
        for device in excess:
            device.is_active = False
        if excess:
            self.notifications.build(
                *self.notifications.device_limit_args(user_id, default_plan.device_limit, len(excess))
            )

        self.session.commit()
        logger.info(
            "User %s moved from %s to %s (%s devices disabled)",
            user_id,
            old_plan_name,
            default_plan.name,
            len(excess),
        )
        return len(excess)

    def _send_warnings(self, default_plan: SubscriptionPlan, now: datetime) -> int:
        horizon = now + timedelta(days=self.warning_days)
        day_start = self._local_day_start(now)
        already_warned = select(Notification.user_id).where(
            Notification.type == NOTIFY_EXPIRY_WARNING,
            Notification.created_at >= day_start,
        )
        users = (
            self.session.query(User)
            .filter(
                User.subscription_id != default_plan.id,
                User.subscription_expiry.isnot(None),
                User.subscription_expiry > now,
                User.subscription_expiry <= horizon,
                User.id.notin_(already_warned),
            )
            .order_by(User.id)
            .all()
        )
        warned = 0
        for user in users:
            remaining = as_utc(user.subscription_expiry) - now
            days_left = max(1, math.ceil(remaining.total_seconds() / 86400))
            plan_name = user.subscription.name if user.subscription else "current"
            if self.notifications.expiry_warning(user.id, days_left, plan_name):
                warned += 1
        return warned
