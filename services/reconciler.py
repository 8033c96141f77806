"""Applies signed payment notifications to orders and subscriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from sqlalchemy import update

from errors import NotFoundError, ValidationError
from models import ORDER_PROCESSING, SubscriptionPlan, User
from schemas import PaymentNotification
from services.billing import subscription_expiry
from services.ledger import OrderLedger
from services.notifications import NotificationService
from telebirr_client import TelebirrGateway
from utils import utc_now

logger = logging.getLogger("payments")

TRADE_SUCCESS = "SUCCESS"
TRADE_FAILED = "FAILED"

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"


class InvalidSignatureError(ValidationError):
    pass


@dataclass(frozen=True)
class ReconcileResult:
    order_id: int
    outcome: str


def _parse_amount(raw: str):
    try:
        amount = Decimal(raw)
    except (InvalidOperation, TypeError):
        return None
    return amount if amount.is_finite() else None


class SubscriptionReconciler:
    """Decides order and subscription state from one inbound notification.

    A SUCCESS or FAILED status is only applied to an order that is still
    PROCESSING. Replays of a notification that was already applied leave
    everything untouched and report ``duplicate``.
    """

    def __init__(self, session, gateway: TelebirrGateway, notifications: NotificationService):
        self.session = session
        self.gateway = gateway
        self.notifications = notifications
        self.ledger = OrderLedger(session)

    def handle(self, notification: PaymentNotification) -> ReconcileResult:
        if not self.gateway.verify_notification(notification.raw):
            logger.warning(
                "Rejected notification with invalid signature for order %s",
                notification.merchant_order_id,
            )
            raise InvalidSignatureError("Invalid signature")

        raw_id = notification.merchant_order_id
        # ASCII digits only, within a signed 64-bit key
        valid_id = raw_id.isascii() and raw_id.isdigit() and len(raw_id) < 19
        order_id = int(raw_id) if valid_id else 0
        order = self.ledger.get(order_id) if order_id > 0 else None
        if order is None:
            logger.warning("Notification for unknown order %s", notification.merchant_order_id)
            raise NotFoundError("Order not found")

        amount = _parse_amount(notification.total_amount)
        if amount is None or amount != order.amount:
            logger.warning(
                "Amount mismatch for order %s: expected %s, got %s",
                order.id,
                order.amount,
                notification.total_amount,
            )
            raise ValidationError("Amount mismatch")

        status = notification.trade_status.upper()
        if status == TRADE_SUCCESS:
            return self._apply_success(order, notification.out_trade_no)
        if status == TRADE_FAILED:
            return self._apply_failure(order)

        logger.info("Order %s: trade status %s ignored", order.id, notification.trade_status)
        return ReconcileResult(order.id, OUTCOME_IGNORED)

    def _apply_success(self, order, out_trade_no: str) -> ReconcileResult:
        user_id, plan_id, amount = order.user_id, order.plan_id, order.amount
        plan = self.session.get(SubscriptionPlan, plan_id)
        if order.status != ORDER_PROCESSING:
            logger.info("Order %s already %s, success replay ignored", order.id, order.status)
            return ReconcileResult(order.id, OUTCOME_DUPLICATE)

        try:
            if not self.ledger.complete(order.id, out_trade_no):
                self.session.rollback()
                return ReconcileResult(order.id, OUTCOME_DUPLICATE)
            now = utc_now()
            self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    subscription_id=plan_id,
                    subscription_expiry=subscription_expiry(plan, now),
                    updated_at=now,
                )
                .execution_options(synchronize_session="fetch")
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Order %s completed, user %s moved to %s", order.id, user_id, plan.name)
        self.notifications.payment_success(user_id, plan.name, amount)
        return ReconcileResult(order.id, OUTCOME_COMPLETED)

    def _apply_failure(self, order) -> ReconcileResult:
        user_id, amount = order.user_id, order.amount
        plan_name = order.plan.name
        if order.status != ORDER_PROCESSING or not self.ledger.mark_failed(order.id):
            self.session.rollback()
            logger.info("Order %s not processing, failure notification ignored", order.id)
            return ReconcileResult(order.id, OUTCOME_DUPLICATE)
        self.session.commit()

        logger.info("Order %s failed at gateway", order.id)
        self.notifications.payment_failed(user_id, plan_name, amount)
        return ReconcileResult(order.id, OUTCOME_FAILED)
