"""Subscription checkout and plan assignment."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from errors import ConflictError, NotFoundError, ValidationError
from models import ORDER_PENDING, SubscriptionPlan, User
from services.ledger import OrderLedger
from services.notifications import NotificationService
from telebirr_client import TelebirrError, TelebirrGateway
from utils import utc_now

logger = logging.getLogger("payments")


def subscription_expiry(plan: SubscriptionPlan, now: datetime) -> datetime:
    return now + timedelta(days=plan.duration_days)


def assign_plan(user: User, plan: SubscriptionPlan, now: Optional[datetime] = None) -> datetime:
    """Point *user* at *plan* with a fresh expiry.  Caller commits."""
    now = now or utc_now()
    user.subscription_id = plan.id
    user.subscription = plan
    user.subscription_expiry = subscription_expiry(plan, now)
    return user.subscription_expiry


def get_default_plan(session, name: str) -> Optional[SubscriptionPlan]:
    plan = session.query(SubscriptionPlan).filter_by(name=name).first()
    if plan is None:
        plan = (
            session.query(SubscriptionPlan)
            .filter(SubscriptionPlan.price == 0)
            .order_by(SubscriptionPlan.id)
            .first()
        )
    return plan


class CheckoutService:
    def __init__(self, session, gateway: TelebirrGateway, notifications: NotificationService):
        self.session = session
        self.gateway = gateway
        self.notifications = notifications
        self.ledger = OrderLedger(session)

    def start_checkout(self, user: User, plan_id: int, return_url: str = "") -> dict:
        plan = self.session.get(SubscriptionPlan, plan_id)
        if not plan or not plan.is_active:
            raise NotFoundError("Subscription plan not found")
        if user.subscription_id == plan.id:
            raise ConflictError("You already have this subscription plan")

        if plan.is_free:
            assign_plan(user, plan)
            self.session.commit()
            logger.info("User %s switched to free plan %s", user.id, plan.name)
            self.notifications.payment_success(user.id, plan.name, 0)
            return {
                "success": True,
                "message": "Subscription updated successfully",
                "requiresPayment": False,
            }

        order = self.ledger.create(user, plan)
        self.session.commit()

        try:
            initiation = self.gateway.create_payment(
                merchant_order_id=str(order.id),
                amount=order.amount,
                subject=f"{plan.name} subscription",
                return_url=return_url,
            )
        except TelebirrError as e:
            self.ledger.mark_failed(order.id, expected=ORDER_PENDING)
            self.session.commit()
            logger.error("Payment creation failed for order %s: %s", order.id, e)
            raise ValidationError(str(e))

        if not self.ledger.mark_processing(order.id, initiation.prepay_id):
            self.session.rollback()
            raise ConflictError("Order is no longer pending")
        self.session.commit()

        return {
            "success": True,
            "message": "Order created successfully",
            "requiresPayment": True,
            "order": {
                "id": order.id,
                "amount": float(order.amount),
                "status": order.status,
                "plan": {
                    "name": plan.name,
                    "deviceLimit": plan.device_limit,
                    "durationDays": plan.duration_days,
                },
            },
            "payment": {
                "checkoutUrl": initiation.checkout_url,
                "prepayId": initiation.prepay_id,
            },
        }
