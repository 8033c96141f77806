"""Subscription plan catalog."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from errors import ConflictError, NotFoundError
from models import ORDER_COMPLETED, ORDER_PENDING, Order, SubscriptionPlan, User
from schemas import PlanCreate, PlanUpdate

logger = logging.getLogger(__name__)

DUPLICATE_NAME = "Subscription plan with this name already exists"

DEFAULT_PLANS = [
    {
        "name": "Free",
        "price": Decimal("0.00"),
        "device_limit": 1,
        "duration_days": 365,
        "features": ["Real-time tracking", "1 device", "Basic reports", "Email support"],
    },
    {
        "name": "Basic",
        "price": Decimal("19.99"),
        "device_limit": 5,
        "duration_days": 30,
        "features": [
            "Real-time tracking",
            "Up to 5 devices",
            "Advanced reports",
            "Geofencing (10 zones)",
            "Email & phone support",
            "API access",
        ],
    },
    {
        "name": "Premium",
        "price": Decimal("49.99"),
        "device_limit": 25,
        "duration_days": 30,
        "features": [
            "Real-time tracking",
            "Up to 25 devices",
            "Premium reports",
            "Unlimited geofencing",
            "Priority support",
            "Full API access",
            "Custom integrations",
            "Advanced analytics",
        ],
    },
]


def seed_default_plans(session) -> int:
    """Create the default catalog if it is empty.  Returns plans added."""
    if session.query(SubscriptionPlan).count() > 0:
        return 0
    for entry in DEFAULT_PLANS:
        plan = SubscriptionPlan(
            name=entry["name"],
            price=entry["price"],
            device_limit=entry["device_limit"],
            duration_days=entry["duration_days"],
        )
        plan.feature_list = entry["features"]
        session.add(plan)
    session.commit()
    logger.info("Seeded default subscription plans")
    return len(DEFAULT_PLANS)


class PlanCatalog:
    def __init__(self, session, currency: str = "ETB"):
        self.session = session
        self.currency = currency

    def list_active(self) -> list[SubscriptionPlan]:
        return (
            self.session.query(SubscriptionPlan)
            .filter_by(is_active=True)
            .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.id.asc())
            .all()
        )

    def get(self, plan_id: int, active_only: bool = False) -> SubscriptionPlan:
        plan = self.session.get(SubscriptionPlan, plan_id)
        if not plan or (active_only and not plan.is_active):
            raise NotFoundError("Subscription plan not found")
        return plan

    def _name_taken(self, name: str, exclude_id: int | None = None) -> bool:
        query = self.session.query(SubscriptionPlan).filter(SubscriptionPlan.name == name)
        if exclude_id is not None:
            query = query.filter(SubscriptionPlan.id != exclude_id)
        return query.first() is not None

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(DUPLICATE_NAME)

    def create(self, payload: PlanCreate) -> SubscriptionPlan:
        if self._name_taken(payload.name):
            raise ConflictError(DUPLICATE_NAME)
        plan = SubscriptionPlan(
            name=payload.name,
            price=payload.price,
            currency=self.currency,
            device_limit=payload.device_limit,
            duration_days=payload.duration_days,
        )
        plan.feature_list = payload.features
        self.session.add(plan)
        self._commit()
        logger.info("Subscription plan %s (%s) created", plan.id, plan.name)
        return plan

    def update(self, plan_id: int, changes: PlanUpdate) -> SubscriptionPlan:
        plan = self.get(plan_id)
        if changes.name is not None and changes.name != plan.name and self._name_taken(changes.name, plan.id):
            raise ConflictError(DUPLICATE_NAME)
        if changes.name is not None:
            plan.name = changes.name
        if changes.price is not None:
            plan.price = changes.price
        if changes.device_limit is not None:
            plan.device_limit = changes.device_limit
        if changes.duration_days is not None:
            plan.duration_days = changes.duration_days
        if changes.features is not None:
            plan.feature_list = changes.features
        if changes.is_active is not None:
            plan.is_active = changes.is_active
        self._commit()
        logger.info("Subscription plan %s updated", plan.id)
        return plan

    def delete(self, plan_id: int) -> None:
        plan = self.get(plan_id)
        if self.session.query(User).filter_by(subscription_id=plan.id).count():
            raise ConflictError(
                "Cannot delete subscription plan with active users. "
                "Please migrate users to another plan first."
            )
        if self.session.query(Order).filter_by(plan_id=plan.id).count():
            raise ConflictError(
                "Cannot delete subscription plan with existing orders. Deactivate it instead."
            )
        self.session.delete(plan)
        self.session.commit()
        logger.info("Subscription plan %s (%s) deleted", plan_id, plan.name)

    def stats(self, plan_id: int) -> dict:
        plan = self.get(plan_id)
        order_counts = dict(
            self.session.query(Order.status, func.count(Order.id))
            .filter(Order.plan_id == plan.id)
            .group_by(Order.status)
            .all()
        )
        revenue = (
            self.session.query(func.coalesce(func.sum(Order.amount), 0))
            .filter(Order.plan_id == plan.id, Order.status == ORDER_COMPLETED)
            .scalar()
        )
        recent_users = (
            self.session.query(User)
            .filter_by(subscription_id=plan.id)
            .order_by(User.created_at.desc(), User.id.desc())
            .limit(5)
            .all()
        )
        recent_orders = (
            self.session.query(Order)
            .filter_by(plan_id=plan.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(5)
            .all()
        )
        return {
            "totalUsers": self.session.query(User).filter_by(subscription_id=plan.id).count(),
            "totalRevenue": float(revenue or 0),
            "totalOrders": sum(order_counts.values()),
            "completedOrders": order_counts.get(ORDER_COMPLETED, 0),
            "pendingOrders": order_counts.get(ORDER_PENDING, 0),
            "recentUsers": [
                {"id": u.id, "name": u.name, "email": u.email} for u in recent_users
            ],
            "recentOrders": [
                {"id": o.id, "amount": float(o.amount), "status": o.status} for o in recent_orders
            ],
        }
