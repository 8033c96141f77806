"""SQLAlchemy models and order state machine."""

from __future__ import annotations

import json

from sqlalchemy.orm import validates

from extensions import db
from utils import isoformat, utc_now

# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------

ORDER_PENDING = "PENDING"
ORDER_PROCESSING = "PROCESSING"
ORDER_COMPLETED = "COMPLETED"
ORDER_FAILED = "FAILED"
ORDER_CANCELLED = "CANCELLED"

ORDER_TRANSITIONS: dict[str, set[str]] = {
    ORDER_PENDING: {ORDER_PROCESSING, ORDER_FAILED, ORDER_CANCELLED},
    ORDER_PROCESSING: {ORDER_COMPLETED, ORDER_FAILED},
    ORDER_COMPLETED: set(),
    ORDER_FAILED: set(),
    ORDER_CANCELLED: set(),
}

VALID_ORDER_STATUSES = set(ORDER_TRANSITIONS)
TERMINAL_ORDER_STATUSES = {s for s, targets in ORDER_TRANSITIONS.items() if not targets}


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Notification types
# ---------------------------------------------------------------------------

NOTIFY_EXPIRY_WARNING = "SUBSCRIPTION_EXPIRY_WARNING"
NOTIFY_EXPIRED = "SUBSCRIPTION_EXPIRED"
NOTIFY_PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
NOTIFY_PAYMENT_FAILED = "PAYMENT_FAILED"
NOTIFY_DEVICE_LIMIT = "DEVICE_LIMIT_EXCEEDED"

VALID_NOTIFICATION_TYPES = {
    NOTIFY_EXPIRY_WARNING,
    NOTIFY_EXPIRED,
    NOTIFY_PAYMENT_SUCCESS,
    NOTIFY_PAYMENT_FAILED,
    NOTIFY_DEVICE_LIMIT,
}


def _load_json(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Plan catalog
# ---------------------------------------------------------------------------

class SubscriptionPlan(db.Model):
    """A named subscription tier (e.g. Free, Basic, Premium)."""
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    price = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False, default=0)
    currency = db.Column(db.String(10), default="ETB")
    device_limit = db.Column(db.Integer, nullable=False, default=1)
    duration_days = db.Column(db.Integer, nullable=False, default=30)
    features = db.Column(db.Text)  # JSON list of feature labels
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_plan_price_non_negative"),
        db.CheckConstraint("device_limit >= 1", name="ck_plan_device_limit_positive"),
        db.CheckConstraint("duration_days >= 1", name="ck_plan_duration_positive"),
    )

    @property
    def feature_list(self) -> list[str]:
        return _load_json(self.features, [])

    @feature_list.setter
    def feature_list(self, value) -> None:
        self.features = json.dumps(list(value or []))

    @property
    def is_free(self) -> bool:
        return self.price == 0

    def to_dict(self, include_status: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "currency": self.currency,
            "deviceLimit": self.device_limit,
            "durationDays": self.duration_days,
            "features": self.feature_list,
            "createdAt": isoformat(self.created_at),
        }
        if include_status:
            data["isActive"] = self.is_active
            data["updatedAt"] = isoformat(self.updated_at)
        return data


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------

class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscription_plan.id"))
    subscription_expiry = db.Column(db.DateTime)  # NULL = no expiry (default plan)
    traccar_user_id = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    subscription = db.relationship("SubscriptionPlan", backref="users")
    devices = db.relationship(
        "Device", backref="user", cascade="all, delete-orphan", order_by="Device.id"
    )
    orders = db.relationship("Order", backref="user", cascade="all, delete-orphan")
    notifications = db.relationship(
        "Notification", backref="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.Index("ix_user_subscription_expiry", "subscription_expiry"),
    )

    @property
    def active_device_count(self) -> int:
        return sum(1 for device in self.devices if device.is_active)

    def to_dict(self) -> dict:
        plan = self.subscription
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": "admin" if self.is_admin else "user",
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
            "subscription": {
                "id": plan.id,
                "name": plan.name,
                "deviceLimit": plan.device_limit,
                "durationDays": plan.duration_days,
                "expiresAt": isoformat(self.subscription_expiry),
            } if plan else None,
        }


# ---------------------------------------------------------------------------
# Device registry
# ---------------------------------------------------------------------------

class Device(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    imei = db.Column(db.String(15), unique=True, nullable=False)
    traccar_device_id = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "imei": self.imei,
            "traccarDeviceId": self.traccar_device_id,
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
        }


# ---------------------------------------------------------------------------
# Order ledger
# ---------------------------------------------------------------------------

class Order(db.Model):
    """One attempt to purchase a subscription plan."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    plan_id = db.Column(db.Integer, db.ForeignKey("subscription_plan.id"), nullable=False)
    amount = db.Column(db.Numeric(10, 2, asdecimal=True), nullable=False)
    currency = db.Column(db.String(10), default="ETB")
    status = db.Column(db.String(20), nullable=False, default=ORDER_PENDING)
    payment_ref = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)
    completed_at = db.Column(db.DateTime)

    plan = db.relationship("SubscriptionPlan", backref="orders")

    __table_args__ = (
        db.Index("ix_order_user_id", "user_id"),
        db.Index("ix_order_status", "status"),
        db.CheckConstraint("amount >= 0", name="ck_order_amount_non_negative"),
    )

    @validates("amount")
    def _freeze_amount(self, _key, value):
        if self.amount is not None and value != self.amount:
            raise ValueError("Order amount is immutable once set")
        return value

    @validates("status")
    def _check_transition(self, _key, value):
        if value not in VALID_ORDER_STATUSES:
            raise ValueError(f"Unknown order status: {value}")
        current = self.status
        if current is not None and current != value and not can_transition(current, value):
            raise ValueError(f"Illegal order transition {current} -> {value}")
        return value

    def to_dict(self, include_user: bool = False) -> dict:
        plan = self.plan
        data = {
            "id": self.id,
            "planId": self.plan_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status,
            "paymentRef": self.payment_ref,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
            "completedAt": isoformat(self.completed_at),
            "plan": {
                "name": plan.name,
                "price": float(plan.price),
                "deviceLimit": plan.device_limit,
                "durationDays": plan.duration_days,
                "features": plan.feature_list,
            } if plan else None,
        }
        if include_user and self.user:
            data["user"] = {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email,
            }
        return data


# ---------------------------------------------------------------------------
# Notification log
# ---------------------------------------------------------------------------

class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(120), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.Text)  # JSON payload
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.Index("ix_notification_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": _load_json(self.data, None),
            "isRead": self.is_read,
            "createdAt": isoformat(self.created_at),
        }
