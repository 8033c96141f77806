"""Request payload validation.

Each request type parses a JSON body into an explicit dataclass; partial
updates carry only the fields the client actually sent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
IMEI_LENGTH = 15

PAYMENT_NOTIFICATION_FIELDS = (
    "merchantOrderId",
    "outTradeNo",
    "totalAmount",
    "currency",
    "tradeStatus",
    "signature",
    "timestamp",
)


def _body(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _string(data: dict, key: str, min_len: int = 1, max_len: int = 255, required: bool = True) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if not min_len <= len(value) <= max_len:
        raise ValidationError(f"{key} must be between {min_len} and {max_len} characters")
    return value


def _int(data: dict, key: str, minimum: int = 1, required: bool = True) -> Optional[int]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if value < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    return value


def _decimal(data: dict, key: str, required: bool = True) -> Optional[Decimal]:
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{key} must be a number")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"{key} must be a non-negative number")
    return amount


def _features(data: dict, required: bool = True) -> Optional[list]:
    value = data.get("features")
    if value is None:
        if required:
            return []
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError("features must be a list of strings")
    return value


def _bool(data: dict, key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

@dataclass
class RegisterRequest:
    name: str
    email: str
    password: str

    @classmethod
    def from_json(cls, data) -> "RegisterRequest":
        data = _body(data)
        email = _string(data, "email").lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("Invalid email address")
        password = data.get("password")
        if not isinstance(password, str) or len(password) < 8:
            raise ValidationError("password must be at least 8 characters")
        return cls(name=_string(data, "name", 2, 100), email=email, password=password)


@dataclass
class LoginRequest:
    email: str
    password: str

    @classmethod
    def from_json(cls, data) -> "LoginRequest":
        data = _body(data)
        password = data.get("password")
        if not isinstance(password, str) or not password:
            raise ValidationError("password is required")
        return cls(email=_string(data, "email").lower(), password=password)


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------

@dataclass
class DeviceCreate:
    name: str
    imei: str

    @classmethod
    def from_json(cls, data) -> "DeviceCreate":
        data = _body(data)
        return cls(
            name=_string(data, "name", 1, 100),
            imei=_string(data, "imei", IMEI_LENGTH, IMEI_LENGTH),
        )


@dataclass
class DeviceUpdate:
    name: Optional[str] = None
    is_active: Optional[bool] = None

    @classmethod
    def from_json(cls, data) -> "DeviceUpdate":
        data = _body(data)
        update = cls(
            name=_string(data, "name", 1, 100, required=False),
            is_active=_bool(data, "isActive"),
        )
        if update.name is None and update.is_active is None:
            raise ValidationError("Nothing to update")
        return update


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass
class PlanCreate:
    name: str
    price: Decimal
    device_limit: int
    duration_days: int
    features: list = field(default_factory=list)

    @classmethod
    def from_json(cls, data) -> "PlanCreate":
        data = _body(data)
        return cls(
            name=_string(data, "name", 1, 50),
            price=_decimal(data, "price"),
            device_limit=_int(data, "deviceLimit"),
            duration_days=_int(data, "durationDays"),
            features=_features(data),
        )


@dataclass
class PlanUpdate:
    name: Optional[str] = None
    price: Optional[Decimal] = None
    device_limit: Optional[int] = None
    duration_days: Optional[int] = None
    features: Optional[list] = None
    is_active: Optional[bool] = None

    @classmethod
    def from_json(cls, data) -> "PlanUpdate":
        data = _body(data)
        return cls(
            name=_string(data, "name", 1, 50, required=False),
            price=_decimal(data, "price", required=False),
            device_limit=_int(data, "deviceLimit", required=False),
            duration_days=_int(data, "durationDays", required=False),
            features=_features(data, required=False),
            is_active=_bool(data, "isActive"),
        )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@dataclass
class OrderCreate:
    plan_id: int
    return_url: str = ""

    @classmethod
    def from_json(cls, data) -> "OrderCreate":
        data = _body(data)
        return_url = _string(data, "returnUrl", 1, 2048, required=False) or ""
        if return_url and not return_url.startswith(("http://", "https://")):
            raise ValidationError("returnUrl must be an http(s) URL")
        return cls(plan_id=_int(data, "planId"), return_url=return_url)


@dataclass
class PaymentNotification:
    merchant_order_id: str
    out_trade_no: str
    total_amount: str
    currency: str
    trade_status: str
    signature: str
    timestamp: str
    raw: dict

    @classmethod
    def from_json(cls, data) -> "PaymentNotification":
        data = _body(data)
        missing = [key for key in PAYMENT_NOTIFICATION_FIELDS if data.get(key) in (None, "")]
        if missing:
            raise ValidationError(f"Missing fields: {', '.join(missing)}")
        return cls(
            merchant_order_id=str(data["merchantOrderId"]),
            out_trade_no=str(data["outTradeNo"]),
            total_amount=str(data["totalAmount"]),
            currency=str(data["currency"]),
            trade_status=str(data["tradeStatus"]),
            signature=str(data["signature"]),
            timestamp=str(data["timestamp"]),
            raw=dict(data),
        )
