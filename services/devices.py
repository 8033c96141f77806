"""Device registry with best-effort linkage to the tracking server."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from models import Device, User
from schemas import DeviceUpdate
from traccar_client import TraccarClient, TraccarError
from utils import parse_iso_datetime

logger = logging.getLogger(__name__)

DUPLICATE_IMEI = "Device with this IMEI already exists"
NOT_LINKED = "Device not found or not connected to tracking platform"


def _limit_message(user: User) -> str:
    plan = user.subscription
    return f"Device limit reached. Your {plan.name} plan allows {plan.device_limit} devices."


class DeviceRegistry:
    def __init__(self, session, traccar: TraccarClient):
        self.session = session
        self.traccar = traccar

    def _check_limit(self, user: User) -> None:
        if not user.subscription:
            raise ConflictError("User subscription not found")
        if user.active_device_count >= user.subscription.device_limit:
            raise ConflictError(_limit_message(user))

    def create(self, user: User, name: str, imei: str) -> Device:
        self._check_limit(user)
        if self.session.query(Device).filter_by(imei=imei).first():
            raise ConflictError(DUPLICATE_IMEI)

        link = self.traccar.link_device(name, imei)
        if not link.linked:
            logger.warning("Device %s not linked to tracking server: %s", imei, link.error)

        device = Device(user_id=user.id, name=name, imei=imei, traccar_device_id=link.external_id)
        self.session.add(device)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(DUPLICATE_IMEI)
        logger.info("Device %s created for user %s", device.id, user.id)
        return device

    def list_for_user(self, user_id: int) -> list[Device]:
        return (
            self.session.query(Device)
            .filter_by(user_id=user_id)
            .order_by(Device.created_at.desc(), Device.id.desc())
            .all()
        )

    def get_for_user(self, device_id: int, user_id: int) -> Device:
        device = self.session.query(Device).filter_by(id=device_id, user_id=user_id).first()
        if not device:
            raise NotFoundError("Device not found")
        return device

    def update(self, device: Device, changes: DeviceUpdate) -> Device:
        if changes.is_active and not device.is_active:
            self._check_limit(device.user)
        if changes.name is not None:
            device.name = changes.name
        if changes.is_active is not None:
            device.is_active = changes.is_active
        self.session.commit()
        return device

    def delete(self, device_id: int, user_id: int) -> None:
        deleted = (
            self.session.query(Device)
            .filter_by(id=device_id, user_id=user_id)
            .delete(synchronize_session="fetch")
        )
        if not deleted:
            raise NotFoundError("Device not found")
        self.session.commit()
        logger.info("Device %s deleted by user %s", device_id, user_id)

    # -- tracking data -----------------------------------------------------

    def positions(self, device: Device) -> list:
        if not device.traccar_device_id:
            raise NotFoundError(NOT_LINKED)
        try:
            return self.traccar.get_positions(device.traccar_device_id)
        except TraccarError as e:
            raise UpstreamError(str(e))

    def route_report(self, device: Device, start: str, end: str) -> list:
        if not device.traccar_device_id:
            raise NotFoundError(NOT_LINKED)
        start_at, end_at = parse_iso_datetime(start), parse_iso_datetime(end)
        if not start_at or not end_at:
            raise ValidationError("from and to must be ISO 8601 timestamps")
        if end_at <= start_at:
            raise ValidationError("to must be after from")
        try:
            return self.traccar.route_report(
                device.traccar_device_id, start_at.isoformat(), end_at.isoformat()
            )
        except TraccarError as e:
            raise UpstreamError(str(e))
