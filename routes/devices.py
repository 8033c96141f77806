"""Device registry routes."""

from flask import Blueprint, current_app, jsonify, request

from extensions import db
from schemas import DeviceCreate, DeviceUpdate
from services.auth import get_current_user, login_required
from services.devices import DeviceRegistry

devices_bp = Blueprint("devices", __name__, url_prefix="/api/devices")


def _registry() -> DeviceRegistry:
    return DeviceRegistry(db.session, current_app.extensions["traccar"])


@devices_bp.route("", methods=["GET"])
@login_required
def list_devices():
    devices = _registry().list_for_user(get_current_user().id)
    return jsonify({"success": True, "devices": [d.to_dict() for d in devices]})


@devices_bp.route("", methods=["POST"])
@login_required
def create_device():
    payload = DeviceCreate.from_json(request.get_json(silent=True))
    device = _registry().create(get_current_user(), payload.name, payload.imei)
    return (
        jsonify({"success": True, "message": "Device created successfully", "device": device.to_dict()}),
        201,
    )


@devices_bp.route("/<int:device_id>", methods=["GET"])
@login_required
def get_device(device_id):
    device = _registry().get_for_user(device_id, get_current_user().id)
    return jsonify({"success": True, "device": device.to_dict()})


@devices_bp.route("/<int:device_id>", methods=["PATCH"])
@login_required
def update_device(device_id):
    changes = DeviceUpdate.from_json(request.get_json(silent=True))
    registry = _registry()
    device = registry.update(registry.get_for_user(device_id, get_current_user().id), changes)
    return jsonify({"success": True, "message": "Device updated successfully", "device": device.to_dict()})


@devices_bp.route("/<int:device_id>", methods=["DELETE"])
@login_required
def delete_device(device_id):
    _registry().delete(device_id, get_current_user().id)
    return jsonify({"success": True, "message": "Device deleted successfully"})


@devices_bp.route("/<int:device_id>/position")
@login_required
def device_position(device_id):
    registry = _registry()
    device = registry.get_for_user(device_id, get_current_user().id)
    return jsonify({"success": True, "positions": registry.positions(device)})


@devices_bp.route("/<int:device_id>/reports/route")
@login_required
def route_report(device_id):
    registry = _registry()
    device = registry.get_for_user(device_id, get_current_user().id)
    report = registry.route_report(device, request.args.get("from", ""), request.args.get("to", ""))
    return jsonify({"success": True, "route": report})
