"""Admin listings of users and devices."""

from flask import Blueprint, jsonify, request

from models import Device, User
from services.auth import admin_required
from utils import page_args, paginate

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.route("/users")
@admin_required
def users():
    page, limit = page_args(request.args)
    query = User.query
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(User.name.ilike(pattern) | User.email.ilike(pattern))
    items, pagination = paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, limit)
    data = []
    for user in items:
        row = user.to_dict()
        row["deviceCount"] = len(user.devices)
        row["orderCount"] = len(user.orders)
        data.append(row)
    return jsonify({"success": True, "users": data, "pagination": pagination})


@admin_bp.route("/devices")
@admin_required
def devices():
    page, limit = page_args(request.args)
    query = Device.query.order_by(Device.created_at.desc(), Device.id.desc())
    items, pagination = paginate(query, page, limit)
    data = []
    for device in items:
        row = device.to_dict()
        row["user"] = {"id": device.user.id, "name": device.user.name, "email": device.user.email}
        data.append(row)
    return jsonify({"success": True, "devices": data, "pagination": pagination})
