"""User notification routes."""

from flask import Blueprint, current_app, jsonify, request

from errors import NotFoundError
from extensions import db
from services.auth import get_current_user, login_required
from services.notifications import NotificationService
from utils import MAX_PAGE_SIZE, safe_int

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _service() -> NotificationService:
    return NotificationService(db.session, current_app.config["APP_CONFIG"].currency)


@notifications_bp.route("")
@login_required
def list_notifications():
    limit = min(max(safe_int(request.args.get("limit"), 20), 1), MAX_PAGE_SIZE)
    service = _service()
    user_id = get_current_user().id
    items = service.list_for_user(user_id, limit)
    return jsonify(
        {
            "success": True,
            "notifications": [n.to_dict() for n in items],
            "unreadCount": service.unread_count(user_id),
        }
    )


@notifications_bp.route("/<int:notification_id>/read", methods=["PATCH"])
@login_required
def mark_read(notification_id):
    if not _service().mark_read(notification_id, get_current_user().id):
        raise NotFoundError("Notification not found")
    return jsonify({"success": True, "message": "Notification marked as read"})


@notifications_bp.route("/read-all", methods=["PATCH"])
@login_required
def mark_all_read():
    updated = _service().mark_all_read(get_current_user().id)
    return jsonify({"success": True, "message": "All notifications marked as read", "updated": updated})
