"""Current-user subscription routes."""

from flask import Blueprint, current_app, jsonify

from errors import NotFoundError
from extensions import db
from services.auth import get_current_user, login_required
from services.plans import PlanCatalog
from utils import isoformat

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


@subscriptions_bp.route("/plans")
def plans():
    catalog = PlanCatalog(db.session, current_app.config["APP_CONFIG"].currency)
    return jsonify({"success": True, "plans": [p.to_dict() for p in catalog.list_active()]})


@subscriptions_bp.route("/current")
@login_required
def current():
    user = get_current_user()
    if not user.subscription:
        raise NotFoundError("Subscription not found")
    subscription = user.subscription.to_dict()
    subscription["devicesUsed"] = user.active_device_count
    subscription["expiresAt"] = isoformat(user.subscription_expiry)
    return jsonify({"success": True, "subscription": subscription})
