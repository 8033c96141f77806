"""Order creation, payment webhook and order history routes."""

import logging

from flask import Blueprint, current_app, jsonify, request

from extensions import db, limiter
from schemas import OrderCreate, PaymentNotification
from services.auth import admin_required, get_current_user, login_required
from services.billing import CheckoutService
from services.ledger import OrderLedger
from services.notifications import NotificationService
from services.reconciler import SubscriptionReconciler
from utils import page_args

logger = logging.getLogger("payments")

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _notifications() -> NotificationService:
    return NotificationService(db.session, current_app.config["APP_CONFIG"].currency)


@payments_bp.route("/create-order", methods=["POST"])
@login_required
def create_order():
    payload = OrderCreate.from_json(request.get_json(silent=True))
    checkout = CheckoutService(db.session, current_app.extensions["telebirr"], _notifications())
    return jsonify(checkout.start_checkout(get_current_user(), payload.plan_id, payload.return_url))


@payments_bp.route("/notify", methods=["POST"])
@limiter.exempt
def notify():
    """Telebirr notification endpoint (server-to-server callback)."""
    notification = PaymentNotification.from_json(request.get_json(silent=True))
    reconciler = SubscriptionReconciler(
        db.session, current_app.extensions["telebirr"], _notifications()
    )
    result = reconciler.handle(notification)
    logger.info("Notification for order %s handled: %s", result.order_id, result.outcome)
    return jsonify({"success": True})


@payments_bp.route("/history")
@login_required
def history():
    page, limit = page_args(request.args, default_limit=10)
    orders, pagination = OrderLedger(db.session).history(get_current_user().id, page, limit)
    return jsonify(
        {"success": True, "orders": [o.to_dict() for o in orders], "pagination": pagination}
    )


@payments_bp.route("/order/<int:order_id>")
@login_required
def order_detail(order_id):
    order = OrderLedger(db.session).get_for_user(order_id, get_current_user().id)
    return jsonify({"success": True, "order": order.to_dict()})


@payments_bp.route("/order/<int:order_id>/cancel", methods=["PATCH"])
@login_required
def cancel_order(order_id):
    OrderLedger(db.session).cancel(order_id, get_current_user().id)
    db.session.commit()
    logger.info("Order %s cancelled by user %s", order_id, get_current_user().id)
    return jsonify({"success": True, "message": "Order cancelled successfully"})


@payments_bp.route("/admin/orders")
@admin_required
def admin_orders():
    page, limit = page_args(request.args)
    orders, pagination = OrderLedger(db.session).list_all(request.args.get("status"), page, limit)
    return jsonify(
        {
            "success": True,
            "orders": [o.to_dict(include_user=True) for o in orders],
            "pagination": pagination,
        }
    )
