"""Subscription plan catalog routes."""

from flask import Blueprint, current_app, jsonify, request

from extensions import db
from schemas import PlanCreate, PlanUpdate
from services.auth import admin_required
from services.plans import PlanCatalog

plans_bp = Blueprint("plans", __name__, url_prefix="/api/subscription-plans")


def _catalog() -> PlanCatalog:
    return PlanCatalog(db.session, current_app.config["APP_CONFIG"].currency)


@plans_bp.route("", methods=["GET"])
def list_plans():
    return jsonify({"success": True, "plans": [p.to_dict() for p in _catalog().list_active()]})


@plans_bp.route("/<int:plan_id>", methods=["GET"])
def get_plan(plan_id):
    plan = _catalog().get(plan_id, active_only=True)
    return jsonify({"success": True, "plan": plan.to_dict()})


@plans_bp.route("", methods=["POST"])
@admin_required
def create_plan():
    plan = _catalog().create(PlanCreate.from_json(request.get_json(silent=True)))
    return (
        jsonify(
            {
                "success": True,
                "message": "Subscription plan created successfully",
                "plan": plan.to_dict(include_status=True),
            }
        ),
        201,
    )


@plans_bp.route("/<int:plan_id>", methods=["PUT"])
@admin_required
def update_plan(plan_id):
    plan = _catalog().update(plan_id, PlanUpdate.from_json(request.get_json(silent=True)))
    return jsonify(
        {
            "success": True,
            "message": "Subscription plan updated successfully",
            "plan": plan.to_dict(include_status=True),
        }
    )


@plans_bp.route("/<int:plan_id>", methods=["DELETE"])
@admin_required
def delete_plan(plan_id):
    _catalog().delete(plan_id)
    return jsonify({"success": True, "message": "Subscription plan deleted successfully"})


@plans_bp.route("/<int:plan_id>/stats")
@admin_required
def plan_stats(plan_id):
    catalog = _catalog()
    plan = catalog.get(plan_id)
    return jsonify(
        {"success": True, "plan": plan.to_dict(include_status=True), "stats": catalog.stats(plan_id)}
    )
