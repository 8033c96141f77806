"""Authentication routes."""

from flask import Blueprint, current_app, jsonify, request

from extensions import limiter
from schemas import LoginRequest, RegisterRequest
from services.auth import authenticate, get_current_user, issue_token, login_required, register_user

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    payload = RegisterRequest.from_json(request.get_json(silent=True))
    user = register_user(
        payload.name, payload.email, payload.password, current_app.extensions["traccar"]
    )
    return (
        jsonify(
            {
                "success": True,
                "message": "User created successfully",
                "user": user.to_dict(),
                "token": issue_token(user),
            }
        ),
        201,
    )


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    payload = LoginRequest.from_json(request.get_json(silent=True))
    user = authenticate(payload.email, payload.password)
    return jsonify(
        {
            "success": True,
            "message": "Login successful",
            "user": user.to_dict(),
            "token": issue_token(user),
        }
    )


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"success": True, "user": get_current_user().to_dict()})
