"""Authentication and authorization services."""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from functools import wraps
from typing import Optional

from flask import current_app, g
from flask_jwt_extended import create_access_token, get_jwt_identity, verify_jwt_in_request
from werkzeug.security import check_password_hash, generate_password_hash

from errors import AuthenticationError, ConflictError, PermissionDenied
from extensions import db
from models import User
from services.billing import get_default_plan
from traccar_client import TraccarClient
from utils import safe_int

logger = logging.getLogger(__name__)


def get_current_user() -> Optional[User]:
    """Return the authenticated user loaded into ``flask.g``."""
    return getattr(g, "current_user", None)


def _load_user() -> User:
    verify_jwt_in_request()
    user = db.session.get(User, safe_int(get_jwt_identity()))
    if not user or not user.is_active:
        raise PermissionDenied("Invalid or expired token")
    g.current_user = user
    return user


def login_required(f):
    """Decorator that requires a valid bearer token."""

    @wraps(f)
    def decorated(*args, **kwargs):
        _load_user()
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Decorator that requires a valid bearer token of an admin user."""

    @wraps(f)
    def decorated(*args, **kwargs):
        user = _load_user()
        if not user.is_admin:
            raise PermissionDenied("Admin access required")
        return f(*args, **kwargs)

    return decorated


def issue_token(user: User) -> str:
    days = current_app.config["JWT_CONFIG"].access_token_days
    return create_access_token(
        identity=str(user.id),
        additional_claims={"is_admin": bool(user.is_admin)},
        expires_delta=timedelta(days=days),
    )


def register_user(name: str, email: str, password: str, traccar: TraccarClient) -> User:
    if User.query.filter_by(email=email).first():
        raise ConflictError("User with this email already exists")

    link = traccar.link_user(name, email, password)
    if not link.linked:
        logger.warning("User %s not linked to tracking server: %s", email, link.error)

    default_plan = get_default_plan(db.session, current_app.config["APP_CONFIG"].default_plan_name)
    user = User(
        name=name,
        email=email,
        password_hash=generate_password_hash(password),
        subscription_id=default_plan.id if default_plan else None,
        traccar_user_id=link.external_id,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Registered user %s", user.id)
    return user


def authenticate(email: str, password: str) -> User:
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        logger.warning("Failed login for %s", email)
        raise AuthenticationError("Invalid credentials")
    return user


def ensure_admin_user(email: str = "admin@localhost") -> Optional[User]:
    """Create an initial admin if no admin exists yet."""
    if User.query.filter_by(is_admin=True).count():
        return None
    password = secrets.token_urlsafe(12)
    default_plan = get_default_plan(db.session, current_app.config["APP_CONFIG"].default_plan_name)
    admin = User(
        name="Administrator",
        email=email,
        password_hash=generate_password_hash(password),
        is_admin=True,
        subscription_id=default_plan.id if default_plan else None,
    )
    db.session.add(admin)
    db.session.commit()
    # stdout only, credentials never go to log files
    print(f"Created admin user {email}. Initial password: {password}")
    return admin
