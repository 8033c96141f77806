"""Blueprint registration."""

from routes.admin import admin_bp
from routes.auth import auth_bp
from routes.devices import devices_bp
from routes.notifications import notifications_bp
from routes.payments import payments_bp
from routes.plans import plans_bp
from routes.public import public_bp
from routes.subscriptions import subscriptions_bp

ALL_BLUEPRINTS = [
    public_bp,
    auth_bp,
    devices_bp,
    subscriptions_bp,
    plans_bp,
    payments_bp,
    notifications_bp,
    admin_bp,
]


def register_blueprints(app):
    """Register all application blueprints on *app*."""
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)
