"""Unauthenticated landing data and health check."""

from flask import Blueprint, current_app, jsonify

from extensions import db
from models import Device, User
from services.plans import PlanCatalog
from utils import utc_now

public_bp = Blueprint("public", __name__)

PRODUCT_FEATURES = [
    "Real-time GPS tracking",
    "Historical route playback",
    "Geofencing alerts",
    "Detailed reporting",
    "Multi-device management",
    "API integration",
]


@public_bp.route("/health")
def health():
    return jsonify({"status": "OK", "timestamp": utc_now().isoformat()})


@public_bp.route("/api/public")
def home():
    app_cfg = current_app.config["APP_CONFIG"]
    plans = PlanCatalog(db.session, app_cfg.currency).list_active()
    return jsonify(
        {
            "success": True,
            "message": f"Welcome to {app_cfg.name}",
            "stats": {
                "totalUsers": User.query.count(),
                "totalDevices": Device.query.filter_by(is_active=True).count(),
            },
            "plans": [p.to_dict() for p in plans],
            "features": PRODUCT_FEATURES,
        }
    )


ABOUT_FEATURES = [
    {
        "title": "Real-time Tracking",
        "description": "Monitor your vehicles and assets in real-time with precise GPS coordinates.",
    },
    {
        "title": "Historical Data",
        "description": "Access detailed historical data and generate comprehensive reports.",
    },
    {
        "title": "Flexible Plans",
        "description": "Choose from our flexible subscription plans that grow with your business.",
    },
    {
        "title": "API Integration",
        "description": "Integrate with your existing systems using our comprehensive REST API.",
    },
]

CONTACTS = {
    "sales": {
        "email": "sales@traccar-saas.com",
        "phone": "+1-555-0123",
        "hours": "Monday-Friday, 9 AM - 6 PM EST",
    },
    "support": {
        "email": "support@traccar-saas.com",
        "phone": "+1-555-0124",
        "hours": "24/7 support available",
    },
    "general": {
        "email": "info@traccar-saas.com",
        "address": "123 Business Ave, Tech City, TC 12345",
    },
}

SOCIAL_LINKS = {
    "twitter": "https://twitter.com/traccar-saas",
    "linkedin": "https://linkedin.com/company/traccar-saas",
    "github": "https://github.com/traccar-saas",
}


@public_bp.route("/api/public/about")
def about():
    app_cfg = current_app.config["APP_CONFIG"]
    return jsonify(
        {
            "title": f"About {app_cfg.name}",
            "description": "Professional GPS tracking solution built on top of the reliable "
            "Traccar platform.",
            "mission": "To provide affordable, scalable, and reliable GPS tracking services "
            "for businesses of all sizes.",
            "features": ABOUT_FEATURES,
            "team": {
                "size": "10+ professionals",
                "experience": "5+ years in GPS tracking",
                "support": "24/7 customer support",
            },
        }
    )


@public_bp.route("/api/public/contact")
def contact():
    return jsonify(
        {
            "title": "Contact Us",
            "description": "Get in touch with our team for support, sales inquiries, or partnerships.",
            "contacts": CONTACTS,
            "social": SOCIAL_LINKS,
        }
    )
