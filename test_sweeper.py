"""Tests for the subscription expiration sweep and the CLI commands around it."""

import datetime

import pytest

from conftest import make_user
from extensions import db
from models import Device, Notification, SubscriptionPlan, User
from services.notifications import NotificationService
from services.sweeper import ExpirationSweeper
from utils import utc_now


def _sweep(app, now=None, **kwargs):
    with app.app_context():
        sweeper = ExpirationSweeper(db.session, NotificationService(db.session), **kwargs)
        return sweeper.run(now)


def _add_devices(app, user_id, count):
    with app.app_context():
        for i in range(count):
            db.session.add(
                Device(user_id=user_id, name=f"Tracker {i + 1}", imei=f"35693803564{i:04d}")
            )
        db.session.commit()


def _types(app, user_id):
    with app.app_context():
        return sorted(n.type for n in Notification.query.filter_by(user_id=user_id))


@pytest.fixture
def expired_user(app):
    """A Basic user whose subscription ran out yesterday, with three devices."""
    uid, _ = make_user(
        app, "late@example.com", "Basic", expiry=utc_now() - datetime.timedelta(days=1)
    )
    _add_devices(app, uid, 3)
    return uid


class TestExpiration:
    def test_expired_user_moved_to_default_plan(self, app, expired_user):
        report = _sweep(app)
        assert report.expired == 1
        assert report.devices_disabled == 2
        assert report.errors == []
        with app.app_context():
            user = db.session.get(User, expired_user)
            assert user.subscription.name == "Free"
            assert user.subscription_expiry is None

    def test_newest_devices_disabled(self, app, expired_user):
        _sweep(app)
        with app.app_context():
            devices = Device.query.filter_by(user_id=expired_user).order_by(Device.id).all()
            assert [d.is_active for d in devices] == [True, False, False]

    def test_notifications_written(self, app, expired_user):
        _sweep(app)
        assert _types(app, expired_user) == ["DEVICE_LIMIT_EXCEEDED", "SUBSCRIPTION_EXPIRED"]
        with app.app_context():
            expired = Notification.query.filter_by(
                user_id=expired_user, type="SUBSCRIPTION_EXPIRED"
            ).one()
            assert "Basic subscription has expired" in expired.message
            assert "moved to the Free plan" in expired.message
            limit = Notification.query.filter_by(
                user_id=expired_user, type="DEVICE_LIMIT_EXCEEDED"
            ).one()
            assert limit.to_dict()["data"] == {"currentLimit": 1, "disabledDevices": 2}

    def test_no_device_notification_within_limit(self, app):
        uid, _ = make_user(
            app, "small@example.com", "Basic", expiry=utc_now() - datetime.timedelta(hours=1)
        )
        _add_devices(app, uid, 1)
        report = _sweep(app)
        assert report.devices_disabled == 0
        assert _types(app, uid) == ["SUBSCRIPTION_EXPIRED"]

    def test_second_run_changes_nothing(self, app, expired_user):
        _sweep(app)
        before = _types(app, expired_user)
        report = _sweep(app)
        assert report.expired == 0
        assert report.devices_disabled == 0
        assert _types(app, expired_user) == before

    def test_renewal_after_listing_is_not_demoted(self, app):
        uid, _ = make_user(
            app, "renewed@example.com", "Basic", expiry=utc_now() + datetime.timedelta(days=20)
        )
        with app.app_context():
            sweeper = ExpirationSweeper(db.session, NotificationService(db.session))
            free = SubscriptionPlan.query.filter_by(name="Free").one()
            assert sweeper._expire_user(uid, free, utc_now()) is None
            assert db.session.get(User, uid).subscription.name == "Basic"
        assert _types(app, uid) == []

    def test_default_plan_user_is_not_reprocessed(self, app):
        uid, _ = make_user(
            app, "free@example.com", "Free", expiry=utc_now() - datetime.timedelta(days=1)
        )
        with app.app_context():
            sweeper = ExpirationSweeper(db.session, NotificationService(db.session))
            free = SubscriptionPlan.query.filter_by(name="Free").one()
            assert sweeper._expire_user(uid, free, utc_now()) is None
            assert db.session.get(User, uid).subscription_expiry is not None
        assert _types(app, uid) == []

    def test_active_subscription_untouched(self, app):
        uid, _ = make_user(
            app, "fine@example.com", "Premium", expiry=utc_now() + datetime.timedelta(days=20)
        )
        report = _sweep(app)
        assert report.expired == 0
        with app.app_context():
            assert db.session.get(User, uid).subscription.name == "Premium"
        assert _types(app, uid) == []

    def test_default_plan_never_expires(self, app):
        uid, _ = make_user(
            app, "free@example.com", "Free", expiry=utc_now() - datetime.timedelta(days=3)
        )
        report = _sweep(app)
        assert report.expired == 0
        assert _types(app, uid) == []

    def test_unknown_default_plan_falls_back_to_free_plan(self, app, expired_user):
        report = _sweep(app, default_plan_name="Starter")
        assert report.expired == 1
        with app.app_context():
            assert db.session.get(User, expired_user).subscription.name == "Free"

    def test_missing_default_plan_aborts(self, app, expired_user):
        with app.app_context():
            db.session.query(User).update({User.subscription_id: None})
            db.session.query(SubscriptionPlan).filter_by(name="Free").delete()
            db.session.commit()
        report = _sweep(app)
        assert report.errors == ["default plan missing"]


class TestExpiryWarnings:
    def test_warning_sent_once_per_day(self, app):
        uid, _ = make_user(
            app, "soon@example.com", "Basic", expiry=utc_now() + datetime.timedelta(days=2)
        )
        assert _sweep(app).warned == 1
        assert _sweep(app).warned == 0
        with app.app_context():
            warning = Notification.query.filter_by(user_id=uid).one()
            assert warning.type == "SUBSCRIPTION_EXPIRY_WARNING"
            assert "expire in 2 days" in warning.message
            assert warning.to_dict()["data"] == {"daysLeft": 2, "planName": "Basic"}

    def test_warning_repeated_on_a_new_day(self, app):
        uid, _ = make_user(
            app, "soon@example.com", "Basic", expiry=utc_now() + datetime.timedelta(days=2)
        )
        with app.app_context():
            db.session.add(
                Notification(
                    user_id=uid,
                    type="SUBSCRIPTION_EXPIRY_WARNING",
                    title="Subscription Expiring Soon",
                    message="old",
                    created_at=utc_now() - datetime.timedelta(days=2),
                )
            )
            db.session.commit()
        assert _sweep(app).warned == 1

    def test_partial_day_rounds_up(self, app):
        uid, _ = make_user(
            app, "hours@example.com", "Basic", expiry=utc_now() + datetime.timedelta(hours=5)
        )
        _sweep(app)
        with app.app_context():
            warning = Notification.query.filter_by(user_id=uid).one()
            assert warning.to_dict()["data"]["daysLeft"] == 1

    def test_outside_window_not_warned(self, app):
        make_user(app, "later@example.com", "Basic", expiry=utc_now() + datetime.timedelta(days=10))
        assert _sweep(app).warned == 0

    def test_window_is_configurable(self, app):
        make_user(app, "later@example.com", "Basic", expiry=utc_now() + datetime.timedelta(days=10))
        assert _sweep(app, warning_days=14).warned == 1

    def test_default_plan_not_warned(self, app):
        make_user(app, "free@example.com", "Free", expiry=utc_now() + datetime.timedelta(days=1))
        assert _sweep(app).warned == 0


class TestCommands:
    def test_expire_subscriptions_command(self, app, expired_user):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["expire-subscriptions"])
        assert result.exit_code == 0
        assert "Expired: 1" in result.output
        assert "devices disabled: 2" in result.output

    def test_expire_subscriptions_command_reports_errors(self, app, caplog):
        with app.app_context():
            db.session.query(User).update({User.subscription_id: None})
            db.session.query(SubscriptionPlan).filter_by(price=0).delete()
            db.session.commit()
        runner = app.test_cli_runner()
        with caplog.at_level("ERROR", logger="cron"):
            result = runner.invoke(args=["expire-subscriptions"])
        assert result.exit_code == 1
        assert "errors: 1" in result.output
        assert "finished with 1 errors" in caplog.text

    def test_seed_plans_idempotent(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-plans"])
        assert "already present" in result.output
        with app.app_context():
            assert SubscriptionPlan.query.count() == 3

    def test_create_admin(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(
            args=["create-admin", "Ops@Example.com", "--name", "Ops", "--password", "longpassword"]
        )
        assert result.exit_code == 0
        with app.app_context():
            user = User.query.filter_by(email="ops@example.com").one()
            assert user.is_admin
            assert user.subscription.name == "Free"

    def test_create_admin_promotes_existing(self, app, user):
        runner = app.test_cli_runner()
        result = runner.invoke(
            args=["create-admin", "user@example.com", "--password", "longpassword"]
        )
        assert "Promoted" in result.output
        with app.app_context():
            assert db.session.get(User, user[0]).is_admin
