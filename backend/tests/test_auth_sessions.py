# Overview: Pytest coverage for onboarding, credentials, PINs and bearer sessions.

from datetime import timedelta

import pytest

from nexuspos.context import AuthContext
from nexuspos.errors import ConflictError, PermissionDeniedError, ValidationError
from nexuspos.extensions import db
from nexuspos.models import SessionToken, User
from nexuspos.services import auth_service, session_service

from conftest import ADMIN_PIN, CASHIER_PIN, PASSWORD


def _new_user_fields(**overrides):
    fields = dict(
        first_name="Nora",
        paternal_last_name="New",
        email="nora@a.test",
        phone="5551000099",
        password=PASSWORD,
    )
    fields.update(overrides)
    return fields


class TestPasswordRules:

    def test_strong_password_passes(self):
        auth_service.validate_password_strength("Sup3r$ecret")

    def test_every_violation_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            auth_service.validate_password_strength("abc")

        assert len(exc_info.value.errors) == 4

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password("Sup3r$ecret")

        assert hashed != "Sup3r$ecret"
        assert auth_service.verify_password("Sup3r$ecret", hashed) is True
        assert auth_service.verify_password("wrong", hashed) is False
        assert auth_service.verify_password("Sup3r$ecret", "not-a-bcrypt-hash") is False

    @pytest.mark.parametrize("pin", ["123", "1234567", "12a4", ""])
    def test_malformed_pins(self, pin):
        with pytest.raises(ValidationError):
            auth_service.validate_pin(pin)


class TestRegistration:

    def test_owner_registration(self, business, owner):
        assert business.is_active is True
        assert owner.type == "owner"
        assert owner.business_id == business.id
        assert owner.password_hash != PASSWORD

    def test_business_fields_required(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            auth_service.register_business(
                business_name="", location="", business_phone="",
                **_new_user_fields(),
            )
        assert len(exc_info.value.errors) == 3
        assert db.session.query(User).count() == 0

    def test_role_chain(self, owner, admin, cashier):
        assert admin.type == "admin"
        assert cashier.type == "cashier"

    def test_owner_cannot_create_cashier_directly(self, owner_ctx):
        with pytest.raises(PermissionDeniedError):
            auth_service.register_user(owner_ctx, user_type="cashier", **_new_user_fields())

    def test_cashier_cannot_register(self, cashier_ctx):
        with pytest.raises(PermissionDeniedError) as exc_info:
            auth_service.register_user(cashier_ctx, **_new_user_fields())
        assert exc_info.value.message == "Cashier cannot register new users"

    def test_email_is_case_insensitive_and_unique(self, owner_ctx, admin):
        with pytest.raises(ConflictError):
            auth_service.register_user(owner_ctx, **_new_user_fields(email="ADMIN@a.test"))

    def test_phone_unique(self, owner_ctx, admin):
        with pytest.raises(ConflictError):
            auth_service.register_user(owner_ctx, **_new_user_fields(phone=admin.phone))

    def test_weak_password_and_bad_pin_reported_together(self, owner_ctx):
        with pytest.raises(ValidationError) as exc_info:
            auth_service.register_user(owner_ctx, **_new_user_fields(password="short", pin="12"))

        assert "PIN must be 4-6 digits" in exc_info.value.errors
        assert "Password must be at least 8 characters long" in exc_info.value.errors


class TestPins:

    def test_verify_user_pin(self, admin):
        assert auth_service.verify_user_pin(admin.id, ADMIN_PIN) is True
        assert auth_service.verify_user_pin(admin.id, CASHIER_PIN) is False

    def test_user_sets_own_pin(self, cashier, cashier_ctx):
        auth_service.set_user_pin(cashier_ctx, cashier.id, "9999")

        assert auth_service.verify_user_pin(cashier.id, "9999") is True

    def test_cashier_cannot_set_others_pin(self, admin, cashier_ctx):
        with pytest.raises(PermissionDeniedError):
            auth_service.set_user_pin(cashier_ctx, admin.id, "9999")

    def test_deactivated_user_pin_never_verifies(self, owner_ctx, admin):
        auth_service.deactivate_user(owner_ctx, admin.id)

        assert auth_service.verify_user_pin(admin.id, ADMIN_PIN) is False


class TestDeactivation:

    def test_admin_cannot_deactivate(self, admin_ctx, cashier):
        with pytest.raises(PermissionDeniedError):
            auth_service.deactivate_user(admin_ctx, cashier.id)

    def test_cannot_deactivate_self(self, owner, owner_ctx):
        with pytest.raises(ValidationError):
            auth_service.deactivate_user(owner_ctx, owner.id)

    def test_deactivation_revokes_sessions(self, owner_ctx, cashier):
        _, token = session_service.login(cashier.email, PASSWORD)

        auth_service.deactivate_user(owner_ctx, cashier.id)

        assert session_service.validate_session(token) is None
        session = db.session.query(SessionToken).filter_by(user_id=cashier.id).one()
        assert session.is_revoked is True
        assert session.revoked_reason == "User deactivated"

    def test_deactivated_user_cannot_log_in(self, owner_ctx, cashier):
        auth_service.deactivate_user(owner_ctx, cashier.id)

        assert session_service.login(cashier.email, PASSWORD) is None


class TestSessions:

    def test_login_returns_token(self, owner):
        user, token = session_service.login("OWNER@a.test", PASSWORD, user_agent="pytest", ip_address="127.0.0.1")

        assert user.id == owner.id
        assert len(token) == 64
        stored = db.session.query(SessionToken).filter_by(user_id=owner.id).one()
        assert stored.token_hash == session_service.hash_token(token)
        assert stored.token_hash != token
        assert db.session.get(User, owner.id).last_login_at is not None

    def test_bad_password(self, owner):
        assert session_service.login(owner.email, "Wrong123!") is None
        assert db.session.query(SessionToken).count() == 0

    def test_validate_session(self, owner):
        _, token = session_service.login(owner.email, PASSWORD)

        context = session_service.validate_session(token)

        assert context.user.id == owner.id
        assert context.business_id == owner.business_id
        assert context.auth_context(ip_address="1.2.3.4") == AuthContext(
            user_id=owner.id, business_id=owner.business_id, ip_address="1.2.3.4",
        )

    def test_unknown_token(self, owner):
        assert session_service.validate_session("deadbeef") is None
        assert session_service.validate_session("") is None

    def test_idle_timeout_revokes(self, owner):
        _, token = session_service.login(owner.email, PASSWORD)
        session = db.session.query(SessionToken).one()
        session.last_used_at = session.last_used_at - timedelta(minutes=31)
        db.session.commit()

        assert session_service.validate_session(token) is None
        assert db.session.query(SessionToken).one().revoked_reason == "Idle timeout"

    def test_absolute_timeout(self, owner):
        _, token = session_service.login(owner.email, PASSWORD)
        session = db.session.query(SessionToken).one()
        session.expires_at = session.created_at - timedelta(seconds=1)
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_logout(self, owner):
        _, token = session_service.login(owner.email, PASSWORD)

        assert session_service.logout(token) is True
        assert session_service.logout(token) is False
        assert session_service.validate_session(token) is None

    def test_revoke_all(self, owner):
        session_service.login(owner.email, PASSWORD)
        session_service.login(owner.email, PASSWORD)

        assert session_service.revoke_all_user_sessions(owner.id) == 2
        assert db.session.query(SessionToken).filter_by(is_revoked=False).count() == 0
