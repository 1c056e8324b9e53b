# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication and Onboarding Service

WHY: Every action must be attributable to a user of one business.
Uses bcrypt for password and PIN hashing and validates password strength.

ONBOARDING RULES:
- The first user of a business is always its owner (register_business)
- Owners register admins, admins register cashiers, cashiers register nobody
- Email and phone are globally unique (they are the login identifiers)

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- PINs are 4-6 digits, bcrypt-hashed, used for step-up authorization
  at the till (cancel/refund)
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..context import AuthContext
from ..errors import ConflictError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import Business, User
from ..time_utils import utcnow
from . import audit_service, permission_service
from .concurrency import run_atomically
from .tenant_service import get_owned


BCRYPT_ROUNDS = 12

_PIN_RE = re.compile(r"^\d{4,6}$")

# Which user type each type may register
REGISTRABLE_TYPES = {
    "owner": "admin",
    "admin": "cashier",
}


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character

    Raises ValidationError listing every unmet requirement.
    """
    password = password or ""
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        errors.append("Password must contain at least one special character")
    if errors:
        raise ValidationError(errors)


def _hash_secret(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", BCRYPT_ROUNDS))
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def _check_secret(secret: str, secret_hash: str | None) -> bool:
    if not secret or not secret_hash:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), secret_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash the password."""
    validate_password_strength(password)
    return _hash_secret(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; False on any mismatch or bad hash."""
    return _check_secret(password, password_hash)


def validate_pin(pin: str) -> None:
    if not isinstance(pin, str) or not _PIN_RE.match(pin):
        raise ValidationError("PIN must be 4-6 digits")


def hash_pin(pin: str) -> str:
    validate_pin(pin)
    return _hash_secret(pin)


def verify_user_pin(user_id: int, pin: str) -> bool:
    """True when the user is active, has a PIN set, and pin matches it."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active or not user.pin_hash:
        return False
    return _check_secret(pin, user.pin_hash)


def _check_contact_available(email: str, phone: str) -> None:
    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already exists")
    if db.session.query(User.id).filter_by(phone=phone).first():
        raise ConflictError("Phone already exists")


def _validate_user_fields(first_name, paternal_last_name, email, phone) -> list[str]:
    errors = []
    if not (first_name or "").strip():
        errors.append("First name is required")
    if not (paternal_last_name or "").strip():
        errors.append("Paternal last name is required")
    if not (email or "").strip() or "@" not in email:
        errors.append("A valid email is required")
    if not (phone or "").strip():
        errors.append("Phone is required")
    return errors


def _build_user(
    *,
    business_id: int,
    user_type: str,
    first_name: str,
    paternal_last_name: str,
    maternal_last_name: str | None,
    email: str,
    phone: str,
    password: str,
    pin: str | None,
) -> User:
    errors = _validate_user_fields(first_name, paternal_last_name, email, phone)
    try:
        validate_password_strength(password)
    except ValidationError as exc:
        errors.extend(exc.errors)
    if pin is not None and (not isinstance(pin, str) or not _PIN_RE.match(pin)):
        errors.append("PIN must be 4-6 digits")
    if errors:
        raise ValidationError(errors)

    email = email.strip().lower()
    phone = phone.strip()
    _check_contact_available(email, phone)

    user = User(
        business_id=business_id,
        first_name=first_name.strip(),
        paternal_last_name=paternal_last_name.strip(),
        maternal_last_name=(maternal_last_name or "").strip() or None,
        email=email,
        phone=phone,
        password_hash=_hash_secret(password),
        pin_hash=_hash_secret(pin) if pin else None,
        type=user_type,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    return user


def register_business(
    *,
    business_name: str,
    location: str,
    business_phone: str,
    first_name: str,
    paternal_last_name: str,
    email: str,
    phone: str,
    password: str,
    maternal_last_name: str | None = None,
    pin: str | None = None,
    business_email: str | None = None,
    website: str | None = None,
) -> tuple[Business, User]:
    """
    Create a business together with its owner account.

    The owner is the first user of the business and gets every permission
    by default. Returns (business, owner).
    """
    def _op() -> tuple[Business, User]:
        errors = []
        if not (business_name or "").strip():
            errors.append("Business name is required")
        if not (location or "").strip():
            errors.append("Business location is required")
        if not (business_phone or "").strip():
            errors.append("Business phone is required")
        if errors:
            raise ValidationError(errors)

        business = Business(
            name=business_name.strip(),
            location=location.strip(),
            phone=business_phone.strip(),
            email=business_email,
            website=website,
            is_active=True,
        )
        db.session.add(business)
        db.session.flush()

        owner = _build_user(
            business_id=business.id,
            user_type="owner",
            first_name=first_name,
            paternal_last_name=paternal_last_name,
            maternal_last_name=maternal_last_name,
            email=email,
            phone=phone,
            password=password,
            pin=pin,
        )

        ctx = AuthContext(user_id=owner.id, business_id=business.id)
        audit_service.audit(
            ctx, "business.created", "business", business.id,
            details=f"Registered business '{business.name}' with owner {owner.email}",
            new_value={"business": business.name, "owner_id": owner.id},
        )
        return business, owner

    return run_atomically(_op)


def register_user(
    ctx: AuthContext,
    *,
    first_name: str,
    paternal_last_name: str,
    email: str,
    phone: str,
    password: str,
    maternal_last_name: str | None = None,
    pin: str | None = None,
    user_type: str | None = None,
) -> User:
    """
    Register a new user in the caller's business. Requires users.create.

    The new user's type follows from the caller's: owner -> admin,
    admin -> cashier. Passing a different user_type is refused.

    Raises:
        PermissionDeniedError: caller is a cashier, or asked for a type they cannot create
        ConflictError: email or phone already registered
        ValidationError: missing fields, weak password or malformed PIN
    """
    def _op() -> User:
        creator = get_owned(User, ctx.user_id, ctx.business_id, label="User")
        allowed_type = REGISTRABLE_TYPES.get(creator.type)
        if allowed_type is None:
            raise PermissionDeniedError("Cashier cannot register new users", permission="users.create")
        if user_type is not None and user_type != allowed_type:
            raise PermissionDeniedError(
                f"{creator.type.capitalize()} can only register {allowed_type} users",
                permission="users.create",
            )

        permission_service.require_permission(ctx.user_id, "users.create", ctx.business_id)

        user = _build_user(
            business_id=ctx.business_id,
            user_type=allowed_type,
            first_name=first_name,
            paternal_last_name=paternal_last_name,
            maternal_last_name=maternal_last_name,
            email=email,
            phone=phone,
            password=password,
            pin=pin,
        )

        audit_service.audit(
            ctx, "user.created", "user", user.id,
            details=f"Registered {user.type} {user.email}",
            new_value={"email": user.email, "type": user.type},
        )
        return user

    return run_atomically(_op)


def set_user_pin(ctx: AuthContext, user_id: int, pin: str) -> User:
    """
    Set or replace a user's PIN.

    Users may always set their own PIN; setting someone else's needs users.update.
    """
    def _op() -> User:
        if user_id != ctx.user_id:
            permission_service.require_permission(ctx.user_id, "users.update", ctx.business_id)
        user = get_owned(User, user_id, ctx.business_id, label="User")
        user.pin_hash = hash_pin(pin)

        audit_service.audit(ctx, "user.pin_set", "user", user.id, details="PIN updated")
        return user

    return run_atomically(_op)


def deactivate_user(ctx: AuthContext, user_id: int) -> User:
    """
    Soft-delete a user. Requires users.delete.

    The owner cannot be deactivated and nobody can deactivate themselves.
    Open sessions of the user are revoked.
    """
    from . import session_service

    def _op() -> User:
        permission_service.require_permission(ctx.user_id, "users.delete", ctx.business_id)
        user = get_owned(User, user_id, ctx.business_id, label="User")
        if user.id == ctx.user_id:
            raise ValidationError("You cannot deactivate your own account")
        if user.type == "owner":
            raise PermissionDeniedError("The business owner cannot be deactivated", permission="users.delete")

        user.is_active = False
        revoked = session_service.revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)

        audit_service.audit(
            ctx, "user.deactivated", "user", user.id,
            details=f"Deactivated {user.email}, revoked {revoked} sessions",
            old_value={"is_active": True},
            new_value={"is_active": False},
        )
        return user

    return run_atomically(_op)


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials. Returns the User or None.

    Inactive users and users of inactive businesses never authenticate.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter_by(email=(email or "").strip().lower(), is_active=True).first()
    if user is None:
        return None

    business = db.session.get(Business, user.business_id)
    if business is None or not business.is_active:
        return None

    if not verify_password(password, user.password_hash):
        current_app.logger.info("Failed login for %s", user.email)
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
