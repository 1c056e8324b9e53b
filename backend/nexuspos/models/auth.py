from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


USER_TYPES = ("owner", "admin", "cashier")


class User(db.Model):
    """
    Employee account.

    Each user belongs to exactly one business and has exactly one type
    (owner, admin, cashier). Users are never deleted; is_active=False
    blocks login and strips every default permission.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("type IN ('owner', 'admin', 'cashier')", name="ck_users_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    first_name = db.Column(db.String(64), nullable=False)
    paternal_last_name = db.Column(db.String(64), nullable=False)
    maternal_last_name = db.Column(db.String(64), nullable=True)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    password_hash = db.Column(db.String(255), nullable=False)
    # Optional bcrypt hash for step-up authorization at the till
    pin_hash = db.Column(db.String(255), nullable=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    business = db.relationship("Business", backref=db.backref("users", lazy=True))

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.paternal_last_name, self.maternal_last_name]
        return " ".join(p for p in parts if p)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "first_name": self.first_name,
            "paternal_last_name": self.paternal_last_name,
            "maternal_last_name": self.maternal_last_name,
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "type": self.type,
            "has_pin": self.pin_hash is not None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class PermissionAssignment(db.Model):
    """
    Explicit per-user permission grant.

    Additive only: an assignment can grant something the user's type
    does not, but nothing can take a default permission away.
    """
    __tablename__ = "permission_assignments"
    __table_args__ = (
        db.UniqueConstraint("business_id", "user_id", "permission", name="uq_permission_assignments"),
        db.Index("ix_permission_assignments_user_perm", "user_id", "permission"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    permission = db.Column(db.String(64), nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("permission_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "permission": self.permission,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
        }


class SessionToken(db.Model):
    """
    Opaque bearer session.

    Only the SHA-256 hash of the token is stored. The business_id is
    captured at login and fixed for the session's lifetime.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(64), nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
