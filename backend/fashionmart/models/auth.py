from __future__ import annotations

from ..extensions import db
from ..roles import DEFAULT_ROLE
from fashionmart.time_utils import to_utc_z


class User(db.Model):
    """
    User accounts keyed by the identity provider's opaque user id.

    WHY: Credentials live with the identity provider; this table carries the
    role used for every authorization decision and the profile fields shown
    in the storefront.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role_active", "role", "active"),
    )

    id = db.Column(db.String(128), primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)

    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    profile_image = db.Column(db.String(255), nullable=True)

    # One of roles.ALL_ROLES; only admins may change it (see RoleChangeEvent)
    role = db.Column(db.String(32), nullable=False, default=DEFAULT_ROLE)
    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now()
    )

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phoneNumber": self.phone_number,
            "profileImage": self.profile_image,
            "role": self.role,
            "active": self.active,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        """Subset safe to embed in catalog responses."""
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }


class RoleChangeEvent(db.Model):
    """
    Role mutation audit log.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    One row per change, written in the same transaction as the change.
    """
    __tablename__ = "role_change_events"
    __table_args__ = (
        db.Index("ix_role_change_events_user_occurred", "user_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    changed_by_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True)

    old_role = db.Column(db.String(32), nullable=True)
    new_role = db.Column(db.String(32), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])
    changed_by = db.relationship("User", foreign_keys=[changed_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "changedById": self.changed_by_id,
            "oldRole": self.old_role,
            "newRole": self.new_role,
            "reason": self.reason,
            "ipAddress": self.ip_address,
            "occurredAt": to_utc_z(self.occurred_at),
        }
