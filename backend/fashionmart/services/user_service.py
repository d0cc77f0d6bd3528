# Overview: Service-layer operations for users; provisioning, profiles and audited role changes.

"""
User Service

WHY: Users are created by the identity provider (first contact or webhook)
or provisioned by an admin. Roles drive every authorization decision, so
role mutation is admin-only and every change is written to
role_change_events in the same transaction.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import re

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import Conflict, NotFound, Unauthenticated, ValidationError
from ..models import User, RoleChangeEvent
from ..models.communications import NOTIFICATION_SYSTEM
from ..roles import ALL_ROLES, DEFAULT_ROLE, is_valid_role
from ..validation import ModelValidationPolicy, validate_payload
from . import notification_service


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={
        "firstName": "first_name",
        "lastName": "last_name",
        "phoneNumber": "phone_number",
    },
)


def _validate_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("A valid email is required")
    return email.strip().lower()


def get_user(user_id: str) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def create_user(
    user_id: str,
    email: str,
    role: str = DEFAULT_ROLE,
    first_name: str | None = None,
    last_name: str | None = None,
    phone_number: str | None = None,
    actor_id: str | None = None,
) -> User:
    """
    Provision a user explicitly (admin route, CLI, identity webhook).

    Raises:
        ValidationError: bad id, email or role
        Conflict: id or email already registered
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("id is required")
    user_id = user_id.strip()
    email = _validate_email(email)
    if not is_valid_role(role):
        raise ValidationError(f"role must be one of: {', '.join(ALL_ROLES)}")

    if db.session.get(User, user_id):
        raise Conflict("User already exists")
    if db.session.query(User).filter_by(email=email).first():
        raise Conflict("Email already registered")

    user = User(
        id=user_id,
        email=email,
        role=role,
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        active=True,
    )
    db.session.add(user)
    db.session.flush()

    if role != DEFAULT_ROLE:
        # Provisioning straight into a privileged role is a role mutation too
        db.session.add(RoleChangeEvent(
            user_id=user.id,
            changed_by_id=actor_id,
            old_role=None,
            new_role=role,
            reason="Provisioned",
        ))

    db.session.commit()
    return user


def list_users(
    *,
    role: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], int]:
    query = db.session.query(User)

    if role:
        if not is_valid_role(role):
            raise ValidationError(f"role must be one of: {', '.join(ALL_ROLES)}")
        query = query.filter(User.role == role)
    if active is not None:
        query = query.filter(User.active.is_(active))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))

    total = query.count()
    users = (
        query.order_by(User.created_at.desc(), User.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return users, total


def update_profile(user: User, payload: dict) -> User:
    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=True)
    for key, value in patch.items():
        setattr(user, key, value)
    db.session.commit()
    return user


def set_profile_image(user: User, path: str) -> User:
    user.profile_image = path
    db.session.commit()
    return user


def change_role(
    user_id: str,
    new_role: str,
    *,
    actor: User,
    reason: str | None = None,
    ip_address: str | None = None,
) -> User:
    """
    Change a user's role and append the audit record.

    Admins cannot change their own role, so the system can never lose its
    last admin through a self-demotion.

    Raises:
        ValidationError: unknown role, or self role change
        NotFound: user does not exist
    """
    if not is_valid_role(new_role):
        raise ValidationError(f"role must be one of: {', '.join(ALL_ROLES)}")

    user = get_user(user_id)
    if user.id == actor.id:
        raise ValidationError("Admins cannot change their own role")

    old_role = user.role
    if old_role == new_role:
        return user

    user.role = new_role
    db.session.add(RoleChangeEvent(
        user_id=user.id,
        changed_by_id=actor.id,
        old_role=old_role,
        new_role=new_role,
        reason=reason,
        ip_address=ip_address,
    ))
    notification_service.notify(
        user.id,
        NOTIFICATION_SYSTEM,
        "Role updated",
        f"Your role changed from {old_role} to {new_role}.",
        {"oldRole": old_role, "newRole": new_role},
    )
    db.session.commit()

    current_app.logger.info("User %s role changed %s -> %s by %s", user.id, old_role, new_role, actor.id)
    return user


def set_active(user_id: str, active: bool, *, actor: User) -> User:
    user = get_user(user_id)
    if user.id == actor.id and not active:
        raise ValidationError("Admins cannot deactivate themselves")
    user.active = active
    db.session.commit()
    current_app.logger.info("User %s active=%s set by %s", user.id, active, actor.id)
    return user


def list_role_changes(user_id: str | None = None, *, page: int = 1, limit: int = 50) -> tuple[list[RoleChangeEvent], int]:
    query = db.session.query(RoleChangeEvent)
    if user_id:
        query = query.filter(RoleChangeEvent.user_id == user_id)
    total = query.count()
    events = (
        query.order_by(RoleChangeEvent.occurred_at.desc(), RoleChangeEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return events, total


# =============================================================================
# IDENTITY PROVIDER WEBHOOK
# =============================================================================

def _primary_email(data: dict) -> str | None:
    if data.get("email"):
        return data["email"]
    # Clerk-style payload: email_addresses list + primary_email_address_id
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for entry in addresses:
        if entry.get("id") == primary_id:
            return entry.get("email_address")
    if addresses:
        return addresses[0].get("email_address")
    return None


def apply_identity_event(event_type: str, data: dict) -> User | None:
    """
    Apply a user.created / user.updated / user.deleted event.

    Events never change roles: roles belong to this system, not to the
    identity provider. Deletion deactivates rather than deletes, since orders
    and designs reference the user.
    """
    user_id = data.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise ValidationError("Event data must include the user id")

    if event_type == "user.created":
        existing = db.session.get(User, user_id)
        if existing:
            return existing
        return create_user(
            user_id,
            _primary_email(data),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )

    if event_type == "user.updated":
        user = get_user(user_id)
        email = _primary_email(data)
        if email:
            email = _validate_email(email)
            owner = db.session.query(User).filter_by(email=email).first()
            if owner and owner.id != user.id:
                raise Conflict("Email already registered")
            user.email = email
        if "first_name" in data:
            user.first_name = data.get("first_name")
        if "last_name" in data:
            user.last_name = data.get("last_name")
        db.session.commit()
        return user

    if event_type == "user.deleted":
        user = db.session.get(User, user_id)
        if user:
            user.active = False
            db.session.commit()
        return user

    current_app.logger.info("Ignoring identity event %s", event_type)
    return None


def verify_identity_webhook(payload: bytes, signature: str | None) -> dict:
    """
    Check X-Webhook-Signature (hex HMAC-SHA256 of the raw body, optionally
    prefixed "sha256=") and return the decoded event.
    """
    secret = current_app.config.get("IDENTITY_WEBHOOK_SECRET")
    if not secret:
        current_app.logger.warning("Identity webhook rejected: no secret configured")
        raise Unauthenticated("Webhook secret is not configured")
    if not signature:
        raise Unauthenticated("Missing webhook signature")

    provided = signature.split("=", 1)[1] if signature.startswith("sha256=") else signature
    expected = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, provided.strip()):
        current_app.logger.warning("Identity webhook rejected: bad signature")
        raise Unauthenticated("Invalid webhook signature")

    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Webhook body must be JSON")
    if not isinstance(event, dict) or not isinstance(event.get("data"), dict):
        raise ValidationError("Webhook event must include type and data")
    return event
