# Overview: Service-layer operations for session resolution; maps bearer tokens to users.

"""
Session Resolution Service

WHY: Every protected request needs the caller's identity and role. Tokens
are issued by the identity provider as HS256 JWTs; this module only
verifies them and maps the "sub" claim onto a local User row.

SECURITY FEATURES:
- Signature and expiry verified with PyJWT (IDENTITY_TOKEN_SECRET)
- "sub" is required; it is the opaque external user id
- Deactivated users are rejected even with a valid token
- First-contact provisioning only when the token carries an email claim
  and AUTO_PROVISION_USERS is on; new users always start as customer
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import jwt
from flask import current_app

from ..extensions import db
from ..models import User
from ..roles import DEFAULT_ROLE
from fashionmart.time_utils import utcnow


ALGORITHM = "HS256"


@dataclass
class SessionContext:
    """
    Resolved identity for one request.

    The role is read from the User row, never from the token, so an admin
    role change takes effect on the next request.
    """
    user: User
    claims: dict

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def role(self) -> str:
        return self.user.role


def _secret() -> str:
    return current_app.config["IDENTITY_TOKEN_SECRET"]


def issue_token(user_id: str, email: str | None = None, ttl_seconds: int | None = None) -> str:
    """
    Mint a token the way the identity provider does.

    Used by the CLI (`flask users token`) and the test suite.
    """
    ttl = ttl_seconds if ttl_seconds is not None else current_app.config["IDENTITY_TOKEN_TTL_SECONDS"]
    now = utcnow()
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict | None:
    """Return verified claims, or None for a bad signature, expiry or missing sub."""
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        current_app.logger.info("Rejected bearer token: %s", exc)
        return None
    if not isinstance(claims.get("sub"), str) or not claims["sub"].strip():
        return None
    return claims


def _provision_on_first_contact(claims: dict) -> User | None:
    email = claims.get("email")
    if not isinstance(email, str) or not current_app.config.get("AUTO_PROVISION_USERS", False):
        return None
    email = email.strip().lower()
    if not email:
        return None

    # Email is unique; a different id owning it means the provider reassigned ids
    if db.session.query(User).filter_by(email=email).first():
        current_app.logger.warning("First-contact provisioning refused: email %s already registered", email)
        return None

    user = User(
        id=claims["sub"],
        email=email,
        first_name=claims.get("given_name"),
        last_name=claims.get("family_name"),
        role=DEFAULT_ROLE,
        active=True,
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Provisioned user %s on first contact", user.id)
    return user


def validate_session(token: str) -> SessionContext | None:
    """
    Validate bearer token and return SessionContext if valid.

    Returns None if:
    - Token signature/expiry is invalid or "sub" is missing
    - User is unknown and cannot be provisioned
    - User account is deactivated (active=False)

    WHY: Central validation point. All protected routes call this.
    """
    claims = decode_token(token)
    if claims is None:
        return None

    user = db.session.get(User, claims["sub"])
    if user is None:
        user = _provision_on_first_contact(claims)
        if user is None:
            return None

    if not user.active:
        return None

    return SessionContext(user=user, claims=claims)
