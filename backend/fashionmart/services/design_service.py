# Overview: Service-layer operations for designs; the draft/pending/approved/rejected lifecycle.

"""
Design Lifecycle Service

LIFECYCLE:
1. Create (draft) - designer owns the design and may edit or delete it
2. Submit (draft -> pending) - owning designer only
3. Review (pending -> approved | rejected) - inventory_manager or admin;
   rejection requires a reason

Transitions use guarded updates so two reviewers (or a double submit)
cannot both win.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import InvalidState, NotFound, ValidationError
from ..models import Design, User
from ..models.catalog import (
    DESIGN_STATUS_APPROVED,
    DESIGN_STATUS_DRAFT,
    DESIGN_STATUS_PENDING,
    DESIGN_STATUS_REJECTED,
    DESIGN_STATUSES,
)
from ..models.communications import NOTIFICATION_DESIGN_STATUS
from ..validation import ModelValidationPolicy, validate_payload
from fashionmart.time_utils import utcnow
from .category_service import require_category
from .concurrency import guarded_update
from . import notification_service


DESIGN_POLICY = ModelValidationPolicy(
    writable_fields={
        "name": "name",
        "description": "description",
        "categoryId": "category_id",
    },
    required_on_create={"name", "categoryId"},
)

REVIEW_DECISIONS = (DESIGN_STATUS_APPROVED, DESIGN_STATUS_REJECTED)


def get_design(design_id: int) -> Design:
    design = db.session.get(Design, design_id)
    if not design:
        raise NotFound("Design not found")
    return design


def get_owned_design(design_id: int, designer: User) -> Design:
    """Designers only ever see their own designs; others' ids look absent."""
    design = get_design(design_id)
    if design.designer_id != designer.id:
        raise NotFound("Design not found")
    return design


def list_designs(designer: User, status: str | None = None) -> list[Design]:
    query = db.session.query(Design).filter(Design.designer_id == designer.id)
    if status:
        if status not in DESIGN_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(DESIGN_STATUSES)}")
        query = query.filter(Design.status == status)
    return query.order_by(Design.created_at.desc(), Design.id.desc()).all()


def list_pending_designs() -> list[Design]:
    return (
        db.session.query(Design)
        .filter(Design.status == DESIGN_STATUS_PENDING)
        .order_by(Design.submitted_at.asc(), Design.id.asc())
        .all()
    )


def create_design(designer: User, payload: dict, images: list[str] | None = None) -> Design:
    patch = validate_payload(
        model=Design, payload=payload, policy=DESIGN_POLICY, partial=False, ignore_unknown=True
    )
    require_category(patch["category_id"])

    design = Design(
        designer_id=designer.id,
        status=DESIGN_STATUS_DRAFT,
        images=list(images or []),
        **patch,
    )
    db.session.add(design)
    db.session.commit()
    return design


def _require_draft(design: Design, action: str) -> None:
    if design.status != DESIGN_STATUS_DRAFT:
        raise InvalidState(f"Only draft designs can be {action} (current status: {design.status})")


def update_design(design_id: int, designer: User, payload: dict, images: list[str] | None = None) -> Design:
    design = get_owned_design(design_id, designer)
    _require_draft(design, "edited")

    patch = validate_payload(
        model=Design, payload=payload, policy=DESIGN_POLICY, partial=True, ignore_unknown=True
    )
    if "category_id" in patch:
        require_category(patch["category_id"])

    for key, value in patch.items():
        setattr(design, key, value)
    if images:
        design.images = list(design.images or []) + list(images)
    db.session.commit()
    return design


def delete_design(design_id: int, designer: User) -> None:
    design = get_owned_design(design_id, designer)
    _require_draft(design, "deleted")
    db.session.delete(design)
    db.session.commit()


def submit_design(design_id: int, designer: User) -> Design:
    """draft -> pending. Fails with InvalidState (400) for any other status."""
    design = get_owned_design(design_id, designer)
    _require_draft(design, "submitted")

    moved = guarded_update(
        Design,
        design.id,
        where=(Design.status == DESIGN_STATUS_DRAFT,),
        values={"status": DESIGN_STATUS_PENDING, "submitted_at": utcnow(), "rejection_reason": None},
    )
    if not moved:
        db.session.rollback()
        raise InvalidState("Design was already submitted")

    db.session.commit()
    db.session.refresh(design)
    return design


def review_design(design_id: int, reviewer: User, decision: str, rejection_reason: str | None = None) -> Design:
    """
    pending -> approved | rejected.

    Raises:
        ValidationError: bad decision, or rejection without a reason
        InvalidState: design is not pending
    """
    if decision not in REVIEW_DECISIONS:
        raise ValidationError("status must be 'approved' or 'rejected'")
    if decision == DESIGN_STATUS_REJECTED:
        if not isinstance(rejection_reason, str) or not rejection_reason.strip():
            raise ValidationError("rejectionReason is required when rejecting a design")
        rejection_reason = rejection_reason.strip()
    else:
        rejection_reason = None

    design = get_design(design_id)
    if design.status != DESIGN_STATUS_PENDING:
        raise InvalidState(f"Only pending designs can be reviewed (current status: {design.status})")

    now = utcnow()
    moved = guarded_update(
        Design,
        design.id,
        where=(Design.status == DESIGN_STATUS_PENDING,),
        values={
            "status": decision,
            "rejection_reason": rejection_reason,
            "approved_at": now if decision == DESIGN_STATUS_APPROVED else None,
            "reviewed_by_id": reviewer.id,
        },
    )
    if not moved:
        db.session.rollback()
        raise InvalidState("Design was already reviewed")

    if decision == DESIGN_STATUS_APPROVED:
        message = f'Your design "{design.name}" was approved.'
    else:
        message = f'Your design "{design.name}" was rejected: {rejection_reason}'
    notification_service.notify(
        design.designer_id,
        NOTIFICATION_DESIGN_STATUS,
        f"Design {decision}",
        message,
        {"designId": design.id, "status": decision},
    )
    db.session.commit()
    db.session.refresh(design)
    return design

