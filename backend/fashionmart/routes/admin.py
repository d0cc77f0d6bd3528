# Overview: Flask API routes for admin operations; dashboard, users, role audit, reports and bills.

"""
Admin routes (/api/admin).

Provides endpoints for:
- Dashboard statistics (computed per request)
- User management (list, provision, activate/deactivate)
- Role changes, each written to the role-change audit log
- Monthly and yearly reports, stored once generated
- Bill image uploads

All endpoints are admin-only.
"""

from flask import Blueprint, request

from ..decorators import require_auth, require_roles, current_user
from ..errors import ValidationError
from ..responses import success, paginated
from ..roles import ADMIN_ONLY, DEFAULT_ROLE
from ..services import reporting_service, user_service
from ..uploads import save_request_file
from ..validation import coerce_bool, parse_optional_bool, parse_pagination, require_json_object

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/dashboard/stats")
@require_auth
@require_roles(ADMIN_ONLY)
def dashboard_stats():
    return success(reporting_service.dashboard_stats())


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_roles(ADMIN_ONLY)
def list_users():
    """
    Query params:
    - role: filter by role
    - active: bool
    - search: email / first / last name
    - page, limit
    """
    page, limit = parse_pagination(request.args)
    users, total = user_service.list_users(
        role=request.args.get("role") or None,
        active=parse_optional_bool(request.args, "active"),
        search=(request.args.get("search") or "").strip() or None,
        page=page,
        limit=limit,
    )
    return success(paginated([u.to_dict() for u in users], total=total, page=page, limit=limit, key="users"))


@admin_bp.post("/users")
@require_auth
@require_roles(ADMIN_ONLY)
def create_user():
    """Body: {id, email, role?, firstName?, lastName?, phoneNumber?}."""
    payload = require_json_object(request.get_json(silent=True))
    user = user_service.create_user(
        payload.get("id"),
        payload.get("email"),
        role=payload.get("role") or DEFAULT_ROLE,
        first_name=payload.get("firstName"),
        last_name=payload.get("lastName"),
        phone_number=payload.get("phoneNumber"),
        actor_id=current_user().id,
    )
    return success({"user": user.to_dict()}, message="User created", status=201)


@admin_bp.get("/users/<user_id>")
@require_auth
@require_roles(ADMIN_ONLY)
def get_user(user_id: str):
    return success({"user": user_service.get_user(user_id).to_dict()})


@admin_bp.patch("/users/<user_id>/role")
@require_auth
@require_roles(ADMIN_ONLY)
def change_role(user_id: str):
    """Body: {role, reason?}. Admins cannot change their own role."""
    payload = require_json_object(request.get_json(silent=True))
    user = user_service.change_role(
        user_id,
        payload.get("role"),
        actor=current_user(),
        reason=payload.get("reason"),
        ip_address=request.remote_addr,
    )
    return success({"user": user.to_dict()}, message="User role updated")


@admin_bp.patch("/users/<user_id>/status")
@require_auth
@require_roles(ADMIN_ONLY)
def change_status(user_id: str):
    """Body: {active: bool}."""
    payload = require_json_object(request.get_json(silent=True))
    if "active" not in payload:
        raise ValidationError("active is required")
    user = user_service.set_active(user_id, coerce_bool(payload["active"], "active"), actor=current_user())
    return success({"user": user.to_dict()}, message="User activated" if user.active else "User deactivated")


@admin_bp.get("/role-changes")
@require_auth
@require_roles(ADMIN_ONLY)
def list_role_changes():
    """Audit log, newest first. Query params: userId, page, limit."""
    page, limit = parse_pagination(request.args, default_limit=50)
    events, total = user_service.list_role_changes(
        request.args.get("userId") or None, page=page, limit=limit
    )
    return success(paginated([e.to_dict() for e in events], total=total, page=page, limit=limit, key="roleChanges"))


# =============================================================================
# REPORTS
# =============================================================================

@admin_bp.get("/reports")
@require_auth
@require_roles(ADMIN_ONLY)
def list_reports():
    page, limit = parse_pagination(request.args)
    reports, total = reporting_service.list_reports(
        type_=request.args.get("type") or None, page=page, limit=limit
    )
    return success(paginated(
        [r.to_dict(include_payload=False) for r in reports], total=total, page=page, limit=limit, key="reports"
    ))


@admin_bp.get("/reports/<int:report_id>")
@require_auth
@require_roles(ADMIN_ONLY)
def get_report(report_id: int):
    return success({"report": reporting_service.get_report(report_id).to_dict()})


@admin_bp.post("/reports/monthly")
@require_auth
@require_roles(ADMIN_ONLY)
def generate_monthly_report():
    """Body: {month: 1-12, year}."""
    report = reporting_service.generate_monthly_report(current_user(), request.get_json(silent=True))
    return success({"report": report.to_dict()}, message="Monthly report generated", status=201)


@admin_bp.post("/reports/yearly")
@require_auth
@require_roles(ADMIN_ONLY)
def generate_yearly_report():
    """Body: {year}."""
    report = reporting_service.generate_yearly_report(current_user(), request.get_json(silent=True))
    return success({"report": report.to_dict()}, message="Yearly report generated", status=201)


# =============================================================================
# BILLS
# =============================================================================

@admin_bp.post("/bills")
@require_auth
@require_roles(ADMIN_ONLY)
def upload_bill():
    """Multipart: billImage (file). Returns the stored file's URL."""
    path = save_request_file("billImage")
    if not path:
        raise ValidationError("billImage is required")
    return success({"url": path}, message="Bill uploaded", status=201)
