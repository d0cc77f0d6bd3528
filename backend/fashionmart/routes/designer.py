# Overview: Flask API routes for designers; own designs through the draft/submit lifecycle.

from flask import Blueprint, request

from ..decorators import require_auth, require_roles, current_user
from ..responses import success
from ..roles import DESIGNER_ONLY
from ..services import category_service, design_service
from ..uploads import request_payload, save_request_files

designer_bp = Blueprint("designer", __name__, url_prefix="/api/designer")


@designer_bp.get("/categories")
@require_auth
@require_roles(DESIGNER_ONLY)
def list_categories():
    return success({"categories": [c.to_dict() for c in category_service.list_categories()]})


@designer_bp.get("/designs")
@require_auth
@require_roles(DESIGNER_ONLY)
def list_designs():
    """Query params: status (draft | pending | approved | rejected)."""
    designs = design_service.list_designs(current_user(), request.args.get("status") or None)
    return success({"designs": [d.to_dict() for d in designs]})


@designer_bp.post("/designs")
@require_auth
@require_roles(DESIGNER_ONLY)
def create_design():
    """JSON or multipart: name, description, categoryId, designImages (files)."""
    payload = request_payload()
    images = save_request_files("designImages")
    design = design_service.create_design(current_user(), payload, images)
    return success({"design": design.to_dict()}, message="Design created", status=201)


@designer_bp.get("/designs/<int:design_id>")
@require_auth
@require_roles(DESIGNER_ONLY)
def get_design(design_id: int):
    design = design_service.get_owned_design(design_id, current_user())
    return success({"design": design.to_dict()})


@designer_bp.put("/designs/<int:design_id>")
@require_auth
@require_roles(DESIGNER_ONLY)
def update_design(design_id: int):
    """Draft only."""
    payload = request_payload()
    images = save_request_files("designImages")
    design = design_service.update_design(design_id, current_user(), payload, images)
    return success({"design": design.to_dict()}, message="Design updated")


@designer_bp.delete("/designs/<int:design_id>")
@require_auth
@require_roles(DESIGNER_ONLY)
def delete_design(design_id: int):
    """Draft only."""
    design_service.delete_design(design_id, current_user())
    return success(message="Design deleted")


@designer_bp.post("/designs/<int:design_id>/submit")
@require_auth
@require_roles(DESIGNER_ONLY)
def submit_design(design_id: int):
    design = design_service.submit_design(design_id, current_user())
    return success({"design": design.to_dict()}, message="Design submitted for review")
