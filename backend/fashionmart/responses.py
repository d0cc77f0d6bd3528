# Overview: Uniform JSON envelope for every API response.

from __future__ import annotations

from typing import Any

from flask import jsonify


def success(data: Any = None, message: str | None = None, status: int = 200):
    """Build a `{success: true, data, message}` response tuple."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return jsonify(body), status


def failure(message: str, status: int, error: dict | None = None):
    """Build a `{success: false, message, error}` response tuple."""
    body: dict[str, Any] = {"success": False, "message": message}
    if error:
        body["error"] = error
    return jsonify(body), status


def paginated(items: list, *, total: int, page: int, limit: int, key: str = "items") -> dict:
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    return {
        key: items,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
    }
