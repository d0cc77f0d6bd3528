# Overview: Flask API routes for system health and version; no authentication.

"""
System health and version endpoints.

/api/health reports database reachability; 503 when the store is down so
load balancers can act on it.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..responses import success, failure
from fashionmart.time_utils import utcnow, to_utc_z

API_VERSION = "1.0.0"

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latencyMs": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latencyMs": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    database = check_database_health()
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    if database["status"] != "healthy":
        return failure("Service unhealthy", 503, error=body)
    return success(body, message="Fashion Mart API is running")


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info; no secrets, credentials or paths."""
    return success({
        "apiVersion": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "pythonVersion": sys.version.split()[0],
        "paymentProvider": current_app.config.get("PAYMENT_PROVIDER"),
        "serverTime": to_utc_z(utcnow()),
    })
