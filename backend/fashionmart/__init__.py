# backend/fashionmart/__init__.py
import os
import traceback

from flask import Flask, current_app, g, request, send_from_directory
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from werkzeug.routing import IntegerConverter

from .config import Config
from .errors import ApiError
from .extensions import db, migrate
from .responses import failure
from .uploads import discard_request_uploads
from .validation import MAX_DB_INT


class BoundedIntConverter(IntegerConverter):
    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault("max", MAX_DB_INT)
        super().__init__(map, *args, **kwargs)


def register_error_handlers(app: Flask) -> None:
    """Every error leaves through the {success: false, message, error} envelope."""

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        discard_request_uploads()
        error = {"code": exc.code}
        if exc.details:
            error["details"] = exc.details
        return failure(exc.message, exc.status_code, error=error)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        discard_request_uploads()
        current_app.logger.info("Integrity error on %s %s: %s", request.method, request.path, exc.orig)
        return failure("Conflicts with existing data", 409, error={"code": "CONFLICT"})

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return failure(exc.description or exc.name, exc.code or 500, error={"code": exc.name.upper().replace(" ", "_")})

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        discard_request_uploads()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        error = {"code": "INTERNAL_ERROR"}
        if current_app.debug:
            error["stack"] = traceback.format_exc()
        return failure("Internal server error", 500, error=error)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # The fake gateway never charges anyone; only debug/testing may fall back to it
    if not app.config.get("PAYMENT_PROVIDER"):
        if not (app.debug or app.testing):
            raise RuntimeError("PAYMENT_PROVIDER must be set to 'stripe' (or 'fake') outside debug/testing")
        app.config["PAYMENT_PROVIDER"] = "fake"

    # Path ids beyond SQLite's 64-bit INTEGER are simply not found
    app.url_map.converters["int"] = BoundedIntConverter

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.catalog import catalog_bp
    from .routes.notifications import notifications_bp
    from .routes.customer import customer_bp
    from .routes.designer import designer_bp
    from .routes.staff import staff_bp
    from .routes.inventory import inventory_bp
    from .routes.admin import admin_bp
    from .routes.payments import payments_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(designer_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)

    register_error_handlers(app)

    @app.get("/uploads/<path:filename>")
    def uploaded_file(filename):
        return send_from_directory(os.path.abspath(app.config["UPLOAD_FOLDER"]), filename)

    @app.teardown_request
    def forget_saved_uploads(exc=None):
        g.pop("saved_uploads", None)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
