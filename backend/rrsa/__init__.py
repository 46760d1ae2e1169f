# backend/rrsa/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate, STORE_KEY
from .services.document_backends import SqlDocumentBackend, build_backend
from .services.document_store import DocumentStore
from .time_utils import utcnow


def create_app(config_overrides: dict | None = None, *, backend=None, clock=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One store per app; every service receives it explicitly
    store = DocumentStore(backend or build_backend(app.config), clock=clock or utcnow)
    app.extensions[STORE_KEY] = store

    if app.config.get("RRSA_INIT_ON_STARTUP", True):
        with app.app_context():
            if isinstance(store.backend, SqlDocumentBackend):
                db.create_all()
            store.init()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.admin import admin_bp
    from .routes.invites import invites_bp
    from .routes.records import records_bp
    from .routes.settings import settings_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(invites_bp)
    app.register_blueprint(records_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Expose-Headers"] = "X-Session-Token"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
