import os

from flask import Flask, jsonify
from sqlalchemy import text

from settlement.cli import register_cli
from settlement.config import Config
from settlement.errors import register_error_handlers
from settlement.extensions import cors, db, migrate
from settlement.segments_loader import register_all_segment_blueprints
from settlement.utils.fees import FeeSchedule


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    env = (app.config.get("ENV") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
        if not (os.getenv("DATABASE_URL") or "").strip():
            raise RuntimeError("DATABASE_URL must be set in production")

    # Fails fast on a bad fee schedule (ConfigurationError)
    app.extensions["settlement_fees"] = FeeSchedule.from_config(app.config)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
        os.makedirs(app.config.get("INSTANCE_DIR") or app.instance_path, exist_ok=True)

    # CORS configuration
    cors_origins = (app.config.get("ALLOWED_ORIGINS") or "").strip()
    if env in ("prod", "production"):
        origins = [o.strip() for o in cors_origins.split(",") if o.strip() and o.strip() != "*"]
    else:
        origins = ["*"] if not cors_origins else [o.strip() for o in cors_origins.split(",") if o.strip()]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from settlement import models  # noqa: F401

    register_error_handlers(app)
    register_all_segment_blueprints(app)
    register_cli(app)

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except Exception as e:
            app.logger.error("health check db failure: %s", e)
            db_state = "fail"
        return jsonify({
            "ok": db_state == "ok",
            "service": "settlement-engine",
            "env": env,
            "db": db_state,
        }), 200 if db_state == "ok" else 503

    return app
