import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

from flask import Flask, current_app, jsonify
from supabase import Client, create_client

from daydrop import create_admin_daydrop_blueprint, create_daydrop_blueprint
from daydrop.config import load_trip_config
from daydrop.identity import Identity, current_user, is_admin
from extensions import db


# ====== Feature toggle ======
def _env_flag(name: str, default: bool) -> bool:
    """Parse truthy feature-toggle values from the environment."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_current_user() -> Optional[Identity]:
    """Return the signed-in identity from the session, or None."""
    return current_user()


def get_current_admin_user() -> Optional[Identity]:
    """Return the signed-in identity when its email is on the admin allow-list."""
    user = get_current_user()
    if not user or not is_admin(user, current_app.config["DAYDROP"].admin_emails):
        return None
    return user


def _init_supabase(app: Flask):
    """Build the Supabase client; None keeps the app on the local SQL store."""
    if not app.config.get("USE_SUPABASE"):
        return None
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not (url and key):
        app.logger.warning("USE_SUPABASE is on but SUPABASE_URL/SUPABASE_KEY are missing; using local store.")
        return None
    try:
        client: Client = create_client(url, key)
    except Exception as exc:
        app.logger.warning("Could not init Supabase client: %s", exc)
        return None
    return client


def create_app(overrides: Optional[dict] = None) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY") or os.urandom(24)
    app.permanent_session_lifetime = timedelta(days=365)

    data_dir = Path(app.root_path) / "data"
    app.config["USE_SUPABASE"] = _env_flag("USE_SUPABASE", True)
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL") or f"sqlite:///{data_dir / 'app.db'}"
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER") or str(Path(app.root_path) / "uploads")
    app.config.update(overrides or {})

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith(f"sqlite:///{data_dir}"):
        data_dir.mkdir(parents=True, exist_ok=True)

    if "DAYDROP" not in app.config:
        app.config["DAYDROP"] = load_trip_config(logger=app.logger)
    if "SUPABASE_CLIENT" not in app.config:
        app.config["SUPABASE_CLIENT"] = _init_supabase(app)

    db.init_app(app)

    app.register_blueprint(create_daydrop_blueprint(get_current_user))
    app.register_blueprint(create_admin_daydrop_blueprint(get_current_admin_user, get_current_user))

    @app.errorhandler(404)
    @app.errorhandler(405)
    @app.errorhandler(500)
    def show_json_error(err):
        status_code = getattr(err, "code", 500) or 500
        reason = getattr(err, "description", None) or "Something went wrong."
        return jsonify({"status": "error", "reason": reason}), status_code

    with app.app_context():
        db.create_all()

    config = app.config["DAYDROP"]
    app.logger.info(
        "Daydrop ready: trip %s..%s, reference zone %s, unlock at %02d:00, store=%s",
        config.trip_start,
        config.trip_end,
        config.reference_timezone,
        config.unlock_cutoff_hour,
        "supabase" if app.config.get("SUPABASE_CLIENT") else "sql",
    )
    return app


app = create_app()

if __name__ == "__main__":
    app.run(debug=_env_flag("FLASK_DEBUG", False))
