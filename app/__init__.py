import os

from flask import Flask
from supabase import create_client

from .auth.routes import auth_bp, current_auth
from .date_utils import DEFAULT_FACTORY_TIMEZONE
from .knowledge.chunking import CHUNK_OVERLAP, CHUNK_SIZE
from .main.routes import main_bp


def _int_setting(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def create_app():
    app = Flask(
        __name__,
        template_folder="../templates",
        static_folder="../static",
    )
    app.secret_key = os.environ["SECRET_KEY"]

    supabase = create_client(
        os.environ["SUPABASE_URL"],
        os.environ["SUPABASE_SERVICE_KEY"],
    )
    app.config["SUPABASE"] = supabase
    app.config["SUPABASE_URL"] = os.environ["SUPABASE_URL"]
    app.config["FACTORY_TIMEZONE"] = (
        os.environ.get("FACTORY_TIMEZONE") or DEFAULT_FACTORY_TIMEZONE
    )
    app.config["KB_CHUNK_SIZE"] = _int_setting("KB_CHUNK_SIZE", CHUNK_SIZE)
    app.config["KB_CHUNK_OVERLAP"] = _int_setting("KB_CHUNK_OVERLAP", CHUNK_OVERLAP)

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)

    @app.context_processor
    def inject_user_context():
        ctx = current_auth()
        return {
            "display_name": ctx.display_name if ctx else None,
            "user_id": ctx.user_id if ctx else None,
            "user_roles": [role.role for role in ctx.roles] if ctx else [],
        }

    return app
