import click
from flask import Flask, g
from flask_migrate import Migrate

from config import Config
from models import db
from models.user import ROLE_ADMIN, User, normalize_email
from routes import admin_bp, auth_bp, health_bp
from security.bruteforce import reset_attempts, sweep_idle_attempts
from security.one_time_codes import sweep_expired_codes
from security.rate_limit import sweep_stale_windows
from security.refresh_tokens import revoke_all_tokens, sweep_expired_tokens
from utils import clock
from utils.auth_context import assign_request_id, load_current_user
from utils.errors import register_error_handlers
from utils.structured_logging import configure_logging


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    register_error_handlers(app)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _request_context():
        assign_request_id()
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        request_id = getattr(g, "request_id", None)
        if request_id:
            resp.headers["X-Request-ID"] = request_id
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to admin by email (bootstrap)."""
        user = User.query.filter_by(email=normalize_email(email)).first()
        if not user:
            click.echo("User not found")
            return

        user.role = ROLE_ADMIN
        user.email_verified = True
        db.session.commit()
        # sessions issued under the old role carry stale claims
        revoke_all_tokens(user.id)
        click.echo(f"{user.email} promoted to admin")

    @app.cli.command("sweep-auth")
    def sweep_auth():
        """Delete expired refresh tokens, idle login attempts, dead codes and old rate windows."""
        now = clock.utcnow()
        tokens = sweep_expired_tokens(now)
        attempts = sweep_idle_attempts(now)
        codes = sweep_expired_codes(now)
        windows = sweep_stale_windows(now)
        app.logger.info("sweep-auth removed tokens=%s attempts=%s codes=%s windows=%s",
                        tokens, attempts, codes, windows)
        click.echo(f"tokens={tokens} attempts={attempts} codes={codes} windows={windows}")

    @app.cli.command("unlock")
    @click.argument("email")
    def unlock(email):
        """Clear failed login attempts (and any lockout) for an email."""
        reset_attempts(normalize_email(email))
        click.echo(f"{normalize_email(email)} unlocked")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
