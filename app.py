import logging

from flask import Flask
from config import Config
from routes import health_bp, otp_bp

from models import db
from flask_migrate import Migrate
from security.otp import OtpLifecycleManager
from security.otp_store import MemoryOtpStore, SqlAlchemyOtpStore
from security.rate_limiter import RateLimiter
from security.sweeper import Sweeper

logger = logging.getLogger(__name__)


def _build_store(app):
    kind = app.config.get("OTP_STORE", "sql")
    if kind == "memory":
        return MemoryOtpStore()
    if kind == "sql":
        return SqlAlchemyOtpStore()
    raise ValueError(f"Unknown OTP_STORE: {kind!r}")


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(otp_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Auth core: one explicitly owned instance of each component per app
    rate_limiter = RateLimiter.from_config(app.config)
    otp_manager = OtpLifecycleManager.from_config(app.config, store=_build_store(app))
    app.extensions["rate_limiter"] = rate_limiter
    app.extensions["otp_manager"] = otp_manager

    if app.config.get("OTP_DEBUG_EXPOSE_CODE"):
        logger.warning("OTP_DEBUG_EXPOSE_CODE is enabled: plaintext codes are returned and logged")

    sweeper = Sweeper(
        app, otp_manager, rate_limiter,
        interval=app.config.get("OTP_SWEEP_INTERVAL_SECONDS", 300),
    )
    app.extensions["otp_sweeper"] = sweeper
    if not app.config.get("TESTING") and app.config.get("OTP_SWEEP_INTERVAL_SECONDS", 300) > 0:
        sweeper.start()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click


def register_cli(app):
    @app.cli.command("sweep-otps")
    def sweep_otps():
        """Delete expired OTP records and idle rate-limit state once."""
        otps, limits = app.extensions["otp_sweeper"].run_once()
        click.echo(f"Removed {otps} expired OTP records, {limits} rate-limit records")

    @app.cli.command("otp-status")
    @click.argument("identifier")
    @click.option("--purpose", default="login", show_default=True)
    def otp_status(identifier, purpose):
        """Show the lifecycle state of IDENTIFIER's code for PURPOSE."""
        click.echo(app.extensions["otp_manager"].status(identifier, purpose))

#-------------------------




if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    with app.app_context():
        db.create_all()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
