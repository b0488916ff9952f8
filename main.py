"""
Main application entry point for Smart Buffer.
Builds the decision engine and starts the Flask application.
"""
from typing import Optional

from flask import Blueprint, Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from config import config, AppConfig
from smart_buffer.core import MessageGate, Orchestrator, create_orchestrator
from smart_buffer.controllers import WebhookController
from smart_buffer.utils import setup_logger


logger = setup_logger(__name__)


def create_app(app_config: Optional[AppConfig] = None,
               orchestrator: Optional[Orchestrator] = None,
               gate: Optional[MessageGate] = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        app_config: Configuration (defaults to the environment-driven global)
        orchestrator: Pre-built engine, mainly for tests
        gate: Pre-built message gate, mainly for tests

    Returns:
        Configured Flask application

    Raises:
        ConfigurationError: Preset or overrides are invalid
    """
    app_config = app_config or config
    app = Flask(__name__)

    # Trust proxy headers (for ngrok/nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    logger.info(f"Starting Smart Buffer in {app_config.environment} mode (industry: {app_config.industry})")

    orchestrator = orchestrator or create_orchestrator(app_config)
    gate = gate or MessageGate(app_config.rate_limit)

    blueprint = Blueprint('smart_buffer', __name__)
    WebhookController(blueprint, orchestrator, gate)
    app.register_blueprint(blueprint)

    app.extensions['smart_buffer'] = orchestrator

    logger.info("Smart Buffer initialization completed")
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(
        host=config.host,
        port=config.port,
        debug=config.debug,
        use_reloader=False  # Disable auto-reload to prevent double initialization
    )
